"""
======================================
评分记录 (Score Recorder)
======================================

一次计算 = 一个事务里的两次写：
    1. INSERT RiskScoreRecord（只追加）
    2. UPDATE Patient.current_risk_score / last_calculated_at（投影）

要么都成功，要么都回滚。事务里先 select_for_update 锁住患者行，
同一患者的并发计算会在这里排队，投影永远指向最后插入的那条记录。

审计日志在事务提交之后写，失败只记日志。
"""

import logging

from django.db import DatabaseError, transaction
from django.utils import timezone

from .audit import log_score_calculation
from .exceptions import AuditEmissionFailure, PatientNotFound, PersistenceError
from .models import Patient, RiskScoreRecord
from .risk_factors import EVIDENCE_SCHEMA_VERSION
from .scoring import ComposedScore, classify

logger = logging.getLogger(__name__)


def record_score(patient_id, composed: ComposedScore, calculated_by=None,
                 skip_audit: bool = False) -> RiskScoreRecord:
    # 计算日期只取当天，不接受外部传入：投影必须永远指向 calculated_on 最新的那条
    today = timezone.localdate()

    try:
        with transaction.atomic():
            try:
                patient = Patient.objects.select_for_update().get(pk=patient_id)
            except (Patient.DoesNotExist, TypeError, ValueError):
                raise PatientNotFound(patient_id)

            previous_score = patient.current_risk_score

            record = RiskScoreRecord.objects.create(
                patient=patient,
                score=composed.score,
                risk_factors=composed.risk_factors,
                factors_version=EVIDENCE_SCHEMA_VERSION,
                recommendations=composed.recommendation,
                calculated_by=calculated_by,
                calculated_on=today,
            )

            patient.current_risk_score = record.score
            patient.last_calculated_at = record.calculated_on
            patient.save(update_fields=["current_risk_score", "last_calculated_at"])
    except DatabaseError as exc:
        logger.error("Failed to persist risk score for patient %s: %s", patient_id, exc)
        raise PersistenceError() from exc

    logger.info(
        "✅ Risk score #%s saved for patient %s: %s (%s)",
        record.pk, patient_id, record.score, record.risk_level,
    )

    if not skip_audit:
        previous_level = classify(previous_score).level if previous_score is not None else None
        try:
            log_score_calculation(record, patient, previous_score, previous_level)
        except AuditEmissionFailure:
            logger.exception("Audit entry for risk score #%s was not written", record.pk)

    return record
