"""
======================================
审计日志 (Audit Log)
======================================

评分写入提交之后才写审计，而且在独立的 savepoint 里写：
审计失败只会回滚它自己，不会碰已经提交的评分。

失败时抛 AuditEmissionFailure，由调用方（recorder）记录日志后吞掉。
"""

import logging

from django.db import DatabaseError, transaction

from .exceptions import AuditEmissionFailure
from .models import AuditLogEntry

logger = logging.getLogger(__name__)

ARPA_MODULE = "ARPA Risk Assessment"
ARPA_USER_AGENT = "ARPA Service"


def log_audit(*, user_id, user_name, user_role, action, module,
              entity_type="", entity_id="", record_id="",
              old_value=None, new_value=None, change_summary="",
              user_agent="", status="success", error_message=""):
    """写一条审计记录。必填：user_name / user_role / action / module"""
    if not (user_name and user_role and action and module):
        raise AuditEmissionFailure("Audit entry is missing required fields")

    try:
        with transaction.atomic():
            return AuditLogEntry.objects.create(
                user_id=user_id,
                user_name=user_name,
                user_role=user_role,
                action=action,
                module=module,
                entity_type=entity_type,
                entity_id=str(entity_id),
                record_id=str(record_id),
                old_value=old_value,
                new_value=new_value,
                change_summary=change_summary,
                user_agent=user_agent,
                status=status,
                error_message=error_message,
            )
    except DatabaseError as exc:
        raise AuditEmissionFailure() from exc


def log_score_calculation(record, patient, previous_score, previous_level):
    """记录一次 ARPA 计算：旧分数/等级 → 新分数/等级"""
    automated = record.calculated_by is None
    return log_audit(
        user_id=record.calculated_by,
        user_name=ARPA_USER_AGENT if automated else str(record.calculated_by),
        user_role="system" if automated else "staff",
        action="CREATE",
        module=ARPA_MODULE,
        entity_type="risk_score",
        entity_id=record.pk,
        record_id=patient.pk,
        old_value={
            "score": previous_score,
            "risk_level": previous_level,
        } if previous_score is not None else None,
        new_value={
            "risk_score_id": record.pk,
            "patient_id": patient.pk,
            "score": record.score,
            "risk_level": record.risk_level,
            "risk_factors": record.risk_factors,
        },
        change_summary=(
            f"ARPA risk score calculated for patient {patient.first_name} {patient.last_name} "
            f"(UIC: {patient.uic}): {record.score} ({record.risk_level})"
        ),
        user_agent=ARPA_USER_AGENT,
    )
