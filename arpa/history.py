"""
======================================
查询服务 (History / Query Service)
======================================

只读，无副作用：
- get_current_score(): 当前分数（None = 还没算过）
- get_score_history(): 最近 N 条记录，新 → 旧
- get_high_risk_patients(): 投影分数 >= 阈值的活跃患者

患者 ID 不是整数时按「患者不存在」处理，不抛 ValueError。
"""

from django.conf import settings

from .models import Patient, RiskScoreRecord


def _normalize_limit(limit) -> int:
    default = settings.ARPA["HISTORY_DEFAULT_LIMIT"]
    if limit is None or limit <= 0:
        return default
    return min(limit, settings.ARPA["HISTORY_MAX_LIMIT"])


def _records_for(patient_id):
    return (
        RiskScoreRecord.objects.select_related("patient")
        .filter(patient_id=patient_id)
        .order_by("-calculated_on", "-id")
    )


def get_current_score(patient_id):
    """
    返回患者最新的 RiskScoreRecord（带 patient 投影字段），没有则返回 None

    「没有分数」不是错误：患者不存在或从未计算过都返回 None。
    """
    try:
        patient = Patient.objects.filter(pk=patient_id).first()
    except (TypeError, ValueError):
        return None
    if patient is None or patient.current_risk_score is None:
        return None

    return _records_for(patient.pk).first()


def get_score_history(patient_id, limit=None) -> list:
    """
    最近 limit 条记录，按 calculated_on 降序，同一天按 id 降序

    limit 为空或 <= 0 时用默认值（10），超过上限时截到上限。
    """
    limit = _normalize_limit(limit)
    try:
        return list(_records_for(patient_id)[:limit])
    except (TypeError, ValueError):
        return []


def get_high_risk_patients(threshold=None) -> list:
    if threshold is None:
        threshold = settings.ARPA["HIGH_RISK_THRESHOLD"]
    return list(
        Patient.objects.filter(status="active", current_risk_score__gte=threshold)
        .order_by("-current_risk_score", "-last_calculated_at", "id")
        [:settings.ARPA["HIGH_RISK_LIMIT"]]
    )
