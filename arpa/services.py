"""
======================================
业务逻辑层（Service Layer）
======================================

ARPA 计算的统一入口：

    聚合 (aggregator) → 因子评估 (risk_factors) → 合成 (scoring) → 记录 (recorder)

前三步都是只读 / 纯函数，只有最后一步写库。
任何一步失败都抛出有类型的异常（见 exceptions.py），不会留下半条记录。

查询类操作（当前分数、历史）在 history.py，这里重新导出方便调用方使用。
"""

import logging

from django.utils import timezone

from .aggregator import DomainDataAggregator
from .history import get_current_score, get_high_risk_patients, get_score_history
from .recorder import record_score
from .risk_factors import base_counts, evaluate
from .scoring import compose

logger = logging.getLogger(__name__)

__all__ = [
    "calculate_risk_score",
    "get_current_score",
    "get_score_history",
    "get_high_risk_patients",
]


def calculate_risk_score(patient_id, calculated_by=None, *, skip_audit=False, aggregator=None):
    """
    计算并保存患者的 ARPA 风险分数

    参数:
        patient_id: 患者 ID
        calculated_by: 触发计算的人（自动任务传 None）
        skip_audit: 不写审计日志
        aggregator: 替换数据来源（测试用）

    返回:
        已持久化的 RiskScoreRecord

    异常:
        PatientNotFound / DataSourceError / PersistenceError
    """
    today = timezone.localdate()
    aggregator = aggregator or DomainDataAggregator()

    logger.info("Calculating ARPA risk score for patient %s", patient_id)

    # 1. 聚合六个数据域（患者不存在时在这里就失败）
    snapshot = aggregator.aggregate(patient_id, today=today)

    # 2. 逐个因子评估 + 3. 合成
    composed = compose(evaluate(snapshot, today), base_evidence=base_counts(snapshot))
    logger.info(
        "Patient %s scored %s (%s), contributions=%s",
        patient_id, composed.score, composed.risk_level, composed.contributions,
    )

    # 4. 原子写入
    return record_score(
        patient_id,
        composed,
        calculated_by=calculated_by,
        skip_audit=skip_audit,
    )
