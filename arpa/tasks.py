"""
======================================
Celery 异步任务定义
======================================

这些任务是 ARPA 引擎的「外部调用方」：
- calculate_risk_score_task: 单个患者计算，失败重试策略在这里定义
- recalculate_active_patients: 每晚由 Celery Beat 触发，给所有活跃患者各发一个任务

引擎本身不重试；读失败 / 写失败时由这里按指数退避重试整个计算。
患者不存在不重试。
"""

import logging

from celery import shared_task

from .exceptions import DataSourceError, PatientNotFound, PersistenceError

logger = logging.getLogger(__name__)


# ============================================
# 主任务：计算单个患者的风险分数
# ============================================
@shared_task(
    bind=True,
    autoretry_for=(DataSourceError, PersistenceError),  # 只有暂时性失败才重试
    retry_kwargs={'max_retries': 3},
    retry_backoff=True,                 # 指数退避
    retry_backoff_max=600,              # 最大退避时间 10 分钟
    retry_jitter=True,                  # 随机抖动，避免重试风暴
)
def calculate_risk_score_task(self, patient_id, calculated_by=None):
    """
    参数:
        patient_id: 患者 ID
        calculated_by: 触发人；定时任务传 None

    调用方式：
        calculate_risk_score_task.delay(patient_id)
    """
    from arpa.services import calculate_risk_score

    logger.info(
        "[Celery] ARPA calculation for patient %s (retry %s/%s)",
        patient_id, self.request.retries, self.max_retries,
    )

    try:
        record = calculate_risk_score(patient_id, calculated_by=calculated_by)
    except PatientNotFound:
        # 找不到患者，重试也没用
        logger.warning("[Celery] Patient %s not found, skipping", patient_id)
        return {
            'status': 'error',
            'patient_id': patient_id,
            'error': 'Patient not found',
        }

    return {
        'status': 'success',
        'patient_id': patient_id,
        'risk_score_id': record.pk,
        'score': record.score,
        'risk_level': record.risk_level,
    }


# ============================================
# 定时任务：全量重算
# ============================================
@shared_task
def recalculate_active_patients():
    """
    给每个活跃患者发一个计算任务

    配合 settings.CELERY_BEAT_SCHEDULE 每晚执行
    """
    from arpa.models import Patient

    patient_ids = list(
        Patient.objects.filter(status='active').order_by('id').values_list('id', flat=True)
    )

    if not patient_ids:
        logger.info("No active patients to recalculate")
        return {'queued': 0}

    for patient_id in patient_ids:
        calculate_risk_score_task.delay(patient_id)

    logger.info("Queued ARPA recalculation for %d active patients", len(patient_ids))
    return {'queued': len(patient_ids)}
