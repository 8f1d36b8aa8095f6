"""
===============================================================================
视图层 (Views)
===============================================================================

views.py 只做三件事：
1. 校验参数（serializers）
2. 调用业务逻辑（services）
3. 返回 JSON

所有异常都直接 raise，由 arpa.exceptions.custom_exception_handler 统一格式化：
    PatientNotFound  → 404
    DataSourceError  → 503
    PersistenceError → 500

认证和角色权限属于外部系统，这里不做。
"""

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from . import services
from .serializers import (
    CalculateRequestSerializer,
    CurrentScoreSerializer,
    HighRiskPatientSerializer,
    HighRiskQuerySerializer,
    HistoryQuerySerializer,
    RiskScoreRecordSerializer,
)


# ============================================================================
# 当前分数
# ============================================================================

@api_view(['GET'])
def current_score(request, patient_id):
    """
    URL: GET /api/arpa/patients/<patient_id>/

    还没算过分时返回 200 + data: null，不是 404。
    """
    record = services.get_current_score(patient_id)

    if record is None:
        return Response({
            "success": True,
            "message": "No ARPA score calculated yet",
            "data": None,
        })

    return Response({
        "success": True,
        "data": CurrentScoreSerializer(record).data,
    })


# ============================================================================
# 历史记录
# ============================================================================

@api_view(['GET'])
def score_history(request, patient_id):
    """URL: GET /api/arpa/patients/<patient_id>/history/?limit=10"""
    query = HistoryQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    records = services.get_score_history(patient_id, limit=query.validated_data.get('limit'))

    return Response({
        "success": True,
        "data": RiskScoreRecordSerializer(records, many=True).data,
    })


# ============================================================================
# 手动触发计算
# ============================================================================

@api_view(['POST'])
def calculate_score(request, patient_id):
    """
    URL: POST /api/arpa/patients/<patient_id>/calculate/

    请求体（可选）: {"calculated_by": "user-123"}
    """
    payload = CalculateRequestSerializer(data=request.data)
    payload.is_valid(raise_exception=True)

    record = services.calculate_risk_score(
        patient_id,
        calculated_by=payload.validated_data.get('calculated_by') or None,
    )

    return Response({
        "success": True,
        "message": "ARPA risk score calculated successfully",
        "data": RiskScoreRecordSerializer(record).data,
    }, status=status.HTTP_201_CREATED)


# ============================================================================
# 高风险患者列表
# ============================================================================

@api_view(['GET'])
def high_risk_patients(request):
    """URL: GET /api/arpa/high-risk/?threshold=50"""
    query = HighRiskQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    # threshold=0 和不传一样，回落到默认阈值
    threshold = query.validated_data.get('threshold') or settings.ARPA['HIGH_RISK_THRESHOLD']
    patients = services.get_high_risk_patients(threshold)
    data = HighRiskPatientSerializer(patients, many=True).data

    return Response({
        "success": True,
        "data": data,
        "count": len(data),
        "threshold": threshold,
    })
