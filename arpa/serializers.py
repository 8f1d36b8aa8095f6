"""
======================================
数据序列化层
======================================

- 前端参数 → 后端格式（查询参数 / 请求体校验）
- RiskScoreRecord / Patient → JSON

risk_level 不存库，每次都由 scoring.classify() 从分数算出来。
"""

from rest_framework import serializers

from .models import Patient, RiskScoreRecord
from .scoring import classify


# ========== 输入验证：前端 → 后端 ==========

class CalculateRequestSerializer(serializers.Serializer):
    """手动触发计算；calculated_by 为空表示系统触发"""
    calculated_by = serializers.CharField(
        required=False, allow_null=True, allow_blank=True, max_length=64
    )


class HistoryQuerySerializer(serializers.Serializer):
    # 非正数不报错，由 history.get_score_history 回落到默认值
    limit = serializers.IntegerField(required=False)


class HighRiskQuerySerializer(serializers.Serializer):
    threshold = serializers.FloatField(required=False, min_value=0, max_value=100)


# ========== 输出：后端 → 前端 ==========

class RiskScoreRecordSerializer(serializers.ModelSerializer):
    record_id = serializers.IntegerField(source="id", read_only=True)
    patient_id = serializers.IntegerField(read_only=True)
    risk_level = serializers.CharField(read_only=True)

    class Meta:
        model = RiskScoreRecord
        fields = [
            "record_id",
            "patient_id",
            "score",
            "risk_level",
            "risk_factors",
            "factors_version",
            "recommendations",
            "calculated_by",
            "calculated_on",
            "created_at",
        ]
        read_only_fields = fields


class CurrentScoreSerializer(RiskScoreRecordSerializer):
    """当前分数 = 最新记录 + 患者表上的投影字段"""
    current_risk_score = serializers.FloatField(source="patient.current_risk_score", read_only=True)
    last_calculated_at = serializers.DateField(source="patient.last_calculated_at", read_only=True)

    class Meta(RiskScoreRecordSerializer.Meta):
        fields = RiskScoreRecordSerializer.Meta.fields + [
            "current_risk_score",
            "last_calculated_at",
        ]
        read_only_fields = fields


class HighRiskPatientSerializer(serializers.ModelSerializer):
    patient_id = serializers.IntegerField(source="id", read_only=True)
    risk_level = serializers.SerializerMethodField()

    class Meta:
        model = Patient
        fields = [
            "patient_id",
            "uic",
            "first_name",
            "last_name",
            "current_risk_score",
            "last_calculated_at",
            "risk_level",
        ]

    def get_risk_level(self, patient):
        return classify(patient.current_risk_score).level
