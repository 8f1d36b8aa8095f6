"""
======================================
Integration Tests: 完整计算流程
======================================

calculate_risk_score() 走完 聚合 → 评估 → 合成 → 写库，
用真实的（测试）数据库验证：
- 分数、等级、证据表
- 投影字段与最新记录同步
- 失败时没有半条记录
- 审计失败不影响评分
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.utils import timezone

from arpa.aggregator import DomainDataAggregator
from arpa.exceptions import DataSourceError, PatientNotFound, PersistenceError
from arpa.models import AuditLogEntry, Patient, RiskScoreRecord
from arpa.scoring import RiskLevel
from arpa.services import calculate_risk_score, get_current_score, get_score_history
from arpa.sources import LabSource, PatientSource, VisitSource

from factories import (
    add_adherence,
    add_appointments,
    add_art_regimen,
    add_lab,
    add_prescription,
    add_visit,
)


# ============================================
# 典型场景
# ============================================

class TestScenarios:

    @pytest.mark.django_db
    def test_patient_without_any_history(self, patient):
        """场景 1: 没有任何记录 → 只有就诊/化验 365 天默认值得分（25 + 20）"""
        record = calculate_risk_score(patient.id)

        assert record.score == 45.0
        assert record.risk_level == RiskLevel.MEDIUM
        factors = record.risk_factors
        assert factors["daysSinceLastVisit"] == 365
        assert factors["daysSinceLastLab"] == 365
        assert factors["medicationAdherence"] == 0.0
        assert factors["visitCount"] == 0
        assert factors["noActivePrescriptions"] is False
        assert "cd4Trend" not in factors
        assert "viralLoad" not in factors
        assert "emergencyVisitRate" not in factors

    @pytest.mark.django_db
    def test_high_risk_patient_is_capped(self, patient):
        """场景 2: 依从性 60%、爽约 50%、CD4 150（单次）、病毒载量 2000 → 封顶 100，HIGH"""
        for day in range(1, 11):
            add_adherence(patient, 60, days_ago=day)
        add_appointments(patient, completed=4, no_show=5, cancelled=1)
        add_lab(patient, "150", test_code="CD4")
        add_lab(patient, "2000", test_code="VL", seconds=10)

        record = calculate_risk_score(patient.id)

        assert record.score == 100.0
        assert record.risk_level == RiskLevel.HIGH
        assert record.risk_factors["medicationAdherence"] == 60.0
        assert record.risk_factors["appointmentMissedRate"] == 50.0
        assert record.risk_factors["appointmentAttendanceRate"] == 40.0
        assert record.risk_factors["cd4Trend"] == {"latest": 150.0, "previous": None}
        assert record.risk_factors["viralLoad"] == {"value": 2000.0, "numeric": 2000.0}

    @pytest.mark.django_db
    def test_undetectable_viral_load(self, patient):
        """场景 3: 病毒载量 "Undetectable" → 0 分，证据 {value: Undetectable, numeric: 0}"""
        add_visit(patient, days_ago=3)
        add_prescription(patient)
        add_lab(patient, "Undetectable", test_code="VL")

        record = calculate_risk_score(patient.id)
        record.refresh_from_db()

        assert record.risk_factors["viralLoad"] == {"value": "Undetectable", "numeric": 0}
        # 近期就诊 + 近期化验 + 有活跃处方 → 不得分
        assert record.score == 0.0
        assert record.risk_level == RiskLevel.LOW

    @pytest.mark.django_db
    def test_well_managed_patient(self, patient):
        add_visit(patient, days_ago=10, visit_type="follow_up")
        add_visit(patient, days_ago=40)
        add_prescription(patient)
        for day in range(1, 6):
            add_adherence(patient, 100, days_ago=day)
        add_appointments(patient, completed=5)
        add_lab(patient, "650", test_code="CD4", days_ago=5)
        add_lab(patient, "600", test_code="CD4", days_ago=100)

        record = calculate_risk_score(patient.id)

        assert record.score == 0.0
        assert record.risk_factors["cd4Trend"]["changePercent"] == 8.3
        assert record.risk_factors["emergencyVisitRate"] == 0.0

    @pytest.mark.django_db
    def test_adherence_outside_window_is_ignored(self, patient):
        add_visit(patient, days_ago=1)
        add_prescription(patient)
        add_lab(patient, "12", test_code="HB")
        add_adherence(patient, 20, days_ago=120)

        record = calculate_risk_score(patient.id)

        assert record.risk_factors["medicationAdherence"] == 0.0
        assert record.score == 0.0

    @pytest.mark.django_db
    def test_only_active_art_regimens_count(self, patient):
        add_art_regimen(patient, [2, 3])
        add_art_regimen(patient, [10], status="stopped")

        record = calculate_risk_score(patient.id)

        assert record.risk_factors["artMissedDoses"] == 5

    @pytest.mark.django_db
    def test_emergency_and_cancellation_rates_add_up(self, patient):
        add_visit(patient, days_ago=2, visit_type="emergency")
        add_visit(patient, days_ago=5)
        add_prescription(patient, status="cancelled")
        add_prescription(patient, status="completed")
        add_lab(patient, "12", test_code="HB")

        record = calculate_risk_score(patient.id)

        # 急诊 50% → 15；取消 50% → 10；无活跃处方 → 10
        assert record.score == 35.0
        assert record.risk_level == RiskLevel.LOW_MEDIUM
        assert record.risk_factors["noActivePrescriptions"] is True

    @pytest.mark.django_db
    def test_overflowing_lab_values_are_scored_as_zero(self, patient):
        """化验值 "1e999" 溢出 → 按解析失败处理（0），照常保存"""
        add_lab(patient, "1e999", test_code="CD4")
        add_lab(patient, "300", test_code="CD4", days_ago=30)
        add_lab(patient, "1e999", test_code="VL", seconds=10)

        record = calculate_risk_score(patient.id)
        record.refresh_from_db()

        assert record.risk_factors["cd4Trend"]["latest"] == 0.0
        assert record.risk_factors["cd4Trend"]["changePercent"] == -100.0
        assert record.risk_factors["viralLoad"] == {"value": 0.0, "numeric": 0.0}
        # 就诊 365 天 25 + CD4 < 200 20 + 下降 > 20% 15
        assert record.score == 60.0


# ============================================
# 持久化与投影
# ============================================

class TestRecording:

    @pytest.mark.django_db
    def test_projection_matches_latest_record(self, patient, today):
        record = calculate_risk_score(patient.id, calculated_by="user-7")
        patient.refresh_from_db()

        assert patient.current_risk_score == record.score
        assert patient.last_calculated_at == today
        assert record.calculated_on == today
        assert record.calculated_by == "user-7"
        assert record.factors_version == 1

    @pytest.mark.django_db
    def test_repeated_calculation_is_deterministic_but_not_deduplicated(self, patient):
        add_visit(patient, days_ago=45)
        add_lab(patient, "320", test_code="CD4", days_ago=70)

        first = calculate_risk_score(patient.id)
        second = calculate_risk_score(patient.id)

        assert first.id != second.id
        assert first.score == second.score
        assert first.risk_factors == second.risk_factors
        assert RiskScoreRecord.objects.filter(patient=patient).count() == 2

    @pytest.mark.django_db
    def test_calculation_date_cannot_be_supplied(self, patient, today):
        with pytest.raises(TypeError):
            calculate_risk_score(patient.id, today=today - timedelta(days=30))

        assert RiskScoreRecord.objects.count() == 0

    @pytest.mark.django_db
    def test_projection_follows_newest_record_across_days(self, patient, today):
        calculate_risk_score(patient.id)
        add_visit(patient, days_ago=0)

        real_localdate = timezone.localdate

        def next_day(value=None, *args, **kwargs):
            if value is None:
                return real_localdate() + timedelta(days=1)
            return real_localdate(value, *args, **kwargs)

        with patch.object(timezone, "localdate", side_effect=next_day):
            latest = calculate_risk_score(patient.id)

        patient.refresh_from_db()
        current = get_current_score(patient.id)
        assert latest.calculated_on == today + timedelta(days=1)
        assert current.id == latest.id
        assert patient.current_risk_score == latest.score == 30.0
        assert patient.last_calculated_at == latest.calculated_on

    @pytest.mark.django_db
    def test_current_score_reflects_last_calculation(self, patient):
        calculate_risk_score(patient.id)
        add_visit(patient, days_ago=1)
        add_prescription(patient)
        latest = calculate_risk_score(patient.id)

        current = get_current_score(patient.id)

        assert current.id == latest.id
        assert current.score == latest.score
        assert current.risk_level == latest.risk_level
        assert current.patient.current_risk_score == latest.score


# ============================================
# 失败路径
# ============================================

class RecordingPatientSource(PatientSource):
    def __init__(self, calls):
        self.calls = calls

    def get_patient(self, patient_id):
        self.calls.append("patients")
        return super().get_patient(patient_id)


class RecordingVisitSource(VisitSource):
    def __init__(self, calls):
        self.calls = calls

    def visit_stats(self, patient_id):
        self.calls.append("clinical_visits")
        return super().visit_stats(patient_id)


class BrokenLabSource(LabSource):
    def recent_results(self, patient_id):
        raise DatabaseError("canceling statement due to statement timeout")


class TestFailures:

    @pytest.mark.django_db
    def test_non_integer_patient_id_is_not_found(self):
        with pytest.raises(PatientNotFound):
            calculate_risk_score("P-0001")

        assert RiskScoreRecord.objects.count() == 0
        assert get_current_score("P-0001") is None
        assert get_score_history("P-0001") == []

    @pytest.mark.django_db
    def test_unknown_patient_raises_before_other_queries(self):
        calls = []
        aggregator = DomainDataAggregator(
            patients=RecordingPatientSource(calls),
            visits=RecordingVisitSource(calls),
        )

        with pytest.raises(PatientNotFound):
            calculate_risk_score(999999, aggregator=aggregator)

        assert calls == ["patients"]
        assert RiskScoreRecord.objects.count() == 0
        assert AuditLogEntry.objects.count() == 0

    @pytest.mark.django_db
    def test_data_source_failure_writes_nothing(self, patient):
        aggregator = DomainDataAggregator(labs=BrokenLabSource())

        with pytest.raises(DataSourceError) as exc_info:
            calculate_risk_score(patient.id, aggregator=aggregator)

        assert exc_info.value.domain == "lab_results"
        assert "timeout" not in exc_info.value.message
        assert RiskScoreRecord.objects.count() == 0
        patient.refresh_from_db()
        assert patient.current_risk_score is None
        assert patient.last_calculated_at is None

    @pytest.mark.django_db
    def test_insert_failure_raises_persistence_error(self, patient):
        with patch.object(RiskScoreRecord.objects, "create", side_effect=DatabaseError("disk full")):
            with pytest.raises(PersistenceError):
                calculate_risk_score(patient.id)

        patient.refresh_from_db()
        assert patient.current_risk_score is None

    @pytest.mark.django_db
    def test_projection_failure_rolls_back_insert(self, patient):
        """投影更新失败 → 刚插入的记录也要回滚"""
        with patch.object(Patient, "save", side_effect=DatabaseError("deadlock detected")):
            with pytest.raises(PersistenceError):
                calculate_risk_score(patient.id)

        assert RiskScoreRecord.objects.count() == 0
        patient.refresh_from_db()
        assert patient.current_risk_score is None


# ============================================
# 审计
# ============================================

class TestAudit:

    @pytest.mark.django_db
    def test_audit_entry_records_old_and_new_values(self, patient):
        first = calculate_risk_score(patient.id, calculated_by="user-1")
        add_visit(patient, days_ago=1)
        second = calculate_risk_score(patient.id, calculated_by="user-1")

        entries = list(AuditLogEntry.objects.order_by("id"))
        assert len(entries) == 2
        assert entries[0].old_value is None
        assert entries[1].old_value == {"score": first.score, "risk_level": first.risk_level}
        assert entries[1].new_value["score"] == second.score
        assert entries[1].entity_id == str(second.id)
        assert entries[1].module == "ARPA Risk Assessment"
        assert "UIC00001" in entries[1].change_summary

    @pytest.mark.django_db
    def test_automated_run_is_audited_as_system(self, patient):
        calculate_risk_score(patient.id)

        entry = AuditLogEntry.objects.get()
        assert entry.user_id is None
        assert entry.user_role == "system"

    @pytest.mark.django_db
    def test_skip_audit(self, patient):
        calculate_risk_score(patient.id, skip_audit=True)
        assert AuditLogEntry.objects.count() == 0

    @pytest.mark.django_db
    def test_audit_failure_does_not_fail_calculation(self, patient):
        with patch.object(AuditLogEntry.objects, "create", side_effect=DatabaseError("audit table locked")):
            record = calculate_risk_score(patient.id)

        assert RiskScoreRecord.objects.filter(pk=record.pk).exists()
        patient.refresh_from_db()
        assert patient.current_risk_score == record.score
        assert AuditLogEntry.objects.count() == 0
