"""
======================================
数据域读取接口（只读）
======================================

ARPA 引擎需要读六个数据域，但不拥有其中任何一个：

    PatientSource       登记信息（是否存在、登记日期）
    VisitSource         就诊记录
    MedicationSource    处方 + 90 天服药依从性
    ARTSource           ART 方案漏服计数
    LabSource           最近的化验结果
    AppointmentSource   预约出勤

每个类只暴露引擎需要的那一个查询，返回不可变的统计对象（dataclass），
不返回 ORM 对象。各数据域以后怎么改表结构，只要这里的返回值不变，引擎不受影响。
测试里可以直接替换任意一个 source。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from django.conf import settings
from django.db.models import Avg, Count, F, Max, Min, Q, Sum

from .models import (
    Appointment,
    ARTRegimenDrug,
    ClinicalVisit,
    LabResult,
    MedicationAdherenceRecord,
    Patient,
    Prescription,
)


# ============================================================================
# 各数据域的统计结果
# ============================================================================

@dataclass(frozen=True)
class PatientInfo:
    patient_id: int
    created_at: datetime | None


@dataclass(frozen=True)
class VisitStats:
    visit_count: int = 0
    last_visit_date: date | None = None
    first_visit_date: date | None = None
    follow_up_count: int = 0
    emergency_count: int = 0


@dataclass(frozen=True)
class PrescriptionStats:
    prescription_count: int = 0
    active_prescriptions: int = 0
    completed_prescriptions: int = 0
    cancelled_prescriptions: int = 0


@dataclass(frozen=True)
class AdherenceStats:
    avg_adherence: float | None = None  # 没有记录时为 None
    adherence_records: int = 0
    missed_doses: int = 0
    last_adherence_date: date | None = None


@dataclass(frozen=True)
class ARTStats:
    regimen_count: int = 0
    total_missed_doses: int = 0


@dataclass(frozen=True)
class LabEntry:
    test_code: str = ""
    test_name: str = ""
    result_value: str = ""
    unit: str = ""
    reported_at: datetime | None = None
    is_critical: bool = False


@dataclass(frozen=True)
class AppointmentStats:
    total_appointments: int = 0
    completed_appointments: int = 0
    cancelled_appointments: int = 0
    no_show_appointments: int = 0
    last_appointment_date: datetime | None = None


# ============================================================================
# 基于 Django ORM 的默认实现
# ============================================================================

class PatientSource:
    domain = "patients"

    def get_patient(self, patient_id) -> PatientInfo | None:
        try:
            row = Patient.objects.filter(pk=patient_id).values("id", "created_at").first()
        except (TypeError, ValueError):
            # 非整数 ID（"P-0001"）= 不存在的患者
            return None
        if row is None:
            return None
        return PatientInfo(patient_id=row["id"], created_at=row["created_at"])


class VisitSource:
    domain = "clinical_visits"

    def visit_stats(self, patient_id) -> VisitStats:
        agg = ClinicalVisit.objects.filter(patient_id=patient_id).aggregate(
            visit_count=Count("id"),
            last_visit_date=Max("visit_date"),
            first_visit_date=Min("visit_date"),
            follow_up_count=Count("id", filter=Q(visit_type="follow_up")),
            emergency_count=Count("id", filter=Q(visit_type="emergency")),
        )
        return VisitStats(**agg)


class MedicationSource:
    domain = "medications"

    def prescription_stats(self, patient_id) -> PrescriptionStats:
        agg = Prescription.objects.filter(patient_id=patient_id).aggregate(
            prescription_count=Count("id"),
            active_prescriptions=Count("id", filter=Q(status="active")),
            completed_prescriptions=Count("id", filter=Q(status="completed")),
            cancelled_prescriptions=Count("id", filter=Q(status="cancelled")),
        )
        return PrescriptionStats(**agg)

    def adherence_stats(self, patient_id, today: date) -> AdherenceStats:
        window_start = today - timedelta(days=settings.ARPA["ADHERENCE_WINDOW_DAYS"])
        agg = MedicationAdherenceRecord.objects.filter(
            patient_id=patient_id,
            adherence_date__gte=window_start,
        ).aggregate(
            avg_adherence=Avg("adherence_percentage"),
            adherence_records=Count("id"),
            missed_doses=Count("id", filter=Q(taken=False)),
            last_adherence_date=Max("adherence_date"),
        )
        return AdherenceStats(**agg)


class ARTSource:
    domain = "art_regimens"

    def art_stats(self, patient_id) -> ARTStats:
        agg = ARTRegimenDrug.objects.filter(
            regimen__patient_id=patient_id,
            regimen__status="active",
        ).aggregate(
            regimen_count=Count("regimen", distinct=True),
            total_missed_doses=Sum("missed_doses"),
        )
        return ARTStats(
            regimen_count=agg["regimen_count"] or 0,
            total_missed_doses=agg["total_missed_doses"] or 0,
        )


class LabSource:
    domain = "lab_results"

    def recent_results(self, patient_id) -> list[LabEntry]:
        rows = (
            LabResult.objects.filter(patient_id=patient_id)
            .order_by(F("reported_at").desc(nulls_last=True), "-id")
            .values("test_code", "test_name", "result_value", "unit", "reported_at", "is_critical")
            [:settings.ARPA["LAB_RESULT_LIMIT"]]
        )
        return [LabEntry(**row) for row in rows]


class AppointmentSource:
    domain = "appointments"

    def appointment_stats(self, patient_id) -> AppointmentStats:
        agg = Appointment.objects.filter(patient_id=patient_id).aggregate(
            total_appointments=Count("id"),
            completed_appointments=Count("id", filter=Q(status="completed")),
            cancelled_appointments=Count("id", filter=Q(status="cancelled")),
            no_show_appointments=Count("id", filter=Q(status="no_show")),
            last_appointment_date=Max("scheduled_start"),
        )
        return AppointmentStats(**agg)
