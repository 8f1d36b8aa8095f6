"""
===============================================================================
风险因子评估 (Risk Factor Evaluator)
===============================================================================

每个因子是一个纯函数：输入 PatientSnapshot（+ 计算日期），输出 FactorResult：
- points:   本因子贡献的分数（只加不减）
- evidence: 写进 risk_factors 证据表的诊断值，不管有没有得分都记录

【阈值规则】
-----------
阶梯从高到低逐级比较，严格大于（或严格小于）才进入该档，
等于边界值不升档。例如距上次就诊正好 180 天 → 20 分，不是 25 分。

【证据表的 key】
--------------
key 名是下游（仪表盘、患者端）依赖的契约，见 EvidenceKeys，
改名必须同时提升 EVIDENCE_SCHEMA_VERSION。
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

from django.utils import timezone

from .aggregator import PatientSnapshot
from .sources import LabEntry

EVIDENCE_SCHEMA_VERSION = 1

# 没有任何就诊 / 化验时按 365 天计
MISSING_DATE_DAYS = 365


class EvidenceKeys:
    VISIT_COUNT = "visitCount"
    PRESCRIPTION_COUNT = "prescriptionCount"
    TOTAL_APPOINTMENTS = "totalAppointments"
    COMPLETED_APPOINTMENTS = "completedAppointments"
    MISSED_APPOINTMENTS = "missedAppointments"
    DAYS_SINCE_LAST_VISIT = "daysSinceLastVisit"
    VISIT_FREQUENCY = "visitFrequency"
    MEDICATION_ADHERENCE = "medicationAdherence"
    ART_MISSED_DOSES = "artMissedDoses"
    MISSED_DOSE_RATE = "missedDoseRate"
    APPOINTMENT_MISSED_RATE = "appointmentMissedRate"
    APPOINTMENT_ATTENDANCE_RATE = "appointmentAttendanceRate"
    DAYS_SINCE_LAST_LAB = "daysSinceLastLab"
    CRITICAL_LABS_COUNT = "criticalLabsCount"
    CD4_TREND = "cd4Trend"
    VIRAL_LOAD = "viralLoad"
    EMERGENCY_VISIT_RATE = "emergencyVisitRate"
    PRESCRIPTION_CANCELLED_RATE = "prescriptionCancelledRate"
    NO_ACTIVE_PRESCRIPTIONS = "noActivePrescriptions"


# ============================================================================
# 阈值阶梯：(边界, 分数)，从最严重的一档开始
# ============================================================================

VISIT_RECENCY_LADDER = ((180, 25), (90, 20), (60, 15), (30, 10), (14, 5))
ADHERENCE_LADDER = ((70, 30), (80, 25), (90, 15), (95, 10), (100, 5))           # 小于
MISSED_DOSE_LADDER = ((30, 15), (20, 10), (10, 5))
NO_SHOW_LADDER = ((40, 25), (30, 20), (20, 15), (10, 10), (5, 5))
LAB_RECENCY_LADDER = ((180, 20), (120, 15), (90, 10), (60, 5))
CD4_LADDER = ((200, 20), (350, 10), (500, 5))                                    # 小于
CD4_DECLINE_LADDER = ((-20, 15), (-10, 10))                                      # 小于
CD4_SINGLE_LADDER = ((200, 15), (350, 8))                                        # 小于
VIRAL_LOAD_LADDER = ((1000, 25), (500, 20), (200, 15), (50, 10), (20, 5))
EMERGENCY_RATE_LADDER = ((30, 15), (20, 10), (10, 5))
CANCELLED_RATE_LADDER = ((30, 10), (20, 7), (10, 5))

LOW_ATTENDANCE_POINTS = 15
LOW_ATTENDANCE_RATE = 50
LOW_ATTENDANCE_MIN_APPOINTMENTS = 3
NO_ACTIVE_PRESCRIPTION_POINTS = 10


@dataclass(frozen=True)
class FactorResult:
    name: str
    points: float = 0
    evidence: dict = field(default_factory=dict)


# ============================================================================
# 工具函数
# ============================================================================

_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def round_one(value) -> float:
    """四舍五入到一位小数（half-up，不用 round() 的银行家舍入）"""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def parse_lab_value(raw) -> float:
    """取开头的数字部分："2000 copies/mL" → 2000.0；解析不了或溢出（"1e999"）→ 0.0"""
    if raw is None:
        return 0.0
    match = _LEADING_NUMBER.match(str(raw))
    if not match:
        return 0.0
    value = float(match.group(1))
    return value if math.isfinite(value) else 0.0


def ladder_above(value, ladder) -> int:
    for bound, points in ladder:
        if value > bound:
            return points
    return 0


def ladder_below(value, ladder) -> int:
    for bound, points in ladder:
        if value < bound:
            return points
    return 0


def percent(part, whole) -> float:
    return (part * 100) / whole if whole else 0.0


def days_since(value, today: date) -> int:
    if value is None:
        return MISSING_DATE_DAYS
    if isinstance(value, datetime):
        value = timezone.localdate(value) if timezone.is_aware(value) else value.date()
    return (today - value).days


def is_cd4(lab: LabEntry) -> bool:
    return "cd4" in (lab.test_code or "").lower() or "cd4" in (lab.test_name or "").lower()


def is_viral_load(lab: LabEntry) -> bool:
    code = (lab.test_code or "").lower()
    name = (lab.test_name or "").lower()
    return "vl" in code or "viral" in code or "viral load" in name


# ============================================================================
# 因子
# ============================================================================

def base_counts(snapshot: PatientSnapshot) -> dict:
    """原始计数，不计分"""
    return {
        EvidenceKeys.VISIT_COUNT: snapshot.visits.visit_count,
        EvidenceKeys.PRESCRIPTION_COUNT: snapshot.prescriptions.prescription_count,
        EvidenceKeys.TOTAL_APPOINTMENTS: snapshot.appointments.total_appointments,
        EvidenceKeys.COMPLETED_APPOINTMENTS: snapshot.appointments.completed_appointments,
        EvidenceKeys.MISSED_APPOINTMENTS: snapshot.appointments.no_show_appointments,
    }


def visit_recency(snapshot: PatientSnapshot, today: date) -> FactorResult:
    days = days_since(snapshot.visits.last_visit_date, today)

    visit_count = snapshot.visits.visit_count
    frequency = 0.0
    if visit_count > 0:
        months_enrolled = 1
        if snapshot.patient_created_at is not None:
            months_enrolled = days_since(snapshot.patient_created_at, today) // 30
        frequency = round_one(visit_count / max(1, months_enrolled))

    return FactorResult("visit_recency", ladder_above(days, VISIT_RECENCY_LADDER), {
        EvidenceKeys.DAYS_SINCE_LAST_VISIT: days,
        EvidenceKeys.VISIT_FREQUENCY: frequency,
    })


def adherence_level(snapshot: PatientSnapshot, today: date) -> FactorResult:
    adherence = snapshot.adherence
    average = adherence.avg_adherence or 0
    # 窗口内没有任何依从性记录时不计分，只记录 0
    points = ladder_below(average, ADHERENCE_LADDER) if adherence.adherence_records > 0 else 0
    return FactorResult("adherence_level", points, {
        EvidenceKeys.MEDICATION_ADHERENCE: round_one(average),
        EvidenceKeys.ART_MISSED_DOSES: snapshot.art.total_missed_doses,
    })


def missed_dose_rate(snapshot: PatientSnapshot, today: date) -> FactorResult:
    rate = percent(snapshot.adherence.missed_doses, snapshot.adherence.adherence_records)
    return FactorResult("missed_dose_rate", ladder_above(rate, MISSED_DOSE_LADDER), {
        EvidenceKeys.MISSED_DOSE_RATE: round_one(rate),
    })


def appointment_no_show(snapshot: PatientSnapshot, today: date) -> FactorResult:
    appts = snapshot.appointments
    rate = percent(appts.no_show_appointments, appts.total_appointments)
    return FactorResult("appointment_no_show", ladder_above(rate, NO_SHOW_LADDER), {
        EvidenceKeys.APPOINTMENT_MISSED_RATE: round_one(rate),
    })


def low_attendance(snapshot: PatientSnapshot, today: date) -> FactorResult:
    appts = snapshot.appointments
    rate = percent(appts.completed_appointments, appts.total_appointments)
    points = 0
    if rate < LOW_ATTENDANCE_RATE and appts.total_appointments > LOW_ATTENDANCE_MIN_APPOINTMENTS:
        points = LOW_ATTENDANCE_POINTS
    return FactorResult("low_attendance", points, {
        EvidenceKeys.APPOINTMENT_ATTENDANCE_RATE: round_one(rate),
    })


def lab_recency(snapshot: PatientSnapshot, today: date) -> FactorResult:
    latest = snapshot.labs[0].reported_at if snapshot.labs else None
    days = days_since(latest, today)
    return FactorResult("lab_recency", ladder_above(days, LAB_RECENCY_LADDER), {
        EvidenceKeys.DAYS_SINCE_LAST_LAB: days,
        EvidenceKeys.CRITICAL_LABS_COUNT: sum(1 for lab in snapshot.labs if lab.is_critical),
    })


def cd4_level(snapshot: PatientSnapshot, today: date) -> FactorResult:
    results = [lab for lab in snapshot.labs if is_cd4(lab)]
    if not results:
        return FactorResult("cd4_level")

    latest = parse_lab_value(results[0].result_value)
    if len(results) == 1:
        return FactorResult("cd4_level", ladder_below(latest, CD4_SINGLE_LADDER), {
            EvidenceKeys.CD4_TREND: {"latest": latest, "previous": None},
        })

    previous = parse_lab_value(results[1].result_value)
    change = latest - previous
    change_percent = (change * 100) / previous if previous > 0 else 0.0
    # 极端值相除可能溢出成 inf，按无变化处理
    if not math.isfinite(change_percent):
        change_percent = 0.0
    points = ladder_below(latest, CD4_LADDER) + ladder_below(change_percent, CD4_DECLINE_LADDER)
    return FactorResult("cd4_level", points, {
        EvidenceKeys.CD4_TREND: {
            "latest": latest,
            "previous": previous,
            "change": change,
            "changePercent": round_one(change_percent),
        },
    })


def viral_load(snapshot: PatientSnapshot, today: date) -> FactorResult:
    results = [lab for lab in snapshot.labs if is_viral_load(lab)]
    if not results:
        return FactorResult("viral_load")

    text = str(results[0].result_value or "").lower()
    if "undetectable" in text or "<" in text:
        return FactorResult("viral_load", 0, {
            EvidenceKeys.VIRAL_LOAD: {"value": "Undetectable", "numeric": 0},
        })

    value = parse_lab_value(results[0].result_value)
    return FactorResult("viral_load", ladder_above(value, VIRAL_LOAD_LADDER), {
        EvidenceKeys.VIRAL_LOAD: {"value": value, "numeric": value},
    })


def emergency_visit_rate(snapshot: PatientSnapshot, today: date) -> FactorResult:
    visits = snapshot.visits
    if visits.visit_count == 0:
        return FactorResult("emergency_visit_rate")
    rate = percent(visits.emergency_count, visits.visit_count)
    return FactorResult("emergency_visit_rate", ladder_above(rate, EMERGENCY_RATE_LADDER), {
        EvidenceKeys.EMERGENCY_VISIT_RATE: round_one(rate),
    })


def prescription_cancellation_rate(snapshot: PatientSnapshot, today: date) -> FactorResult:
    rx = snapshot.prescriptions
    if rx.prescription_count == 0:
        return FactorResult("prescription_cancellation_rate")
    rate = percent(rx.cancelled_prescriptions, rx.prescription_count)
    return FactorResult(
        "prescription_cancellation_rate", ladder_above(rate, CANCELLED_RATE_LADDER), {
            EvidenceKeys.PRESCRIPTION_CANCELLED_RATE: round_one(rate),
        }
    )


def no_active_prescriptions(snapshot: PatientSnapshot, today: date) -> FactorResult:
    flagged = snapshot.prescriptions.active_prescriptions == 0 and snapshot.visits.visit_count > 0
    return FactorResult(
        "no_active_prescriptions",
        NO_ACTIVE_PRESCRIPTION_POINTS if flagged else 0,
        {EvidenceKeys.NO_ACTIVE_PRESCRIPTIONS: flagged},
    )


# 评估顺序 = 证据表里 key 的顺序
FACTORS = (
    visit_recency,
    adherence_level,
    missed_dose_rate,
    appointment_no_show,
    low_attendance,
    lab_recency,
    cd4_level,
    viral_load,
    emergency_visit_rate,
    prescription_cancellation_rate,
    no_active_prescriptions,
)


def evaluate(snapshot: PatientSnapshot, today: date | None = None) -> list[FactorResult]:
    today = today or timezone.localdate()
    return [factor(snapshot, today) for factor in FACTORS]
