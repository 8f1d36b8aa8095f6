"""
======================================
数据聚合层 (Domain Data Aggregator)
======================================

给定患者 ID，读六个数据域，拼成一个 PatientSnapshot。

规则：
1. 先查患者是否存在；不存在 → PatientNotFound，其他数据域一个都不查
2. 任一数据域读失败（DatabaseError）→ DataSourceError(domain)，不返回半截快照
3. 快照只有数据，没有评分逻辑；评分在 risk_factors.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from django.db import DatabaseError
from django.utils import timezone

from .exceptions import DataSourceError, PatientNotFound
from .sources import (
    AdherenceStats,
    AppointmentSource,
    AppointmentStats,
    ARTSource,
    ARTStats,
    LabEntry,
    LabSource,
    MedicationSource,
    PatientSource,
    PrescriptionStats,
    VisitSource,
    VisitStats,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatientSnapshot:
    """一次计算所用的全部输入（只读）"""
    patient_id: int
    patient_created_at: datetime | None = None
    visits: VisitStats = field(default_factory=VisitStats)
    prescriptions: PrescriptionStats = field(default_factory=PrescriptionStats)
    adherence: AdherenceStats = field(default_factory=AdherenceStats)
    art: ARTStats = field(default_factory=ARTStats)
    labs: list[LabEntry] = field(default_factory=list)
    appointments: AppointmentStats = field(default_factory=AppointmentStats)


class DomainDataAggregator:
    """
    组合六个只读 source

    每个 source 都可以单独替换：
        DomainDataAggregator(labs=FakeLabSource())
    """

    def __init__(self, patients=None, visits=None, medications=None,
                 art=None, labs=None, appointments=None):
        self.patients = patients or PatientSource()
        self.visits = visits or VisitSource()
        self.medications = medications or MedicationSource()
        self.art = art or ARTSource()
        self.labs = labs or LabSource()
        self.appointments = appointments or AppointmentSource()

    def _read(self, source, query, *args):
        try:
            return query(*args)
        except DatabaseError as exc:
            logger.error("Read from %s failed: %s", source.domain, exc)
            raise DataSourceError(
                source.domain, f"Failed to read {source.domain} data"
            ) from exc

    def aggregate(self, patient_id, today: date | None = None) -> PatientSnapshot:
        today = today or timezone.localdate()

        # 1. 患者存在性检查必须最先执行
        patient = self._read(self.patients, self.patients.get_patient, patient_id)
        if patient is None:
            raise PatientNotFound(patient_id)

        # 2. 其余五个数据域
        snapshot = PatientSnapshot(
            patient_id=patient.patient_id,
            patient_created_at=patient.created_at,
            visits=self._read(self.visits, self.visits.visit_stats, patient_id),
            prescriptions=self._read(
                self.medications, self.medications.prescription_stats, patient_id
            ),
            adherence=self._read(
                self.medications, self.medications.adherence_stats, patient_id, today
            ),
            art=self._read(self.art, self.art.art_stats, patient_id),
            labs=self._read(self.labs, self.labs.recent_results, patient_id),
            appointments=self._read(
                self.appointments, self.appointments.appointment_stats, patient_id
            ),
        )

        logger.debug(
            "Aggregated patient %s: %d visits, %d labs, %d appointments",
            patient_id, snapshot.visits.visit_count, len(snapshot.labs),
            snapshot.appointments.total_appointments,
        )
        return snapshot
