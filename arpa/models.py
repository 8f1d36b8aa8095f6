from django.db import models
from django.utils import timezone


class Patient(models.Model):
    """病人表：登记信息 + ARPA 投影字段（current_risk_score / last_calculated_at）"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('transferred', 'Transferred'),
        ('deceased', 'Deceased'),
    ]

    uic = models.CharField(max_length=32, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    created_at = models.DateTimeField(default=timezone.now)

    # 投影：只由 arpa.recorder 在同一个事务里和 RiskScoreRecord 一起写
    current_risk_score = models.FloatField(null=True, blank=True)
    last_calculated_at = models.DateField(null=True, blank=True)

    def __str__(self):
        return f"{self.first_name} {self.last_name} (UIC: {self.uic})"


class ClinicalVisit(models.Model):
    """就诊记录：每次就诊一行"""
    VISIT_TYPES = [
        ('ordinary', 'Ordinary'),
        ('follow_up', 'Follow-up'),
        ('emergency', 'Emergency'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='visits')
    visit_date = models.DateField()
    visit_type = models.CharField(max_length=20, choices=VISIT_TYPES, default='ordinary')

    def __str__(self):
        return f"Visit #{self.id} ({self.visit_type}) on {self.visit_date}"


class Prescription(models.Model):
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    medication_name = models.CharField(max_length=200)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    created_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return f"Prescription #{self.id}: {self.medication_name} ({self.status})"


class MedicationAdherenceRecord(models.Model):
    """每次服药的依从性记录"""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='adherence_records')
    prescription = models.ForeignKey(
        Prescription, on_delete=models.SET_NULL, null=True, blank=True, related_name='adherence_records'
    )
    adherence_date = models.DateField()
    adherence_percentage = models.FloatField()
    taken = models.BooleanField(default=True)


class ARTRegimen(models.Model):
    """抗逆转录病毒治疗方案"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('stopped', 'Stopped'),
        ('completed', 'Completed'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='art_regimens')
    regimen_name = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    start_date = models.DateField(default=timezone.localdate)


class ARTRegimenDrug(models.Model):
    regimen = models.ForeignKey(ARTRegimen, on_delete=models.CASCADE, related_name='drugs')
    drug_name = models.CharField(max_length=100)
    missed_doses = models.PositiveIntegerField(default=0)


class LabResult(models.Model):
    """化验结果：result_value 可能是数字，也可能是 "Undetectable" / "<20" 之类的文本"""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='lab_results')
    test_code = models.CharField(max_length=50, blank=True)
    test_name = models.CharField(max_length=200, blank=True)
    result_value = models.CharField(max_length=100, blank=True)
    unit = models.CharField(max_length=50, blank=True)
    reported_at = models.DateTimeField(null=True, blank=True)
    is_critical = models.BooleanField(default=False)

    def __str__(self):
        return f"Lab #{self.id}: {self.test_code or self.test_name} = {self.result_value}"


class Appointment(models.Model):
    STATUS_CHOICES = [
        ('scheduled', 'Scheduled'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('no_show', 'No-show'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    scheduled_start = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='scheduled')

    def __str__(self):
        return f"Appointment #{self.id} ({self.status}) at {self.scheduled_start}"


class RiskScoreRecord(models.Model):
    """
    ARPA 评分记录：只追加，创建后不再修改或删除

    「最新」的排序：calculated_on 降序，同一天按 id 降序（后插入的赢）
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='risk_scores')
    score = models.FloatField()
    risk_factors = models.JSONField(default=dict)
    factors_version = models.PositiveSmallIntegerField(default=1)
    recommendations = models.TextField()
    calculated_by = models.CharField(max_length=64, null=True, blank=True)  # None = 自动计算
    calculated_on = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-calculated_on', '-id']
        indexes = [
            models.Index(fields=['patient', '-calculated_on', '-id'], name='arpa_score_recent_idx'),
        ]

    @property
    def risk_level(self):
        # 读路径也走同一个分级函数，保证存储的分数永远得到同样的等级
        from .scoring import classify
        return classify(self.score).level

    def __str__(self):
        return f"RiskScore #{self.id}: {self.score} ({self.risk_level}) for patient #{self.patient_id}"


class AuditLogEntry(models.Model):
    """审计日志：由 arpa.audit 写入，写失败不影响评分"""
    user_id = models.CharField(max_length=64, null=True, blank=True)
    user_name = models.CharField(max_length=200)
    user_role = models.CharField(max_length=50)
    action = models.CharField(max_length=20)
    module = models.CharField(max_length=100)
    entity_type = models.CharField(max_length=50, blank=True)
    entity_id = models.CharField(max_length=64, blank=True)
    record_id = models.CharField(max_length=64, blank=True)
    old_value = models.JSONField(null=True, blank=True)
    new_value = models.JSONField(null=True, blank=True)
    change_summary = models.TextField(blank=True)
    user_agent = models.CharField(max_length=200, blank=True)
    status = models.CharField(max_length=20, default='success')
    error_message = models.TextField(blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Audit #{self.id}: {self.action} {self.module} ({self.status})"
