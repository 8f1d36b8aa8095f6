from django.urls import path
from . import views

urlpatterns = [
    # ===== 单个患者 =====
    path('patients/<int:patient_id>/', views.current_score, name='arpa_current_score'),
    path('patients/<int:patient_id>/history/', views.score_history, name='arpa_score_history'),
    path('patients/<int:patient_id>/calculate/', views.calculate_score, name='arpa_calculate'),

    # ===== 汇总 =====
    path('high-risk/', views.high_risk_patients, name='arpa_high_risk'),
]
