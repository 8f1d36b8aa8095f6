"""
======================================
Celery 应用配置
======================================

ARPA 引擎本身从不自己调度计算。这里的 Celery 应用是「外部调用方」：
- worker 执行 arpa.tasks 中的计算任务
- beat 按 CELERY_BEAT_SCHEDULE 每晚触发全量重算

Broker 用 Redis，配置全部来自 Django settings（CELERY_ 前缀）。
"""

import os
from celery import Celery

# 必须在创建 Celery 应用之前设置
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'clinic.settings')

app = Celery('clinic')

# namespace='CELERY'：只读取 CELERY_ 开头的配置，例如 CELERY_BROKER_URL
app.config_from_object('django.conf:settings', namespace='CELERY')

# 扫描 INSTALLED_APPS 里的 tasks.py
app.autodiscover_tasks()
