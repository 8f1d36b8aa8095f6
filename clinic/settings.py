"""
===============================================================================
Django 项目配置 (Settings)
===============================================================================

【DRF 配置说明】
--------------
REST_FRAMEWORK 中的 EXCEPTION_HANDLER 指向 arpa.exceptions.custom_exception_handler，
引擎抛出的 PatientNotFound / DataSourceError / PersistenceError 都在那里统一转成 JSON。

【ARPA 配置说明】
---------------
ARPA 字典集中放引擎的可调参数（窗口天数、历史条数上限、高风险阈值）。
评分阶梯本身不在这里：它是固定的、可审计的规则集，写死在 arpa/risk_factors.py。
"""

import os
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-secret-key-change-in-production')
DEBUG = os.getenv('DJANGO_DEBUG', 'true').lower() == 'true'
ALLOWED_HOSTS = ['*']

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    # Django Rest Framework：@api_view, Response, exception_handler
    'rest_framework',
    'arpa',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'clinic.urls'

WSGI_APPLICATION = 'clinic.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('POSTGRES_DB', 'clinic'),
        'USER': os.getenv('POSTGRES_USER', 'postgres'),
        'PASSWORD': os.getenv('POSTGRES_PASSWORD', 'postgres'),
        'HOST': os.getenv('POSTGRES_HOST', 'db'),
        'PORT': os.getenv('POSTGRES_PORT', '5432'),
        # 查询级超时：慢查询让整个计算失败，而不是无限阻塞
        'OPTIONS': {
            'options': f"-c statement_timeout={os.getenv('POSTGRES_STATEMENT_TIMEOUT_MS', '30000')}",
        },
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ========== Celery 配置 ==========
CELERY_BROKER_URL = f"redis://{os.getenv('REDIS_HOST', 'redis')}:{os.getenv('REDIS_PORT', '6379')}/1"
CELERY_RESULT_BACKEND = f"redis://{os.getenv('REDIS_HOST', 'redis')}:{os.getenv('REDIS_PORT', '6379')}/2"
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TIMEZONE = TIME_ZONE
CELERY_RESULT_EXPIRES = 3600

# 每晚 02:00 全量重算活跃患者（外部定时任务，不是引擎自己调度）
CELERY_BEAT_SCHEDULE = {
    'arpa-nightly-recalculation': {
        'task': 'arpa.tasks.recalculate_active_patients',
        'schedule': crontab(hour=2, minute=0),
    },
}


# ============================================================================
# ARPA 引擎参数
# ============================================================================

ARPA = {
    # 服药依从性只看最近 90 天
    'ADHERENCE_WINDOW_DAYS': int(os.getenv('ARPA_ADHERENCE_WINDOW_DAYS', '90')),
    # 只分析最近 20 条化验结果
    'LAB_RESULT_LIMIT': int(os.getenv('ARPA_LAB_RESULT_LIMIT', '20')),
    'HISTORY_DEFAULT_LIMIT': 10,
    'HISTORY_MAX_LIMIT': 100,
    # MEDIUM-HIGH 的下界
    'HIGH_RISK_THRESHOLD': float(os.getenv('ARPA_HIGH_RISK_THRESHOLD', '50')),
    'HIGH_RISK_LIMIT': 100,
}


# ============================================================================
# 日志配置
# ============================================================================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'arpa': {
            'handlers': ['console'],
            'level': os.getenv('ARPA_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'celery': {
            'handlers': ['console'],
            'level': 'INFO',
        },
    },
}


# ============================================================================
# Django Rest Framework 配置
# ============================================================================

REST_FRAMEWORK = {
    # 整个错误处理系统的「入口点」
    'EXCEPTION_HANDLER': 'arpa.exceptions.custom_exception_handler',

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],

    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
        'rest_framework.parsers.FormParser',
    ],

    # 认证/授权属于外部系统，这里不做
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'UNAUTHENTICATED_USER': None,
}
