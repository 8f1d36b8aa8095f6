"""
======================================
Celery 自动加载
======================================

Django 启动时执行这个 __init__.py，顺带加载 Celery 应用，
这样 arpa/tasks.py 里的 @shared_task 才能绑定到正确的 app。
"""

from .celery import app as celery_app

__all__ = ('celery_app',)
