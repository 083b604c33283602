"""
Worker package - Celery app and tasks
"""
from staff_verify.worker.celery_app import celery_app

__all__ = ["celery_app"]
