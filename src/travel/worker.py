"""Celery application delivering travel notifications in the background."""

from celery import Celery

from .config import settings


celery_app = Celery(
    "travel",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["travel.tasks"],
)

celery_app.conf.task_always_eager = settings.task_always_eager
celery_app.conf.task_ignore_result = True
celery_app.conf.timezone = "UTC"
