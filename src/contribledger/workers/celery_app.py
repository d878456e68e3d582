import logging

from celery import Celery

from contribledger.config import settings

logging.basicConfig(level=settings.log_level)

celery_app = Celery(
    "contribledger",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["contribledger.workers.tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
