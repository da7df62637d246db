"""
Pizzeria — Celery application

Redis is the broker. Email tasks go to their own queue so a slow email API
never holds up other work; their results are not read back by the API.
Run a worker with:  celery -A pizzeria.tasks.celery_app worker -Q notifications
"""
from celery import Celery

from pizzeria.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "pizzeria",
    broker=settings.celery_broker_url,
    include=["pizzeria.tasks.notification_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    task_default_queue=settings.CELERY_NOTIFICATIONS_QUEUE,
    task_routes={"send_pending_confirmation": {"queue": settings.CELERY_NOTIFICATIONS_QUEUE}},
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # two email calls plus the database round trips
    task_time_limit=int(settings.HTTP_TIMEOUT_SECONDS * 4) + 10,
)
