"""
Celery application: broker and result backend from settings.
Generation chain links, email sends and the beat watchdogs live in serenade.workers.tasks.
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init

from serenade.core.config import settings
from serenade.core.logging import configure_logging

celery_app = Celery(
    "serenade",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "serenade.workers.tasks.generate_variant",
        "serenade.workers.tasks.send_email",
        "serenade.workers.tasks.watchdog_generation",
        "serenade.workers.tasks.reminders",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=600,
    result_expires=86400,
    beat_schedule={
        "reset-stale-generating": {
            "task": "serenade.workers.tasks.watchdog_generation.reset_stale_generating",
            "schedule": crontab(minute="*/5"),
        },
        "check-anniversaries": {
            "task": "serenade.workers.tasks.reminders.check_anniversaries",
            "schedule": crontab(hour=9, minute=0),
        },
    },
)

celery_app.conf.task_routes = {
    "serenade.workers.tasks.generate_variant.generate_variant_step": {"queue": "generation"},
    "serenade.workers.tasks.send_email.send_email": {"queue": "email"},
}


@worker_process_init.connect
def _init_worker_logging(**_kwargs) -> None:
    configure_logging()
