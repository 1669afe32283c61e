"""Celery application configuration."""

from celery import Celery, signals

from bookshelf.config import get_settings
from bookshelf.logging_config import setup_logging

settings = get_settings()

celery = Celery(
    "bookshelf",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["bookshelf.tasks.recommendations"],
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Generation runs append rows, so a redelivered message would duplicate them.
    task_acks_late=False,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    task_publish_retry_policy={
        "max_retries": 2,
        "interval_start": 0,
        "interval_step": 0.5,
        "interval_max": 1,
    },
)


@signals.setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    setup_logging(settings.log_level, settings.log_format)
