"""Celery application for upload workers."""

from celery import Celery

from asset_ingest.config import settings
from asset_ingest.worker import configure_logging

celery_app = Celery(
    "asset_ingest",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["asset_ingest.tasks.process_upload"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # At-least-once: ack after processing, redeliver if the worker dies
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.worker_concurrency,
    worker_hijack_root_logger=False,
    # Soft limit raises inside the task so the job is recorded as ERROR;
    # the hard limit and the broker visibility timeout stay above it
    task_soft_time_limit=int(settings.lease_timeout_seconds),
    task_time_limit=int(settings.lease_timeout_seconds) + 30,
    broker_transport_options={"visibility_timeout": int(settings.lease_timeout_seconds) + 60},
)

configure_logging(settings.log_level)
