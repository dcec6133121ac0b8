"""Celery application for the catalog sync worker."""

from datetime import timedelta

from celery import Celery

from catalog_sync_service.config import get_settings
from catalog_sync_service.log_config import configure_logging

settings = get_settings()
configure_logging()

app = Celery(
    "sync_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=["sync_worker.tasks.sync_catalog"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.job_max_runtime_seconds,
    task_soft_time_limit=max(settings.job_max_runtime_seconds - 60, 60),
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="sync",
    task_routes={
        "sync_worker.tasks.*": {"queue": "sync"},
    },
)

app.conf.beat_schedule = {
    "sync-all-tenants": {
        "task": "sync_worker.tasks.sync_catalog.sync_all_tenants",
        "schedule": timedelta(minutes=settings.sync_catalog_interval_minutes),
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "sync"])


if __name__ == "__main__":
    run()
