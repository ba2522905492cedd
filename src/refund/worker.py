"""Celery application with a periodic task to purge stale temporary uploads."""

from celery import Celery

from .config import Settings

settings = Settings()

celery_app = Celery(
    "refund",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["refund.tasks"],
)

celery_app.conf.beat_schedule = {
    "purge-stale-uploads": {
        "task": "refund.tasks.purge_stale_uploads",
        "schedule": settings.purge_frequency,
    }
}
celery_app.conf.timezone = "UTC"
