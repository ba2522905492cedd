"""Celery tasks for keeping temporary upload storage bounded."""

import logging

from .storage import DiskStorage
from .worker import celery_app, settings

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def purge_stale_uploads(self) -> int:
    """Delete temporary uploads that were never persisted nor discarded.

    Returns the number of files removed.
    """
    storage = DiskStorage(settings.tmp_folder, settings.uploads_folder)
    retention = settings.tmp_retention_minutes * 60
    logger.info("purging tmp files older than %ss from %s", retention, storage.tmp_folder)
    try:
        return storage.purge_tmp(retention)
    except OSError as exc:
        logger.exception("failed to purge temporary uploads")
        raise self.retry(exc=exc)
