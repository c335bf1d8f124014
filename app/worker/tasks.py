"""Celery tasks for polling and syncing reviews."""

import asyncio
from typing import Any, Dict, Optional
import structlog

from app.worker.celery_app import celery_app
from app.bootstrap import build_poller, build_sync_service
from app.locations import LocationDirectory
from app.models import SyncMode
from app.config import settings

logger = structlog.get_logger(__name__)

# Loaded once per worker process
locations = LocationDirectory.from_settings(settings)


@celery_app.task(bind=True, name="poll_reviews")
def poll_reviews(
    self,
    minutes: Optional[int] = None,
    limit: Optional[int] = None,
    review_id: Optional[str] = None,
    dry_run: bool = False,
    fix: bool = False,
) -> Dict[str, Any]:
    """
    Celery task running one poll batch.

    Args:
        minutes: Lookback window
        limit: Maximum reviews
        review_id: Single review to process
        dry_run: Count without writing
        fix: Use fix mode

    Returns:
        Batch result as a dict
    """
    mode = SyncMode.FIX if fix else SyncMode.UPSERT
    poller = build_poller(settings, sync_service=build_sync_service(settings, locations))

    try:
        result = asyncio.run(
            poller.poll(minutes=minutes, limit=limit, review_id=review_id, dry_run=dry_run, mode=mode)
        )
    except Exception as e:
        logger.error("task_failed", task="poll_reviews", error=str(e))
        raise

    return result.model_dump(mode="json")


@celery_app.task(name="sync_review_payload")
def sync_review_payload(payload: Dict[str, Any], fix: bool = False) -> Dict[str, Any]:
    """Celery task syncing a single raw review payload (webhook offload)."""
    mode = SyncMode.FIX if fix else SyncMode.UPSERT
    service = build_sync_service(settings, locations)

    try:
        result = asyncio.run(service.sync_payload(payload, mode=mode))
    except Exception as e:
        logger.error("task_failed", task="sync_review_payload", error=str(e))
        raise

    return result.model_dump(mode="json")
