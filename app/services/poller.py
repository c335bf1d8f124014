"""Scheduled poller that backfills recent Chatmeter reviews into Zendesk."""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import structlog

from app.config import Settings
from app.fetchers.chatmeter_fetcher import ChatmeterAPIError, ChatmeterFetcher, TRANSIENT_CHATMETER_ERRORS
from app.models import BatchResult, CanonicalReview, SyncAction, SyncMode
from app.monitoring.metrics import poll_batch_duration_seconds, poll_batches_total
from app.normalizers.fields import extract_text
from app.normalizers.review_normalizer import MissingReviewIdError
from app.retry import retry_with_backoff
from app.services.review_sync import ReviewSyncService

logger = structlog.get_logger(__name__)

# Upper bound on reviews per batch
MAX_BATCH_ITEMS = 50

_OUTCOMES = {
    SyncAction.CREATED: "created",
    SyncAction.UPDATED: "posted",
    SyncAction.FIXED: "posted",
    SyncAction.SKIPPED: "skipped",
    SyncAction.FAILED: "errors",
}


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ReviewPoller:
    """Lists recently updated reviews and runs each through the sync pipeline."""

    def __init__(self, fetcher: ChatmeterFetcher, sync_service: ReviewSyncService, settings: Settings):
        self.fetcher = fetcher
        self.sync_service = sync_service
        self.settings = settings

    async def _fetch_detail(self, review_id: str) -> Dict[str, Any]:
        return await retry_with_backoff(
            self.fetcher.get_review_detail,
            review_id,
            retry_on=TRANSIENT_CHATMETER_ERRORS,
        )

    def _needs_detail(self, review: CanonicalReview) -> bool:
        detail_providers = {p.upper() for p in self.settings.poller_detail_providers}
        return not review.has_text or review.provider.upper() in detail_providers

    async def _backfill_text(self, review: CanonicalReview) -> CanonicalReview:
        """Replace the review text with the detail endpoint's text when it has any."""
        try:
            detail = await self._fetch_detail(review.id)
        except ChatmeterAPIError as e:
            logger.warning("review_detail_unavailable", review_id=review.id, error=str(e))
            return review

        text = extract_text(detail, strict=True)
        if not text:
            return review
        return review.model_copy(update={"text": text})

    async def _process_item(
        self, item: Dict[str, Any], mode: SyncMode, dry_run: bool, from_detail: bool = False
    ) -> str:
        """
        Run one listed review through the pipeline.

        Items that already came from the detail endpoint are not backfilled again.

        Returns:
            Counter name: created, posted, skipped or errors
        """
        try:
            review = self.sync_service.normalizer.normalize(item, strict_text=True)
        except MissingReviewIdError:
            logger.warning("poll_item_skipped", reason="missing_review_id")
            return "skipped"

        try:
            if not from_detail and self._needs_detail(review):
                review = await self._backfill_text(review)

            if dry_run:
                logger.info("poll_item_dry_run", review_id=review.id, provider=review.provider)
                return "posted"

            result = await self.sync_service.sync_review(review, mode=mode)
        except Exception:
            # One bad review must not abort the batch
            logger.exception("poll_item_failed", review_id=review.id)
            return "errors"

        return _OUTCOMES.get(result.action, "errors")

    async def poll(
        self,
        minutes: Optional[int] = None,
        limit: Optional[int] = None,
        review_id: Optional[str] = None,
        dry_run: bool = False,
        mode: SyncMode = SyncMode.UPSERT,
        now: Optional[datetime] = None,
        scope: Optional[Dict[str, str]] = None,
    ) -> BatchResult:
        """
        Poll Chatmeter for recent reviews and sync each one.

        Args:
            minutes: Lookback window (defaults to settings)
            limit: Maximum reviews to process, capped at 50
            review_id: Process only this review (fetched by id)
            dry_run: Count what would be synced without writing to Zendesk
            mode: Sync mode passed to the pipeline
            now: Clock value (defaults to the current UTC time)
            scope: clientId/accountId/groupId overrides for the listing call

        Returns:
            Batch result with counters
        """
        started = time.monotonic()
        now = now or datetime.now(timezone.utc)
        lookback = minutes if minutes and minutes > 0 else self.settings.poller_lookback_minutes
        limit = max(1, min(limit or self.settings.poller_max_items, MAX_BATCH_ITEMS))
        since = _iso(now - timedelta(minutes=lookback))

        result = BatchResult(ok=True, since=since, mode=mode, dry_run=dry_run)
        log = logger.bind(since=since, mode=mode.value, dry_run=dry_run)

        try:
            if review_id:
                detail = await self._fetch_detail(review_id)
                items = [detail] if detail else []
            else:
                items = await retry_with_backoff(
                    self.fetcher.list_reviews_since,
                    since,
                    limit=limit,
                    until_iso=_iso(now),
                    scope=scope,
                    retry_on=TRANSIENT_CHATMETER_ERRORS,
                )
        except ChatmeterAPIError as e:
            log.error("poll_list_failed", error=str(e), status=e.status_code)
            poll_batches_total.labels(status="failed").inc()
            poll_batch_duration_seconds.observe(time.monotonic() - started)
            return result.model_copy(update={"ok": False, "reason": "chatmeter_list_failed"})

        items = items[:limit]
        semaphore = asyncio.Semaphore(max(1, self.settings.poller_concurrency))

        async def run(item: Dict[str, Any]) -> str:
            async with semaphore:
                return await self._process_item(item, mode, dry_run, from_detail=bool(review_id))

        outcomes = await asyncio.gather(*(run(item) for item in items))

        counts = {"created": 0, "posted": 0, "skipped": 0, "errors": 0}
        for outcome in outcomes:
            counts[outcome] += 1

        result = result.model_copy(update={"checked": len(items), **counts})

        poll_batches_total.labels(status="ok" if not result.errors else "partial").inc()
        poll_batch_duration_seconds.observe(time.monotonic() - started)
        log.info("poll_batch_completed", **result.model_dump(include={"checked", "created", "posted", "skipped", "errors"}))
        return result
