"""Review-to-ticket sync pipeline shared by the webhook and the poller."""

from datetime import datetime
from typing import Any, List, Optional
import structlog

from app.config import Settings
from app.models import CanonicalReview, SyncAction, SyncMode, SyncResult, TicketAudit
from app.monitoring.metrics import reviews_synced_total
from app.normalizers.review_normalizer import MissingReviewIdError, ReviewNormalizer
from app.retry import retry_with_backoff
from app.tickets.card import render_card
from app.tickets.dedupe import should_post, should_replace
from app.tickets.payloads import build_update_fields, external_key_for
from app.tickets.resolver import TicketResolver
from app.zendesk.client import TRANSIENT_ZENDESK_ERRORS, ZendeskAPIError, ZendeskAuthError, ZendeskClient

logger = structlog.get_logger(__name__)


class ReviewSyncService:
    """Turns review payloads into exactly one Zendesk ticket per review."""

    def __init__(self, client: ZendeskClient, normalizer: ReviewNormalizer, settings: Settings):
        """
        Initialize sync service.

        Args:
            client: Zendesk client
            normalizer: Review normalizer (carries the location table)
            settings: Application settings
        """
        self.client = client
        self.normalizer = normalizer
        self.settings = settings
        self.resolver = TicketResolver(client, settings)

    async def sync_payload(
        self,
        payload: Any,
        mode: SyncMode = SyncMode.UPSERT,
        strict_text: bool = False,
        now: Optional[datetime] = None,
    ) -> SyncResult:
        """
        Normalize a raw payload and sync it.

        Args:
            payload: Raw review payload
            mode: Upsert (guarded append) or fix (refresh in place)
            strict_text: Require named text fields to look like human text
            now: Clock value for payloads without a timestamp

        Returns:
            Sync result; a payload without a review id yields reason missing_review_id
        """
        try:
            review = self.normalizer.normalize(payload, now=now, strict_text=strict_text)
        except MissingReviewIdError:
            logger.warning("review_payload_rejected", reason="missing_review_id")
            reviews_synced_total.labels(action=SyncAction.FAILED.value, category="unknown").inc()
            return SyncResult(ok=False, action=SyncAction.FAILED, reason="missing_review_id")

        return await self.sync_review(review, mode=mode)

    async def _read_audits(self, ticket_id: int) -> List[TicketAudit]:
        # An unreadable history must not block the note
        try:
            return await retry_with_backoff(
                self.client.list_ticket_audits,
                ticket_id,
                retry_on=TRANSIENT_ZENDESK_ERRORS,
            )
        except ZendeskAPIError as e:
            logger.warning("ticket_audits_unavailable", ticket_id=ticket_id, error=str(e))
            return []

    async def sync_review(self, review: CanonicalReview, mode: SyncMode = SyncMode.UPSERT) -> SyncResult:
        """
        Sync one canonical review to its ticket.

        New reviews get a ticket with the card as its first private comment.
        For an existing ticket, upsert mode appends the card only when no
        identical comment exists. Fix mode refreshes subject, tags and custom
        fields and replaces the latest private note: the card is appended
        unless that note already has the same body. A duplicate sweep follows
        either path.

        Args:
            review: Canonical review
            mode: Sync mode

        Returns:
            Sync result
        """
        key = external_key_for(review, self.settings)
        body = render_card(review)
        log = logger.bind(review_id=review.id, external_id=key, mode=mode.value)
        stage = "create"

        try:
            resolved = await self.resolver.resolve(review, body)
            closed = list(resolved.duplicates_closed)
            ticket_id = resolved.ticket_id

            if resolved.is_new:
                result = SyncResult(
                    ok=True,
                    action=SyncAction.CREATED,
                    review_id=review.id,
                    ticket_id=ticket_id,
                    external_id=key,
                    duplicates_closed=closed,
                )
                return self._record(result, review, log)

            stage = "update"
            if mode == SyncMode.FIX:
                audits = await self._read_audits(ticket_id)
                replacement = body if should_replace(audits, body) else None
                fields = build_update_fields(review, self.settings, body=replacement, refresh_subject=True)
                action = SyncAction.FIXED
            elif should_post(await self._read_audits(ticket_id), body):
                fields = build_update_fields(review, self.settings, body=body)
                action = SyncAction.UPDATED
            else:
                fields = None
                action = SyncAction.SKIPPED

            if fields is not None:
                await retry_with_backoff(
                    self.client.update_ticket,
                    ticket_id,
                    fields,
                    retry_on=TRANSIENT_ZENDESK_ERRORS,
                )

            closed.extend(await self.resolver.sweep_duplicates(key, ticket_id))

        except ZendeskAuthError as e:
            log.error("review_sync_failed", stage=stage, reason="zendesk_auth_failed", error=str(e))
            return self._record(
                SyncResult(ok=False, action=SyncAction.FAILED, review_id=review.id, external_id=key, reason="zendesk_auth_failed"),
                review,
                log,
            )
        except ZendeskAPIError as e:
            reason = f"zendesk_{stage}_failed"
            log.error("review_sync_failed", stage=stage, reason=reason, status=e.status_code, error=str(e))
            return self._record(
                SyncResult(ok=False, action=SyncAction.FAILED, review_id=review.id, external_id=key, reason=reason),
                review,
                log,
            )

        result = SyncResult(
            ok=True,
            action=action,
            review_id=review.id,
            ticket_id=ticket_id,
            external_id=key,
            duplicates_closed=closed,
        )
        return self._record(result, review, log)

    def _record(self, result: SyncResult, review: CanonicalReview, log) -> SyncResult:
        reviews_synced_total.labels(action=result.action.value, category=review.category.value).inc()
        if result.ok:
            log.info("review_synced", action=result.action.value, ticket_id=result.ticket_id)
        return result
