"""Find-or-create resolution of the Zendesk ticket backing a review."""

from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
import structlog

from app.config import Settings
from app.models import CanonicalReview, ResolvedTicket, Ticket
from app.monitoring.metrics import duplicate_tickets_closed_total
from app.retry import retry_with_backoff
from app.tickets.payloads import build_create_fields, external_key_for, review_tag
from app.zendesk.client import TRANSIENT_ZENDESK_ERRORS, ZendeskAPIError, ZendeskClient

logger = structlog.get_logger(__name__)

DUPLICATE_TAG = "duplicate_closed"
SEARCH_PAGE_SIZE = 25


def choose_canonical(tickets: Sequence[Ticket]) -> Optional[Ticket]:
    """
    Pick the ticket that survives among tickets sharing one external key.

    Open tickets win over closed ones, then the oldest (lowest id) wins, so
    concurrent deliveries of the same review agree on the survivor.
    """
    if not tickets:
        return None
    return min(tickets, key=lambda t: (t.status == "closed", t.id))


class TicketResolver:
    """Resolves, creates and de-duplicates the ticket for a review."""

    def __init__(self, client: ZendeskClient, settings: Settings):
        self.client = client
        self.settings = settings

    async def _by_external_id(self, key: str) -> List[Ticket]:
        tickets = await self.client.get_tickets_by_external_ids([key])
        return [t for t in tickets if t.external_id in (None, key)]

    async def _search_external_id(self, key: str) -> List[Ticket]:
        return await self.client.search_tickets(f'external_id:"{key}"', per_page=SEARCH_PAGE_SIZE)

    async def _search_tag(self, tag: str) -> List[Ticket]:
        return await self.client.search_tickets(f"tags:{tag}", per_page=SEARCH_PAGE_SIZE)

    async def find_existing(self, review: CanonicalReview) -> Optional[int]:
        """
        Look up an existing ticket for a review.

        Tries the external-id listing, then an external-id search, then a
        search on the review tag. A failed step is logged and the next one is
        tried; if every step fails or finds nothing, None is returned.

        Args:
            review: Canonical review

        Returns:
            Ticket id, or None when no ticket exists
        """
        key = external_key_for(review, self.settings)
        tag = review_tag(review.id)

        steps: Tuple[Tuple[str, Callable[[], Awaitable[List[Ticket]]]], ...] = (
            ("external_id_lookup", lambda: self._by_external_id(key)),
            ("external_id_search", lambda: self._search_external_id(key)),
            ("tag_search", lambda: self._search_tag(tag)),
        )

        for step, lookup in steps:
            try:
                tickets = await lookup()
            except ZendeskAPIError as e:
                logger.warning("ticket_lookup_failed", step=step, external_id=key, error=str(e))
                continue

            ticket = choose_canonical(tickets)
            if ticket:
                logger.debug("ticket_found", step=step, external_id=key, ticket_id=ticket.id)
                return ticket.id

        return None

    async def create(self, review: CanonicalReview, body: str) -> Ticket:
        """
        Create the ticket for a review with the card as its private first comment.

        Transient failures are retried with the same Idempotency-Key, so a
        retry after a lost response cannot produce a second ticket.

        Raises:
            ZendeskAPIError: If creation fails
        """
        key = external_key_for(review, self.settings)
        fields = build_create_fields(review, body, self.settings)

        ticket = await retry_with_backoff(
            self.client.create_ticket,
            fields,
            idempotency_key=key,
            retry_on=TRANSIENT_ZENDESK_ERRORS,
        )
        logger.info("ticket_created", ticket_id=ticket.id, external_id=key, review_id=review.id)
        return ticket

    async def _find_matches(self, key: str) -> List[Ticket]:
        tickets = await self._search_external_id(key)
        return [t for t in tickets if t.external_id in (None, key)]

    async def sweep_duplicates(
        self,
        key: str,
        keep_id: int,
        matches: Optional[List[Ticket]] = None,
    ) -> List[int]:
        """
        Close every other open ticket carrying the same external key.

        Each closed ticket gets a private note pointing at the kept ticket and
        the duplicate_closed tag. Failures are logged and never raised.

        Args:
            key: External key
            keep_id: Ticket that survives
            matches: Already fetched matches (searched when omitted)

        Returns:
            Ids of the tickets that were closed
        """
        if matches is None:
            try:
                matches = await self._find_matches(key)
            except ZendeskAPIError as e:
                logger.warning("duplicate_sweep_search_failed", external_id=key, error=str(e))
                return []

        if len(matches) <= 1:
            return []

        closed: List[int] = []
        for ticket in matches:
            if ticket.id == keep_id or ticket.status == "closed":
                continue

            try:
                await self.client.update_ticket(
                    ticket.id,
                    {
                        "status": "closed",
                        "comment": {
                            "body": f"Auto-closed duplicate of #{keep_id} (same review).",
                            "public": False,
                        },
                        "additional_tags": [DUPLICATE_TAG],
                    },
                )
            except ZendeskAPIError as e:
                logger.warning("duplicate_close_failed", ticket_id=ticket.id, keep_id=keep_id, error=str(e))
                continue

            closed.append(ticket.id)
            duplicate_tickets_closed_total.inc()

        if closed:
            logger.info("duplicates_closed", external_id=key, keep_id=keep_id, closed=closed)
        return closed

    async def resolve(self, review: CanonicalReview, body: str) -> ResolvedTicket:
        """
        Find the review's ticket, creating it when none exists.

        After a create the external key is searched again. If a concurrent
        delivery created another ticket, the canonical one is kept and the
        rest are closed; when the kept ticket is not the one just created,
        the result is reported as not new so the caller posts the card there.

        Raises:
            ZendeskAPIError: If creation fails
        """
        existing = await self.find_existing(review)
        if existing is not None:
            return ResolvedTicket(ticket_id=existing, is_new=False)

        created = await self.create(review, body)
        key = external_key_for(review, self.settings)

        try:
            matches = await self._find_matches(key)
        except ZendeskAPIError as e:
            logger.warning("duplicate_sweep_search_failed", external_id=key, error=str(e))
            return ResolvedTicket(ticket_id=created.id, is_new=True)

        if all(t.id != created.id for t in matches):
            matches.append(created)
        keep = choose_canonical(matches)
        closed = await self.sweep_duplicates(key, keep.id, matches=matches)

        return ResolvedTicket(ticket_id=keep.id, is_new=keep.id == created.id, duplicates_closed=closed)
