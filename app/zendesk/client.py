"""Zendesk Support REST client (tickets, search, audits)."""

from typing import Any, Dict, List, Optional
import httpx
import structlog

from app.config import Settings, settings as default_settings
from app.models import Ticket, TicketAudit
from app.monitoring.metrics import zendesk_requests_total

logger = structlog.get_logger(__name__)

MAX_AUDIT_PAGES = 10


class ZendeskAPIError(Exception):
    """Base exception for Zendesk API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ZendeskAuthError(ZendeskAPIError):
    """Authentication/authorization error (401, 403)."""
    pass


class ZendeskRateLimitError(ZendeskAPIError):
    """Rate limit exceeded (429)."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ZendeskServerError(ZendeskAPIError):
    """Server error (5xx)."""
    pass


class ZendeskTransportError(ZendeskAPIError):
    """Network failure or timeout before a response was received."""
    pass


TRANSIENT_ZENDESK_ERRORS = (ZendeskServerError, ZendeskRateLimitError, ZendeskTransportError)


class ZendeskClient:
    """Client for the Zendesk Support API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        email: Optional[str] = None,
        api_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Zendesk client.

        Args:
            settings: Application settings
            email: Agent email (defaults to settings)
            api_token: API token (defaults to settings)
            transport: Optional httpx transport (tests)
        """
        self.settings = settings or default_settings
        self.base_url = self.settings.zendesk_base_url
        self.email = email or self.settings.zendesk_email
        self.api_token = api_token or self.settings.zendesk_api_token
        self.timeout = self.settings.http_timeout_seconds
        self._transport = transport

    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(f"{self.email}/token", self.api_token or "")

    async def _make_request(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Make authenticated Zendesk API request.

        Args:
            method: HTTP method
            path: API path relative to /api/v2 (or an absolute next-page URL)
            operation: Operation name for logs and metrics
            params: Query parameters
            data: JSON body
            headers: Extra headers

        Returns:
            Response JSON

        Raises:
            ZendeskAPIError: On API errors
        """
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        request_headers = {"Accept": "application/json", "Content-Type": "application/json"}
        request_headers.update(headers or {})

        logger.debug("making_zendesk_request", method=method, operation=operation, path=path, params=params)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=request_headers,
                    params=params,
                    json=data,
                    auth=self._auth(),
                )
        except httpx.TimeoutException as e:
            zendesk_requests_total.labels(operation=operation, status="timeout").inc()
            logger.warning("zendesk_timeout", operation=operation, error=str(e))
            raise ZendeskTransportError(f"Timeout during {operation}: {e}")
        except httpx.TransportError as e:
            zendesk_requests_total.labels(operation=operation, status="transport_error").inc()
            logger.warning("zendesk_transport_error", operation=operation, error=str(e))
            raise ZendeskTransportError(f"Transport error during {operation}: {e}")

        zendesk_requests_total.labels(operation=operation, status=str(response.status_code)).inc()

        # Handle errors
        if response.status_code in (401, 403):
            logger.error("zendesk_auth_error", operation=operation, status=response.status_code)
            raise ZendeskAuthError(f"Authentication failed: {response.status_code}", response.status_code)

        elif response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            retry_after_int = int(retry_after) if retry_after and retry_after.isdigit() else None
            logger.warning("zendesk_rate_limit", operation=operation, retry_after=retry_after)
            raise ZendeskRateLimitError(f"Rate limit exceeded. Retry after: {retry_after}", retry_after=retry_after_int)

        elif response.status_code >= 500:
            logger.error("zendesk_server_error", operation=operation, status=response.status_code, response=response.text[:500])
            raise ZendeskServerError(f"Server error: {response.status_code}", response.status_code)

        elif response.status_code not in (200, 201):
            logger.error("zendesk_request_failed", operation=operation, status=response.status_code, response=response.text[:500])
            raise ZendeskAPIError(f"{operation} failed: {response.status_code}", response.status_code)

        return response.json() if response.content else {}

    async def search_tickets(self, query: str, per_page: int = 25) -> List[Ticket]:
        """
        Search tickets with the Zendesk search syntax.

        Args:
            query: Query without the "type:ticket" prefix
            per_page: Page size

        Returns:
            Matching tickets (first page)
        """
        response = await self._make_request(
            "GET",
            "/search.json",
            operation="search_tickets",
            params={"query": f"type:ticket {query}", "per_page": per_page},
        )
        return [
            Ticket.model_validate(result)
            for result in response.get("results", [])
            if result.get("result_type", "ticket") == "ticket" and result.get("id") is not None
        ]

    async def get_tickets_by_external_ids(self, external_ids: List[str]) -> List[Ticket]:
        """List tickets whose external_id equals one of the given keys."""
        tickets: List[Ticket] = []
        for external_id in external_ids:
            response = await self._make_request(
                "GET",
                "/tickets.json",
                operation="list_tickets_by_external_id",
                params={"external_id": external_id},
            )
            tickets.extend(Ticket.model_validate(t) for t in response.get("tickets", []))
        return tickets

    async def create_ticket(self, fields: Dict[str, Any], idempotency_key: Optional[str] = None) -> Ticket:
        """
        Create a ticket.

        Args:
            fields: Ticket body
            idempotency_key: Sent as the Idempotency-Key header

        Returns:
            Created ticket
        """
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        response = await self._make_request(
            "POST",
            "/tickets.json",
            operation="create_ticket",
            data={"ticket": fields},
            headers=headers,
        )
        ticket = response.get("ticket") or {}
        if not ticket.get("id"):
            raise ZendeskAPIError("Ticket creation returned no id")
        return Ticket.model_validate(ticket)

    async def update_ticket(self, ticket_id: int, fields: Dict[str, Any]) -> Ticket:
        """Update a ticket (fields and/or an appended comment)."""
        response = await self._make_request(
            "PUT",
            f"/tickets/{ticket_id}.json",
            operation="update_ticket",
            data={"ticket": fields},
        )
        return Ticket.model_validate(response.get("ticket") or {"id": ticket_id})

    async def list_ticket_audits(self, ticket_id: int) -> List[TicketAudit]:
        """List a ticket's audits in chronological order, following pagination."""
        audits: List[TicketAudit] = []
        path: Optional[str] = f"/tickets/{ticket_id}/audits.json"
        pages = 0

        while path and pages < MAX_AUDIT_PAGES:
            response = await self._make_request("GET", path, operation="list_ticket_audits")
            audits.extend(TicketAudit.model_validate(a) for a in response.get("audits", []))
            path = response.get("next_page")
            pages += 1

        return audits
