"""Pytest configuration and fixtures."""

import re
from itertools import count
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api.routes import get_poller, get_sync_service
from app.config import Settings
from app.locations import LocationDirectory
from app.main import app
from app.models import AuditEvent, Ticket, TicketAudit
from app.normalizers.review_normalizer import ReviewNormalizer
from app.services.review_sync import ReviewSyncService
from app.zendesk.client import ZendeskAPIError

_EXTERNAL_ID_QUERY = re.compile(r'external_id:"([^"]+)"')
_TAG_QUERY = re.compile(r"tags:(\S+)")


class FakeZendeskClient:
    """In-memory stand-in for ZendeskClient with the same async surface."""

    def __init__(self):
        self.tickets: Dict[int, Dict[str, Any]] = {}
        self.audits: Dict[int, List[TicketAudit]] = {}
        self.idempotency: Dict[str, int] = {}
        self.create_calls: List[Dict[str, Any]] = []
        self.update_calls: List[Dict[str, Any]] = []
        self.failures: Dict[str, Exception] = {}
        self._ids = count(1000)

    def fail(self, operation: str, error: Exception) -> None:
        """Make every call of an operation raise the given error."""
        self.failures[operation] = error

    def _check(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    def add_ticket(
        self,
        external_id: Optional[str],
        tags: Optional[List[str]] = None,
        status: str = "open",
        comments: Optional[List[str]] = None,
        ticket_id: Optional[int] = None,
    ) -> int:
        ticket_id = ticket_id or next(self._ids)
        self.tickets[ticket_id] = {
            "id": ticket_id,
            "external_id": external_id,
            "subject": "existing",
            "status": status,
            "tags": list(tags or []),
        }
        self.audits[ticket_id] = [
            TicketAudit(id=i, events=[AuditEvent(type="Comment", body=body, public=False)])
            for i, body in enumerate(comments or [])
        ]
        return ticket_id

    def comments(self, ticket_id: int) -> List[str]:
        return [e.body for a in self.audits.get(ticket_id, []) for e in a.events if e.type == "Comment"]

    def _as_ticket(self, data: Dict[str, Any]) -> Ticket:
        return Ticket.model_validate(data)

    async def search_tickets(self, query: str, per_page: int = 25) -> List[Ticket]:
        self._check("search_tickets")
        external = _EXTERNAL_ID_QUERY.search(query)
        tag = _TAG_QUERY.search(query)
        found = []
        for data in self.tickets.values():
            if external and data["external_id"] == external.group(1):
                found.append(self._as_ticket(data))
            elif tag and not external and tag.group(1) in data["tags"]:
                found.append(self._as_ticket(data))
        return found[:per_page]

    async def get_tickets_by_external_ids(self, external_ids: List[str]) -> List[Ticket]:
        self._check("get_tickets_by_external_ids")
        return [self._as_ticket(d) for d in self.tickets.values() if d["external_id"] in external_ids]

    async def create_ticket(self, fields: Dict[str, Any], idempotency_key: Optional[str] = None) -> Ticket:
        self.create_calls.append({"fields": fields, "idempotency_key": idempotency_key})
        self._check("create_ticket")
        if idempotency_key in self.idempotency:
            return self._as_ticket(self.tickets[self.idempotency[idempotency_key]])

        ticket_id = self.add_ticket(fields.get("external_id"), tags=fields.get("tags"), status="new")
        self.tickets[ticket_id]["subject"] = fields.get("subject")
        self.audits[ticket_id].append(
            TicketAudit(events=[AuditEvent(type="Comment", body=fields["comment"]["body"], public=False)])
        )
        if idempotency_key:
            self.idempotency[idempotency_key] = ticket_id
        return self._as_ticket(self.tickets[ticket_id])

    async def update_ticket(self, ticket_id: int, fields: Dict[str, Any]) -> Ticket:
        self.update_calls.append({"ticket_id": ticket_id, "fields": fields})
        self._check("update_ticket")
        if ticket_id not in self.tickets:
            raise ZendeskAPIError("not found", 404)

        data = self.tickets[ticket_id]
        for key in ("status", "subject"):
            if key in fields:
                data[key] = fields[key]
        data["tags"] = list(dict.fromkeys(data["tags"] + fields.get("additional_tags", [])))
        if "comment" in fields:
            self.audits[ticket_id].append(
                TicketAudit(events=[AuditEvent(type="Comment", body=fields["comment"]["body"], public=False)])
            )
        return self._as_ticket(data)

    async def list_ticket_audits(self, ticket_id: int) -> List[TicketAudit]:
        self._check("list_ticket_audits")
        return list(self.audits.get(ticket_id, []))


@pytest.fixture
def test_settings():
    """Settings with Zendesk and Chatmeter configured and custom field ids set."""
    return Settings(
        zendesk_subdomain="acme",
        zendesk_email="bot@acme.test",
        zendesk_api_token="zd-token",
        zendesk_requester_email="reviews@acme.test",
        zd_field_review_id=101,
        zd_field_location_id=102,
        zd_field_location_name=103,
        zd_field_rating=104,
        zd_field_first_reply_sent=105,
        chatmeter_base_url="https://chatmeter.test/v5",
        chatmeter_token="cm-token",
        chatmeter_auth_style="raw",
        cron_secret=None,
        location_map_json=None,
        location_map_path=None,
        secrets_manager_enabled=False,
    )


@pytest.fixture
def locations():
    return LocationDirectory.from_mapping(
        {
            "L-1": {"name": "Downtown", "yelp_alias": "acme-downtown", "google_url": "https://g.page/acme-downtown"},
            "L-2": "Uptown",
            "GLOBAL": {"trustpilot_url": "https://www.trustpilot.com/review/acme.test"},
        }
    )


@pytest.fixture
def fake_zendesk():
    return FakeZendeskClient()


@pytest.fixture
def sync_service(fake_zendesk, locations, test_settings):
    normalizer = ReviewNormalizer(locations=locations, external_id_prefix=test_settings.external_id_prefix)
    return ReviewSyncService(fake_zendesk, normalizer, test_settings)


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    """Retries never actually sleep in tests."""
    with patch("app.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def mock_poller():
    poller = AsyncMock()
    return poller


@pytest.fixture(scope="function")
def client(sync_service, mock_poller):
    """Create test client with the sync pipeline wired to the fake Zendesk client."""
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    app.dependency_overrides[get_poller] = lambda: mock_poller

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def mock_chatmeter_review():
    """Chatmeter v5 review payload."""
    return {
        "id": "abc123",
        "contentProvider": "GOOGLE",
        "locationId": "L-1",
        "rating": 5,
        "reviewerUserName": "Jane D.",
        "reviewDate": "2025-11-01T12:00:00Z",
        "reviewText": "Great service and friendly staff, will come back!",
        "reviewURL": "https://maps.google.com/review/abc123",
    }
