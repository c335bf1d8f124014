"""Tests for the Zendesk REST client."""

import json

import httpx
import pytest

from app.zendesk.client import (
    ZendeskAPIError,
    ZendeskAuthError,
    ZendeskClient,
    ZendeskRateLimitError,
    ZendeskServerError,
    ZendeskTransportError,
)


def make_client(test_settings, handler):
    return ZendeskClient(settings=test_settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_search_tickets_prefixes_type_and_uses_basic_auth(test_settings):
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(
            200,
            json={"results": [{"id": 7, "external_id": "chatmeter:r1", "status": "open", "result_type": "ticket"}]},
        )

    tickets = await make_client(test_settings, handler).search_tickets('external_id:"chatmeter:r1"')

    request = seen["request"]
    assert request.url.host == "acme.zendesk.com"
    assert request.url.path == "/api/v2/search.json"
    assert request.url.params["query"] == 'type:ticket external_id:"chatmeter:r1"'
    assert request.headers["Authorization"].startswith("Basic ")
    assert [t.id for t in tickets] == [7]


@pytest.mark.asyncio
async def test_create_ticket_sends_idempotency_key(test_settings):
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(201, json={"ticket": {"id": 42, "external_id": "chatmeter:r1"}})

    ticket = await make_client(test_settings, handler).create_ticket({"subject": "s"}, idempotency_key="chatmeter:r1")

    assert ticket.id == 42
    assert seen["request"].headers["Idempotency-Key"] == "chatmeter:r1"
    assert json.loads(seen["request"].content) == {"ticket": {"subject": "s"}}


@pytest.mark.asyncio
async def test_create_ticket_without_id_raises(test_settings):
    client = make_client(test_settings, lambda request: httpx.Response(201, json={"ticket": {}}))

    with pytest.raises(ZendeskAPIError):
        await client.create_ticket({"subject": "s"})


@pytest.mark.asyncio
async def test_list_ticket_audits_follows_pagination(test_settings):
    def handler(request):
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json={"audits": [{"id": 2, "events": [{"type": "Comment", "body": "b"}]}], "next_page": None})
        return httpx.Response(
            200,
            json={
                "audits": [{"id": 1, "events": [{"type": "Comment", "body": "a"}]}],
                "next_page": "https://acme.zendesk.com/api/v2/tickets/5/audits.json?page=2",
            },
        )

    audits = await make_client(test_settings, handler).list_ticket_audits(5)

    assert [a.id for a in audits] == [1, 2]
    assert audits[1].events[0].body == "b"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error",
    [(401, ZendeskAuthError), (403, ZendeskAuthError), (500, ZendeskServerError), (422, ZendeskAPIError)],
)
async def test_error_mapping(test_settings, status, error):
    client = make_client(test_settings, lambda request: httpx.Response(status, json={"error": "x"}))

    with pytest.raises(error) as exc_info:
        await client.update_ticket(1, {"status": "closed"})

    assert exc_info.value.status_code == status


@pytest.mark.asyncio
async def test_rate_limit_carries_retry_after(test_settings):
    client = make_client(test_settings, lambda request: httpx.Response(429, headers={"Retry-After": "7"}))

    with pytest.raises(ZendeskRateLimitError) as exc_info:
        await client.get_tickets_by_external_ids(["chatmeter:r1"])

    assert exc_info.value.retry_after == 7


@pytest.mark.asyncio
async def test_transport_failure_is_wrapped(test_settings):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ZendeskTransportError):
        await make_client(test_settings, handler).list_ticket_audits(1)
