"""Tests for retry with backoff."""

from unittest.mock import AsyncMock

import pytest

from app.retry import retry_with_backoff
from app.zendesk.client import ZendeskAuthError, ZendeskRateLimitError, ZendeskServerError, TRANSIENT_ZENDESK_ERRORS


@pytest.mark.asyncio
async def test_returns_after_transient_failures(no_backoff_sleep):
    func = AsyncMock(side_effect=[ZendeskServerError("boom", 502), "ok"])

    result = await retry_with_backoff(func, 1, key="v", retry_on=TRANSIENT_ZENDESK_ERRORS)

    assert result == "ok"
    func.assert_awaited_with(1, key="v")
    assert no_backoff_sleep.await_count == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    func = AsyncMock(side_effect=ZendeskServerError("boom", 500))

    with pytest.raises(ZendeskServerError):
        await retry_with_backoff(func, max_retries=2, retry_on=TRANSIENT_ZENDESK_ERRORS)

    assert func.await_count == 2


@pytest.mark.asyncio
async def test_non_transient_errors_propagate_immediately():
    func = AsyncMock(side_effect=ZendeskAuthError("denied", 401))

    with pytest.raises(ZendeskAuthError):
        await retry_with_backoff(func, retry_on=TRANSIENT_ZENDESK_ERRORS)

    assert func.await_count == 1


@pytest.mark.asyncio
async def test_honors_retry_after(no_backoff_sleep):
    func = AsyncMock(side_effect=[ZendeskRateLimitError("slow down", retry_after=9), "ok"])

    await retry_with_backoff(func, retry_on=TRANSIENT_ZENDESK_ERRORS)

    assert no_backoff_sleep.await_args.args[0] == 9
