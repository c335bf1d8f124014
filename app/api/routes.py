"""API routes for the service."""

import hmac
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
import structlog

from app.api.schemas import HealthResponse
from app.config import settings
from app.models import BatchResult, SyncAction, SyncMode, SyncResult
from app.services.poller import MAX_BATCH_ITEMS, ReviewPoller
from app.services.review_sync import ReviewSyncService
from app import __version__

logger = structlog.get_logger(__name__)

router = APIRouter()

# Failure reasons that are the caller's fault
CLIENT_ERROR_REASONS = {"missing_review_id"}


def get_sync_service(request: Request) -> ReviewSyncService:
    return request.app.state.sync_service


def get_poller(request: Request) -> ReviewPoller:
    return request.app.state.poller


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """
    Check the Bearer secret protecting the poll trigger.

    No check is made when CRON_SECRET is unset.

    Raises:
        HTTPException: 401 if the header does not carry the secret
    """
    if not settings.cron_secret:
        return

    expected = f"Bearer {settings.cron_secret}"
    if not hmac.compare_digest((authorization or "").strip().encode(), expected.encode()):
        logger.warning("cron_secret_rejected")
        raise HTTPException(status_code=401, detail="Unauthorized")


# Health check
@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint."""
    sync_service = getattr(request.app.state, "sync_service", None)
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        locations_loaded=len(sync_service.normalizer.locations) if sync_service else 0,
    )


@router.post("/reviews/webhook", response_model=SyncResult)
async def review_webhook(
    payload: Any = Body(...),
    fix: bool = Query(False, description="Refresh the ticket in place"),
    sync_service: ReviewSyncService = Depends(get_sync_service),
):
    """
    Receive a review event and sync it to its Zendesk ticket.

    Args:
        payload: Review payload of any shape
        fix: Use fix mode
        sync_service: Sync pipeline

    Returns:
        Sync result (400 for a payload without review id, 502 on Zendesk failure)
    """
    mode = SyncMode.FIX if fix else SyncMode.UPSERT

    try:
        result = await sync_service.sync_payload(payload, mode=mode)
    except Exception:
        logger.exception("review_webhook_failed")
        result = SyncResult(ok=False, action=SyncAction.FAILED, reason="unexpected_error")
        return JSONResponse(status_code=500, content=result.model_dump(mode="json"))

    if result.ok:
        return result

    status_code = 400 if result.reason in CLIENT_ERROR_REASONS else 502
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post(
    "/reviews/poll",
    response_model=BatchResult,
    dependencies=[Depends(require_cron_secret)],
)
async def poll_reviews(
    minutes: Optional[int] = Query(None, ge=1, description="Lookback window"),
    max_items: Optional[int] = Query(None, alias="max", ge=1, le=MAX_BATCH_ITEMS),
    review_id: Optional[str] = Query(None, alias="id", description="Process a single review"),
    dry: bool = Query(False, description="Count without writing"),
    fix: bool = Query(False, description="Use fix mode"),
    client_id: Optional[str] = Query(None, alias="clientId", description="Chatmeter clientId override"),
    account_id: Optional[str] = Query(None, alias="accountId", description="Chatmeter accountId override"),
    group_id: Optional[str] = Query(None, alias="groupId", description="Chatmeter groupId override"),
    poller: ReviewPoller = Depends(get_poller),
):
    """
    Run one poll batch inline.

    Returns:
        Batch result (502 when the review listing failed)
    """
    scope = {
        name: value
        for name, value in (("clientId", client_id), ("accountId", account_id), ("groupId", group_id))
        if value
    }
    logger.info("poll_triggered", minutes=minutes, max=max_items, review_id=review_id, dry=dry, fix=fix, scope=scope)

    result = await poller.poll(
        minutes=minutes,
        limit=max_items,
        review_id=review_id,
        dry_run=dry,
        mode=SyncMode.FIX if fix else SyncMode.UPSERT,
        scope=scope,
    )

    if not result.ok:
        content: Dict[str, Any] = result.model_dump(mode="json")
        return JSONResponse(status_code=502, content=content)
    return result
