"""Wiring of clients and services from settings, done once per process."""

from typing import Optional
import structlog

from app.config import Settings
from app.fetchers.chatmeter_fetcher import ChatmeterFetcher
from app.locations import LocationDirectory
from app.normalizers.review_normalizer import ReviewNormalizer
from app.secrets import SecretsManager
from app.services.poller import ReviewPoller
from app.services.review_sync import ReviewSyncService
from app.zendesk.client import ZendeskClient

logger = structlog.get_logger(__name__)


def build_zendesk_client(settings: Settings, secrets: Optional[SecretsManager] = None) -> ZendeskClient:
    """Zendesk client; Secrets Manager credentials win over environment values."""
    credentials = (secrets or SecretsManager(settings)).get_zendesk_credentials() or {}
    return ZendeskClient(
        settings=settings,
        email=credentials.get("email"),
        api_token=credentials.get("api_token"),
    )


def build_chatmeter_fetcher(settings: Settings, secrets: Optional[SecretsManager] = None) -> ChatmeterFetcher:
    credentials = (secrets or SecretsManager(settings)).get_chatmeter_credentials() or {}
    return ChatmeterFetcher(settings=settings, token=credentials.get("token"))


def build_sync_service(
    settings: Settings,
    locations: Optional[LocationDirectory] = None,
    secrets: Optional[SecretsManager] = None,
) -> ReviewSyncService:
    """
    Build the sync pipeline.

    Args:
        settings: Application settings
        locations: Location table (loaded from settings when omitted)
        secrets: Credential source

    Returns:
        Review sync service
    """
    if locations is None:
        locations = LocationDirectory.from_settings(settings)

    normalizer = ReviewNormalizer(locations=locations, external_id_prefix=settings.external_id_prefix)
    return ReviewSyncService(build_zendesk_client(settings, secrets), normalizer, settings)


def build_poller(
    settings: Settings,
    sync_service: Optional[ReviewSyncService] = None,
    secrets: Optional[SecretsManager] = None,
) -> ReviewPoller:
    sync_service = sync_service or build_sync_service(settings, secrets=secrets)
    return ReviewPoller(build_chatmeter_fetcher(settings, secrets), sync_service, settings)
