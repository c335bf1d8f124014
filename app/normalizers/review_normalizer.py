"""Normalizer composing extracted fields into a canonical review record."""

import math
from datetime import datetime
from typing import Any, Optional, Union
import structlog

from app.locations import LocationDirectory
from app.models import CanonicalReview, ProviderCategory, NO_TEXT, NO_URL, NOT_AVAILABLE
from app.normalizers.fields import (
    AUTHOR_CANDIDATES,
    DATE_CANDIDATES,
    EXTERNAL_ID_CANDIDATES,
    LOCATION_ID_CANDIDATES,
    LOCATION_NAME_CANDIDATES,
    PROVIDER_CANDIDATES,
    PUBLIC_URL_CANDIDATES,
    RATING_CANDIDATES,
    REVIEW_ID_CANDIDATES,
    extract_text,
    flatten,
    infer_origin,
    is_non_empty,
    pick,
)

logger = structlog.get_logger(__name__)

DEFAULT_AUTHOR = "Reviewer"
DEFAULT_LOCATION_NAME = "Location"

PROVIDER_ALIASES = {
    "GOOGLE MAPS": "GOOGLE",
    "GMAPS": "GOOGLE",
    "META": "FACEBOOK",
    "FB": "FACEBOOK",
    "TRUST PILOT": "TRUSTPILOT",
}


class MissingReviewIdError(ValueError):
    """Raised when no usable review id can be found in a payload."""
    pass


def normalize_provider_name(name: str) -> str:
    """Map an upper-cased provider display name onto its canonical alias."""
    upper = (name or "").strip().upper()
    if "MICROSOFT" in upper:
        return "BING"
    return PROVIDER_ALIASES.get(upper, upper)


def categorize_provider(name: Any) -> ProviderCategory:
    """
    Coarse provider classification.

    This is distinct from the display name used on tickets: anything that is
    not one of the known review sites lands in OTHER.
    """
    lowered = str(name or "").lower()
    if "google" in lowered:
        return ProviderCategory.GOOGLE
    if "yelp" in lowered:
        return ProviderCategory.YELP
    if "expedia" in lowered:
        return ProviderCategory.EXPEDIA
    if "trip" in lowered and "advisor" in lowered:
        return ProviderCategory.TRIPADVISOR
    return ProviderCategory.OTHER


def coerce_rating(value: Any) -> Optional[Union[int, float]]:
    """Convert a rating-ish value to a number; integral values become int."""
    if not is_non_empty(value) or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def _as_text(value: Any) -> Optional[str]:
    return str(value).strip() if is_non_empty(value) else None


class ReviewNormalizer:
    """Normalizer for review payloads of any shape."""

    def __init__(self, locations: Optional[LocationDirectory] = None, external_id_prefix: str = "chatmeter"):
        """
        Initialize normalizer.

        Args:
            locations: Location lookup table
            external_id_prefix: Prefix of external keys that may carry the review id
        """
        self.locations = locations or LocationDirectory()
        self.external_id_prefix = external_id_prefix

    def _resolve_review_id(self, flat) -> Optional[str]:
        review_id = _as_text(pick(flat, REVIEW_ID_CANDIDATES))
        if review_id:
            return review_id

        external_id = _as_text(pick(flat, EXTERNAL_ID_CANDIDATES))
        if external_id and external_id.startswith(f"{self.external_id_prefix}:"):
            return external_id.rsplit(":", 1)[-1].strip() or None
        return None

    def normalize(
        self,
        payload: Any,
        now: Optional[datetime] = None,
        strict_text: bool = False,
    ) -> CanonicalReview:
        """
        Normalize a raw review payload to a canonical review.

        Pure: the same payload (and the same `now`) always yields the same record.

        Args:
            payload: Raw payload (any shape)
            now: Clock value used when the payload carries no timestamp
            strict_text: Require named text fields to look like human text

        Returns:
            Canonical review

        Raises:
            MissingReviewIdError: If no review id is present
        """
        flat = flatten(payload)

        review_id = self._resolve_review_id(flat)
        if not review_id:
            raise MissingReviewIdError("Missing review id")

        public_url = _as_text(pick(flat, PUBLIC_URL_CANDIDATES))
        url_hint = public_url or next(
            (v for v in flat.values() if isinstance(v, str) and v.strip().lower().startswith(("http://", "https://"))),
            None,
        )
        provider = normalize_provider_name(infer_origin(pick(flat, PROVIDER_CANDIDATES), url_hint))

        location_id = _as_text(pick(flat, LOCATION_ID_CANDIDATES))
        location_name = (
            self.locations.name_for(location_id)
            or _as_text(pick(flat, LOCATION_NAME_CANDIDATES))
            or (f"{DEFAULT_LOCATION_NAME} {location_id}" if location_id else DEFAULT_LOCATION_NAME)
        )

        if not public_url:
            public_url = self.locations.profile_url(location_id, provider)

        created_at = _as_text(pick(flat, DATE_CANDIDATES))
        if not created_at:
            created_at = now.isoformat() if now else NOT_AVAILABLE

        review = CanonicalReview(
            id=review_id,
            provider=provider,
            category=categorize_provider(provider),
            rating=coerce_rating(pick(flat, RATING_CANDIDATES)),
            location_id=location_id,
            location_name=location_name,
            author=_as_text(pick(flat, AUTHOR_CANDIDATES)) or DEFAULT_AUTHOR,
            created_at=created_at,
            text=extract_text(payload, flat=flat, strict=strict_text) or NO_TEXT,
            public_url=public_url or NO_URL,
        )
        logger.debug("review_normalized", review_id=review.id, provider=review.provider, has_text=review.has_text)
        return review
