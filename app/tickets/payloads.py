"""Ticket payload pieces derived from a canonical review."""

import re
from typing import Any, Dict, List, Optional

from app.config import Settings
from app.models import CanonicalReview
from app.tickets.card import render_subject

REVIEW_TAG_PREFIX = "cmrvw_"
BASE_TAGS = ("chatmeter", "review")

_TAG_UNSAFE = re.compile(r"[^a-z0-9_]")


def external_key(review_id: str, prefix: str = "chatmeter", platform: Optional[str] = None) -> str:
    """
    Stable cross-system key for a review.

    Identical (prefix, platform, review_id) always yields the identical key.

    Args:
        review_id: Canonical review id
        prefix: Namespace prefix
        platform: Optional provider/platform segment

    Returns:
        Key such as "chatmeter:abc123" or "chatmeter:yelp:abc123"
    """
    parts = [prefix]
    if platform:
        parts.append(platform.strip().lower())
    parts.append(str(review_id))
    return ":".join(parts)


def external_key_for(review: CanonicalReview, settings: Settings) -> str:
    platform = review.provider if settings.external_id_include_platform else None
    return external_key(review.id, prefix=settings.external_id_prefix, platform=platform)


def review_tag(review_id: str) -> str:
    """Tag carrying the review id, used as a search fallback."""
    return REVIEW_TAG_PREFIX + _TAG_UNSAFE.sub("_", str(review_id).lower())[:60]


def build_tags(review: CanonicalReview) -> List[str]:
    tags = [*BASE_TAGS, review_tag(review.id), review.provider.lower(), review.category.value]
    return list(dict.fromkeys(tag for tag in tags if tag))


def build_custom_fields(review: CanonicalReview, settings: Settings, creating: bool = False) -> List[Dict[str, Any]]:
    """
    Custom field values for configured field ids; unconfigured ids are omitted.

    The first-reply flag is only initialized on create so an agent's reply is
    never reset by a later update.
    """
    field_ids = settings.get_custom_field_ids()
    values = {
        "review_id": review.id,
        "location_id": review.location_id or "",
        "location_name": review.location_name,
        "rating": review.rating,
    }
    if creating:
        values["first_reply_sent"] = False

    return [
        {"id": field_ids[name], "value": value}
        for name, value in values.items()
        if name in field_ids
    ]


def build_create_fields(review: CanonicalReview, body: str, settings: Settings) -> Dict[str, Any]:
    """Ticket body for a create request (private first comment)."""
    ticket: Dict[str, Any] = {
        "subject": render_subject(review),
        "external_id": external_key_for(review, settings),
        "requester": {"name": review.author, "email": settings.zendesk_requester_email},
        "comment": {"body": body, "public": False},
        "tags": build_tags(review),
    }

    custom_fields = build_custom_fields(review, settings, creating=True)
    if custom_fields:
        ticket["custom_fields"] = custom_fields
    if settings.zendesk_agent_id:
        ticket["assignee_id"] = settings.zendesk_agent_id
    if settings.zendesk_group_id:
        ticket["group_id"] = settings.zendesk_group_id
    if settings.zendesk_brand_id:
        ticket["brand_id"] = settings.zendesk_brand_id

    return ticket


def build_update_fields(
    review: CanonicalReview,
    settings: Settings,
    body: Optional[str] = None,
    refresh_subject: bool = False,
) -> Dict[str, Any]:
    """
    Ticket body for an update request; the comment is included only if given.

    Tags are sent as additional_tags so tags added by agents survive.
    """
    ticket: Dict[str, Any] = {"additional_tags": build_tags(review)}

    custom_fields = build_custom_fields(review, settings)
    if custom_fields:
        ticket["custom_fields"] = custom_fields
    if refresh_subject:
        ticket["subject"] = render_subject(review)
    if body is not None:
        ticket["comment"] = {"body": body, "public": False}

    return ticket
