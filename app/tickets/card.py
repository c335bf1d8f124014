"""Fixed-layout internal note ("card") rendered from a canonical review.

Helpdesk operators read this layout; line order and labels must not change.
"""

from typing import Optional, Union

from app.models import CanonicalReview, NO_TEXT, NO_URL, NOT_AVAILABLE

STAR = "★"


def format_rating(rating: Optional[Union[int, float]]) -> str:
    if rating is None:
        return NOT_AVAILABLE
    if isinstance(rating, float) and rating.is_integer():
        return str(int(rating))
    return str(rating)


def render_card(review: CanonicalReview) -> str:
    """
    Render the internal note body for a review.

    Args:
        review: Canonical review

    Returns:
        Card text, one field per line, trailing whitespace trimmed
    """
    lines = [
        f"Review ID: {review.id}",
        f"Provider: {review.provider}",
        f"Location: {review.location_name} ({review.location_id or NOT_AVAILABLE})",
        f"Rating: {format_rating(review.rating)}{STAR}",
        f"Date: {review.created_at or NOT_AVAILABLE}",
        "Review Text:",
        "",
        review.text or NO_TEXT,
        "",
        "Public URL:",
        review.public_url or NO_URL,
    ]
    return "\n".join(line.rstrip() for line in "\n".join(lines).split("\n"))


def render_subject(review: CanonicalReview) -> str:
    """Ticket subject line: "<location> – <rating>★ – <author>"."""
    rating = format_rating(review.rating) if review.rating is not None else "?"
    return f"{review.location_name} – {rating}{STAR} – {review.author}"
