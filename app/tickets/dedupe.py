"""Duplicate-comment guard based on a ticket's audit history."""

from typing import Iterable, Optional

from app.models import TicketAudit

COMMENT_EVENT = "Comment"


def comment_exists(audits: Iterable[TicketAudit], body: str) -> bool:
    """
    Check whether an identical comment was already posted.

    Exact match on trimmed bodies; any content change counts as a new note.

    Args:
        audits: Ticket audit history
        body: Comment body about to be posted

    Returns:
        True if a comment event with the same trimmed body exists
    """
    target = body.strip()
    for audit in audits or []:
        for event in audit.events:
            if event.type == COMMENT_EVENT and isinstance(event.body, str) and event.body.strip() == target:
                return True
    return False


def should_post(audits: Iterable[TicketAudit], body: str) -> bool:
    return not comment_exists(audits, body)


def latest_private_comment(audits: Iterable[TicketAudit]) -> Optional[str]:
    """Body of the most recent private comment event, or None."""
    latest = None
    for audit in audits or []:
        for event in audit.events:
            if event.type == COMMENT_EVENT and event.public is False and isinstance(event.body, str):
                latest = event.body
    return latest


def should_replace(audits: Iterable[TicketAudit], body: str) -> bool:
    """
    Fix-mode check: post unless the latest private note already is this body.

    Comments cannot be edited, so a replacement is an append that is skipped
    when the newest private note is unchanged.
    """
    latest = latest_private_comment(audits)
    return latest is None or latest.strip() != body.strip()
