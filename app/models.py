"""Domain models for reviews, tickets and sync results."""

from enum import Enum
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


NO_TEXT = "(no text)"
NO_URL = "(none)"
NOT_AVAILABLE = "N/A"


class ProviderCategory(str, Enum):
    """Coarse provider classification used for internal categorization."""
    GOOGLE = "google"
    YELP = "yelp"
    EXPEDIA = "expedia"
    TRIPADVISOR = "tripadvisor"
    OTHER = "other"


class SyncMode(str, Enum):
    """How an existing ticket is updated."""
    UPSERT = "upsert"
    FIX = "fix"


class SyncAction(str, Enum):
    """Outcome of syncing a single review."""
    CREATED = "created"
    UPDATED = "updated"
    FIXED = "fixed"
    SKIPPED = "skipped"
    FAILED = "failed"


class CanonicalReview(BaseModel):
    """Normalized review record derived from any source payload shape."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider: str
    category: ProviderCategory = ProviderCategory.OTHER
    rating: Optional[Union[int, float]] = None
    location_id: Optional[str] = None
    location_name: str
    author: str
    created_at: str
    text: str = NO_TEXT
    public_url: str = NO_URL

    @property
    def has_text(self) -> bool:
        return self.text != NO_TEXT


class AuditEvent(BaseModel):
    """Single event within a ticket audit."""
    id: Optional[int] = None
    type: str
    body: Optional[str] = None
    public: Optional[bool] = None


class TicketAudit(BaseModel):
    """Ticket audit entry (one ticket change with its events)."""
    id: Optional[int] = None
    created_at: Optional[str] = None
    events: List[AuditEvent] = Field(default_factory=list)


class Ticket(BaseModel):
    """Zendesk ticket (subset of fields the bridge reads)."""

    model_config = ConfigDict(extra="ignore")

    id: int
    external_id: Optional[str] = None
    subject: Optional[str] = None
    status: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ResolvedTicket(BaseModel):
    """Ticket chosen for a review by the resolver."""
    ticket_id: int
    is_new: bool
    duplicates_closed: List[int] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Structured result of syncing one review."""
    ok: bool
    action: SyncAction
    review_id: Optional[str] = None
    ticket_id: Optional[int] = None
    external_id: Optional[str] = None
    reason: Optional[str] = None
    duplicates_closed: List[int] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Structured result of one poll batch."""
    ok: bool
    since: Optional[str] = None
    mode: SyncMode = SyncMode.UPSERT
    dry_run: bool = False
    checked: int = 0
    created: int = 0
    posted: int = 0
    skipped: int = 0
    errors: int = 0
    reason: Optional[str] = None
