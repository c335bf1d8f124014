"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram, CollectorRegistry

# Create registry
registry = CollectorRegistry()

# Reviews synced to Zendesk
reviews_synced_total = Counter(
    "reviews_synced_total",
    "Total number of reviews processed by the sync pipeline",
    ["action", "category"],
    registry=registry,
)

# Zendesk operations
zendesk_requests_total = Counter(
    "zendesk_requests_total",
    "Total number of Zendesk API requests",
    ["operation", "status"],
    registry=registry,
)

duplicate_tickets_closed_total = Counter(
    "duplicate_tickets_closed_total",
    "Total number of duplicate tickets auto-closed by the sweep",
    registry=registry,
)

# Chatmeter operations
chatmeter_requests_total = Counter(
    "chatmeter_requests_total",
    "Total number of Chatmeter API requests",
    ["operation", "status"],
    registry=registry,
)

# Poller
poll_batches_total = Counter(
    "poll_batches_total",
    "Total number of poll batches",
    ["status"],
    registry=registry,
)

poll_batch_duration_seconds = Histogram(
    "poll_batch_duration_seconds",
    "Poll batch duration",
    registry=registry,
)
