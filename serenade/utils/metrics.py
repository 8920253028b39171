"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
orders_created_total = Counter(
    "orders_created_total",
    "Total number of orders created",
    ["order_type", "payment_method"],
)

variants_generated_total = Counter(
    "variants_generated_total",
    "Total number of song variants rendered successfully",
)

variants_failed_total = Counter(
    "variants_failed_total",
    "Total number of song variants that failed",
    ["failure_type"],
)

bundle_redemptions_total = Counter(
    "bundle_redemptions_total",
    "Bundle credit redemption attempts",
    ["outcome"],  # redeemed, none_available
)

webhook_events_total = Counter(
    "webhook_events_total",
    "Payment webhook events received",
    ["event_type", "outcome"],
)

emails_sent_total = Counter(
    "emails_sent_total",
    "Transactional emails handed to the email provider",
    ["template", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
generation_duration_seconds = Histogram(
    "generation_duration_seconds",
    "Audio provider call duration per variant",
    buckets=[5, 10, 20, 30, 45, 60, 90, 120],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
