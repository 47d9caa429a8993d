"""Prometheus metrics for DealFinder."""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("dealfinder", "DealFinder application info")
app_info.info({"version": "0.1.0", "name": "dealfinder"})

# Provider metrics
provider_calls_total = Counter(
    "provider_calls_total",
    "Total number of source provider calls",
    ["provider", "status"],
)

provider_call_duration_seconds = Histogram(
    "provider_call_duration_seconds",
    "Time spent waiting on a source provider",
    ["provider"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0],
)

provider_listings_total = Counter(
    "provider_listings_total",
    "Raw listings returned by source providers",
    ["provider"],
)

# Pipeline metrics
listings_dropped_total = Counter(
    "listings_dropped_total",
    "Listings removed by the aggregation pipeline",
    ["reason"],
)

aggregations_total = Counter(
    "aggregations_total",
    "Total number of aggregations",
    ["outcome"],
)

ai_rerank_total = Counter(
    "ai_rerank_total",
    "AI relevance assist calls",
    ["status"],
)

ai_assist_total = Counter(
    "ai_assist_total",
    "AI category detection and recommendation calls",
    ["feature", "status"],
)

# Cache metrics
search_cache_total = Counter(
    "search_cache_total",
    "Result cache lookups",
    ["result"],
)

# Currency metrics
currency_refresh_total = Counter(
    "currency_refresh_total",
    "Exchange rate refresh attempts",
    ["status"],
)

currency_rates_age_seconds = Gauge(
    "currency_rates_age_seconds",
    "Age of the exchange rate table at last check",
)

# Watch scheduler metrics
watch_runs_total = Counter(
    "watch_runs_total",
    "Watch pipeline runs",
    ["status"],
)

watch_ticks_total = Counter(
    "watch_ticks_total",
    "Watch scheduler ticks",
    ["status"],
)

watch_notifications_total = Counter(
    "watch_notifications_total",
    "Watch notifications created",
    ["channel"],
)

watch_tick_duration_seconds = Histogram(
    "watch_tick_duration_seconds",
    "Duration of a watch scheduler tick",
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)


def record_provider_call(provider: str, status: str, duration: float, listings: int = 0) -> None:
    """Record the outcome of a single provider call."""
    provider_calls_total.labels(provider=provider, status=status).inc()
    provider_call_duration_seconds.labels(provider=provider).observe(duration)
    if listings:
        provider_listings_total.labels(provider=provider).inc(listings)


def record_dropped(reason: str, count: int) -> None:
    """Record listings dropped for a reason."""
    if count:
        listings_dropped_total.labels(reason=reason).inc(count)
