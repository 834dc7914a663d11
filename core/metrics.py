from prometheus_client import Counter, Histogram

analytics_events_flushed = Counter(
    "analytics_events_flushed_total",
    "Analytics events persisted by buffer flushes"
)

analytics_flush_failures = Counter(
    "analytics_flush_failures_total",
    "Buffer flushes that failed and were restored for retry"
)

summary_cache_requests = Counter(
    "analytics_summary_cache_requests_total",
    "Summary cache lookups by outcome",
    ["outcome"]
)

feed_ranking_latency = Histogram(
    "feed_ranking_latency_seconds",
    "Time spent fetching and ranking a feed page"
)
