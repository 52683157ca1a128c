from prometheus_client import Counter

webhook_events_total = Counter(
    "vinylmarket_webhook_events_total",
    "Payment gateway webhook events by type and outcome",
    ["type", "outcome"],  # outcome: handled, duplicate, ignored, failed
)

orders_created_total = Counter(
    "vinylmarket_orders_created_total",
    "Orders materialized from paid checkout sessions",
)

reviews_total = Counter(
    "vinylmarket_reviews_total",
    "Review mutations",
    ["action"],  # created, removed
)

notifications_total = Counter(
    "vinylmarket_notifications_total",
    "Order notifications by channel and outcome",
    ["channel", "outcome"],
)

background_jobs_total = Counter(
    "vinylmarket_background_jobs_total",
    "Background jobs by outcome",
    ["outcome"],  # queued, succeeded, failed, dropped
)
