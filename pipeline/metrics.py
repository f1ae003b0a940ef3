"""
Prometheus metrics for forwarding and callbacks.
"""
from prometheus_client import Counter, Histogram

FORWARD_ATTEMPTS_COUNTER = Counter(
    "forward_attempts_total",
    "Lead forward attempts grouped by advertiser and outcome",
    labelnames=("advertiser_id", "status"),
)
FORWARD_LATENCY_HISTOGRAM = Histogram(
    "forward_latency_seconds",
    "Latency of lead forwarding in seconds",
    labelnames=("advertiser_id",),
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30),
)
CALLBACKS_COUNTER = Counter(
    "callbacks_total",
    "Advertiser callbacks grouped by advertiser and status",
    labelnames=("advertiser_id", "status"),
)

__all__ = [
    "FORWARD_ATTEMPTS_COUNTER",
    "FORWARD_LATENCY_HISTOGRAM",
    "CALLBACKS_COUNTER",
]
