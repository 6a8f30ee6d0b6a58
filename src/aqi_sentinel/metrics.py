"""Prometheus metrics for aqi-sentinel.

All metrics use the 'aqi_' prefix and are served on the feed server's
/metrics endpoint.
"""

from prometheus_client import Counter, Gauge, Info

SERVICE_INFO = Info(
    "aqi_service",
    "Service metadata",
)

POLLS = Counter(
    "aqi_polls_total",
    "Total poll cycles",
    ["status"],  # status: ok, fetch_error, disabled
)

CURRENT_VALUE = Gauge(
    "aqi_current_value",
    "Most recent AQI reading",
)

CURRENT_RANK = Gauge(
    "aqi_current_rank",
    "Severity rank of the most recent AQI reading",
)

ALERT_DECISIONS = Counter(
    "aqi_alert_decisions_total",
    "Alert throttle decisions",
    ["decision"],  # dispatch, suppress
)

ALERT_DELIVERIES = Counter(
    "aqi_alert_deliveries_total",
    "Alert delivery attempts",
    ["status"],  # success, failure, skipped
)

FEED_DECISIONS = Counter(
    "aqi_feed_decisions_total",
    "Feed throttle decisions",
    ["decision"],  # regenerate, skip
)

RENDER_ERRORS = Counter(
    "aqi_render_errors_total",
    "Errors while formatting a reading",
    ["kind"],  # feed, alert
)
