"""Prometheus metrics for pipeline observability.

Counters and histograms at each pipeline stage.
Exposed via /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, make_asgi_app

# Decoder counters
payloads_decoded_total = Counter(
    "payloads_decoded_total",
    "Total raw payloads handed to the decoder",
    ["source", "status"],  # status: decoded, failed
)

decode_failures_total = Counter(
    "decode_failures_total",
    "Total decode failures by reason",
    ["source", "reason"],
)

# Normalizer counters
unknown_phase_codes_total = Counter(
    "unknown_phase_codes_total",
    "Phase codes that fell back to Light because no mapping exists",
    ["source"],
)

# Assembler counters
sessions_assembled_total = Counter(
    "sessions_assembled_total",
    "Total assembly attempts by outcome",
    ["source", "status"],  # status: assembled, empty, inconsistent
)

# API counters
api_requests_total = Counter(
    "api_requests_total",
    "Total API requests",
    ["endpoint", "method", "status_code"],
)

# Histograms
session_quality = Histogram(
    "session_quality",
    "Distribution of computed sleep quality scores",
    ["source"],
    buckets=(10, 20, 30, 40, 50, 60, 70, 80, 90, 100),
)

pipeline_duration_seconds = Histogram(
    "pipeline_duration_seconds",
    "Duration of a full decode-to-session batch",
    ["source"],
)

api_response_duration_seconds = Histogram(
    "api_response_duration_seconds",
    "Duration of API responses",
    ["endpoint"],
)


def create_metrics_app():
    """Create ASGI app for /metrics endpoint."""
    return make_asgi_app()
