"""Prometheus metrics exposition."""

from prometheus_client import Counter, Histogram, Info, generate_latest, CONTENT_TYPE_LATEST

from llm_relay import __version__

# Application info
APP_INFO = Info("llm_relay", "Application information")
APP_INFO.info({"version": __version__})

# Request counters
REQUESTS_TOTAL = Counter(
    "llm_relay_requests_total",
    "Chat completion requests by final outcome",
    ["model", "outcome", "stream"]
)

UPSTREAM_ATTEMPTS_TOTAL = Counter(
    "llm_relay_upstream_attempts_total",
    "Upstream provider attempts",
    ["provider", "outcome"]
)

STREAM_FRAMES_TOTAL = Counter(
    "llm_relay_stream_frames_total",
    "SSE frames relayed to callers",
    ["model"]
)

# Response time
RESPONSE_TIME = Histogram(
    "llm_relay_response_time_seconds",
    "Time until the response was handed to the caller",
    ["model"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 30.0, 60.0]
)


class MetricsExporter:
    """Exports metrics in Prometheus format."""

    @staticmethod
    def get_prometheus_format() -> tuple[str, bytes]:
        """Get metrics in Prometheus exposition format.

        Returns:
            Tuple of (content_type, metrics_body)
        """
        return CONTENT_TYPE_LATEST, generate_latest()

    @staticmethod
    def record_request(model: str, outcome: str, stream: bool, elapsed: float | None = None) -> None:
        """Record a finished request.

        Args:
            model: Requested model id
            outcome: Error kind value, or "completed"
            stream: Whether the caller asked for streaming
            elapsed: Seconds spent, if the request reached a response
        """
        REQUESTS_TOTAL.labels(
            model=model,
            outcome=outcome,
            stream="true" if stream else "false"
        ).inc()

        if elapsed is not None:
            RESPONSE_TIME.labels(model=model).observe(elapsed)

    @staticmethod
    def record_attempt(provider: str, outcome: str) -> None:
        """Record one upstream attempt ("success" or "failure")."""
        UPSTREAM_ATTEMPTS_TOTAL.labels(provider=provider, outcome=outcome).inc()

    @staticmethod
    def record_frame(model: str) -> None:
        """Record one relayed stream frame."""
        STREAM_FRAMES_TOTAL.labels(model=model).inc()
