"""Prometheus metrics for integration calls, circuit breakers and remittance processing"""

from prometheus_client import Counter, Histogram, Gauge

from hcbs_gateway.domain.enums import CircuitState

# Adapter call metrics
integration_request_counter = Counter(
    "integration_requests_total",
    "Adapter execute() calls",
    ["service", "operation", "outcome"],  # success | failure | rejected
)

integration_latency_histogram = Histogram(
    "integration_request_latency_seconds",
    "Adapter execute() latency",
    ["service"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Circuit breaker metrics
circuit_state_gauge = Gauge(
    "circuit_breaker_state",
    "Breaker state per service (0=closed, 1=half_open, 2=open)",
    ["service"],
)

circuit_rejection_counter = Counter(
    "circuit_breaker_rejections_total",
    "Calls rejected without being attempted because the breaker was open",
    ["service"],
)

# Remittance metrics
remittance_file_counter = Counter(
    "remittance_files_total",
    "Remittance files handled by the transformer",
    ["file_type", "outcome"],  # parsed | parse_error | validation_error
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)

_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


def record_circuit_state(service: str, state: CircuitState) -> None:
    circuit_state_gauge.labels(service=service).set(_STATE_VALUES[state])


def record_integration_call(service: str, operation: str, outcome: str, duration_seconds: float) -> None:
    """Record one adapter call for success-rate and latency dashboards"""
    integration_request_counter.labels(service=service, operation=operation, outcome=outcome).inc()
    integration_latency_histogram.labels(service=service).observe(duration_seconds)
