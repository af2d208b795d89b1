"""Adapter contract shared by the accounting, EHR and remittance integrations"""

import logging
import time
from typing import Any, FrozenSet, Optional

from hcbs_gateway.config import settings
from hcbs_gateway.domain.circuit_breaker import CircuitBreaker
from hcbs_gateway.domain.enums import CircuitState, IntegrationStatus
from hcbs_gateway.domain.exceptions import (
    AdapterStateError,
    CircuitOpenError,
    ConfigurationError,
    IntegrationError,
)
from hcbs_gateway.domain.models import (
    CircuitBreakerConfig,
    CircuitBreakerStats,
    HealthStatus,
    IntegrationConfig,
    IntegrationResponse,
    RequestOptions,
    utcnow,
)
from hcbs_gateway.infrastructure.observability.metrics import (
    circuit_rejection_counter,
    record_circuit_state,
    record_integration_call,
)
from hcbs_gateway.infrastructure.protocols.dispatcher import ProtocolDispatcher

logger = logging.getLogger(__name__)


def default_breaker_config() -> CircuitBreakerConfig:
    return CircuitBreakerConfig(
        failure_threshold=settings.breaker_failure_threshold,
        reset_timeout_seconds=settings.breaker_reset_timeout_seconds,
        half_open_success_threshold=settings.breaker_half_open_success_threshold,
    )


def failure_response(error: IntegrationError, options: RequestOptions, operation: str) -> IntegrationResponse:
    return IntegrationResponse(
        success=False,
        status_code=error.status_code or 500,
        error=error.to_dict(),
        metadata={"operation": operation, "correlation_id": options.correlation_id},
    )


class IntegrationAdapter:
    """
    connect / execute / check_health over one external system.

    Remote calls run through this adapter's own circuit breaker and the
    protocol handler chosen from config.protocol. execute() never raises for
    integration failures: callers inspect ``response.success`` and
    ``response.error``. Exceptions are reserved for misuse (execute before
    connect) and for connect() itself.

    Operations listed in ``local_operations`` run in-process and bypass the
    breaker so local bugs cannot trip it for the remote system.
    """

    local_operations: FrozenSet[str] = frozenset()

    def __init__(
        self,
        config: IntegrationConfig,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        dispatcher: Optional[ProtocolDispatcher] = None,
        clock=None,
        **collaborators: Any,
    ):
        self.config = config
        self.dispatcher = dispatcher or ProtocolDispatcher(config, **collaborators)
        self.breaker = CircuitBreaker(
            config.name,
            breaker_config or default_breaker_config(),
            clock=clock,
            on_transition=self._on_transition,
        )
        self.connected = False
        record_circuit_state(config.name, self.breaker.state)

    @property
    def name(self) -> str:
        return self.config.name

    def _on_transition(self, service: str, old: CircuitBreakerStats, new: CircuitBreakerStats) -> None:
        record_circuit_state(service, new.state)

    async def connect(self) -> bool:
        """
        Open the transport session. Calling it again while connected is a no-op.

        Raises:
            IntegrationError: the session could not be established
        """
        if self.connected:
            return True

        try:
            await self.breaker.execute(self.dispatcher.open)
        except IntegrationError as e:
            logger.error(
                "Adapter connect failed",
                extra={"service": self.name, "error": e.message, "retryable": e.retryable},
            )
            raise

        self.connected = True
        logger.info("Adapter connected", extra={"service": self.name, "protocol": self.config.protocol.value})
        return True

    async def disconnect(self) -> bool:
        if not self.connected:
            return True
        try:
            await self.dispatcher.close()
        finally:
            self.connected = False
        logger.info("Adapter disconnected", extra={"service": self.name})
        return True

    async def execute(
        self, operation: str, data: Any = None, options: Optional[RequestOptions] = None
    ) -> IntegrationResponse:
        """
        Run one operation and wrap the outcome in an IntegrationResponse.

        Raises:
            AdapterStateError: connect() has not been called
        """
        if not self.connected:
            raise AdapterStateError(f"Adapter {self.name} is not connected")

        options = options or RequestOptions()
        start_time = time.perf_counter()

        try:
            if operation in self.local_operations:
                response = await self.execute_local(operation, data, options)
            else:
                response = await self.breaker.execute(lambda: self.call(operation, data, options))
        except CircuitOpenError as e:
            circuit_rejection_counter.labels(service=self.name).inc()
            record_integration_call(self.name, operation, "rejected", time.perf_counter() - start_time)
            logger.warning(
                "Call rejected by open circuit breaker",
                extra={"service": self.name, "operation": operation, "correlation_id": options.correlation_id},
            )
            return failure_response(e, options, operation)
        except IntegrationError as e:
            record_integration_call(self.name, operation, "failure", time.perf_counter() - start_time)
            logger.error(
                f"Integration call failed: {e.message}",
                extra={
                    "service": self.name,
                    "operation": operation,
                    "correlation_id": options.correlation_id,
                    "status_code": e.status_code,
                    "retryable": e.retryable,
                },
            )
            return failure_response(e, options, operation)

        record_integration_call(self.name, operation, "success", time.perf_counter() - start_time)
        response.metadata.setdefault("operation", operation)
        return response

    async def call(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        """Remote call; subclasses reshape requests and responses here"""
        return await self.dispatcher.dispatch(operation, data, options)

    async def execute_local(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        raise ConfigurationError(f"Unsupported local operation: {operation}", self.name, operation)

    async def check_health(self) -> HealthStatus:
        """
        Probe the external system.

        An OPEN breaker reports ERROR without probing until its reset timeout
        has run; after that the health check itself is the probe. A HALF_OPEN
        breaker reports MAINTENANCE while it is still collecting successes.
        """
        checked_at = utcnow()
        details = {"protocol": self.config.protocol.value}

        if not self.connected:
            return HealthStatus(IntegrationStatus.INACTIVE, None, checked_at, "Adapter is not connected", details)

        stats = self.breaker.get_stats()
        if stats.state == CircuitState.OPEN and self.breaker.seconds_until_probe() > 0:
            details.update(circuit_state=stats.state.value, failures=stats.failures)
            return HealthStatus(IntegrationStatus.ERROR, None, checked_at, "Circuit breaker is open", details)

        start_time = time.perf_counter()
        options = RequestOptions(timeout=settings.health_check_timeout_seconds)
        try:
            await self.breaker.execute(lambda: self.dispatcher.check_health(options))
            status, message = IntegrationStatus.ACTIVE, "Integration is healthy"
        except IntegrationError as e:
            status, message = IntegrationStatus.ERROR, e.message
        response_time_ms = (time.perf_counter() - start_time) * 1000

        stats = self.breaker.get_stats()
        if status == IntegrationStatus.ACTIVE and stats.state == CircuitState.HALF_OPEN:
            status, message = IntegrationStatus.MAINTENANCE, "Circuit breaker is recovering"
        details.update(circuit_state=stats.state.value, failures=stats.failures, successes=stats.successes)

        return HealthStatus(status, response_time_ms, checked_at, message, details)
