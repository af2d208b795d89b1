"""
Circuit breaker guarding calls to an unreliable remote system.

Recovery is checked lazily on each call: while OPEN, a call attempt compares
the time elapsed since the last state change against the reset timeout and,
once it has elapsed, moves the breaker to HALF_OPEN and lets that call through
as a probe. No timer is scheduled, so nothing is left pending when the owning
adapter is torn down.

The transitions are pure functions from old stats to new stats; the
CircuitBreaker class only holds the current value and runs the wrapped call.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from hcbs_gateway.domain.enums import CircuitState
from hcbs_gateway.domain.exceptions import CircuitOpenError
from hcbs_gateway.domain.models import CircuitBreakerConfig, CircuitBreakerStats, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]
TransitionListener = Callable[[str, CircuitBreakerStats, CircuitBreakerStats], None]


def _elapsed_seconds(stats: CircuitBreakerStats, now: datetime) -> float:
    if stats.last_state_change is None:
        return float("inf")
    return (now - stats.last_state_change).total_seconds()


def admit(
    stats: CircuitBreakerStats, config: CircuitBreakerConfig, now: datetime
) -> Tuple[CircuitBreakerStats, bool]:
    """
    Decide whether a call may proceed.

    Returns the (possibly updated) stats and whether the call is allowed. An
    OPEN breaker whose reset timeout has elapsed moves to HALF_OPEN and admits
    the call as a probe.
    """
    if stats.state != CircuitState.OPEN:
        return stats, True

    if _elapsed_seconds(stats, now) >= config.reset_timeout_seconds:
        probing = replace(stats, state=CircuitState.HALF_OPEN, successes=0, last_state_change=now)
        return probing, True

    return stats, False


def record_success(
    stats: CircuitBreakerStats, config: CircuitBreakerConfig, now: datetime
) -> CircuitBreakerStats:
    """Count a success; enough consecutive HALF_OPEN successes close the breaker"""
    updated = replace(stats, successes=stats.successes + 1, last_success=now)

    if updated.state == CircuitState.HALF_OPEN and updated.successes >= config.half_open_success_threshold:
        return replace(updated, state=CircuitState.CLOSED, failures=0, successes=0, last_state_change=now)

    return updated


def record_failure(
    stats: CircuitBreakerStats, config: CircuitBreakerConfig, now: datetime
) -> CircuitBreakerStats:
    """Count a failure; trips CLOSED at the threshold and re-opens HALF_OPEN immediately"""
    updated = replace(stats, failures=stats.failures + 1, last_failure=now)

    if updated.state == CircuitState.CLOSED and updated.failures >= config.failure_threshold:
        return replace(updated, state=CircuitState.OPEN, last_state_change=now)

    if updated.state == CircuitState.HALF_OPEN:
        return replace(updated, state=CircuitState.OPEN, successes=0, last_state_change=now)

    return updated


def retry_after(stats: CircuitBreakerStats, config: CircuitBreakerConfig, now: datetime) -> float:
    """Seconds until an OPEN breaker will admit a probe"""
    if stats.state != CircuitState.OPEN:
        return 0.0
    return max(0.0, config.reset_timeout_seconds - _elapsed_seconds(stats, now))


class CircuitBreaker:
    """
    Per-adapter breaker. Stats are owned by this instance and never shared.

    Concurrent calls on one event loop interleave their updates; each
    read-modify-write happens between awaits, so no locking is needed.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Optional[Clock] = None,
        on_transition: Optional[TransitionListener] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock or utcnow
        self._on_transition = on_transition
        self._stats = CircuitBreakerStats(last_state_change=self._clock())

    @property
    def state(self) -> CircuitState:
        return self._stats.state

    def get_stats(self) -> CircuitBreakerStats:
        """Copy of the current stats; callers never see the live record"""
        return replace(self._stats)

    def seconds_until_probe(self) -> float:
        """0 unless OPEN with the reset timeout still running"""
        return retry_after(self._stats, self.config, self._clock())

    def reset(self) -> None:
        self._set(CircuitBreakerStats(last_state_change=self._clock()))

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn under the breaker.

        Raises:
            CircuitOpenError: breaker is OPEN and not yet eligible for a probe;
                fn is not called
            Exception: whatever fn raised, after the failure is recorded
        """
        now = self._clock()
        stats, allowed = admit(self._stats, self.config, now)
        self._set(stats)

        if not allowed:
            wait = retry_after(self._stats, self.config, now)
            logger.debug(
                "Circuit breaker rejected call",
                extra={"service": self.name, "retry_after": wait},
            )
            raise CircuitOpenError(self.name, "execute", wait)

        try:
            result = await fn()
        except Exception:
            self._set(record_failure(self._stats, self.config, self._clock()))
            raise

        self._set(record_success(self._stats, self.config, self._clock()))
        return result

    def _set(self, new: CircuitBreakerStats) -> None:
        old = self._stats
        self._stats = new
        if old.state == new.state:
            return

        context = {"service": self.name, "state": new.state.value, "failures": new.failures}
        if new.state == CircuitState.OPEN:
            logger.warning("Circuit breaker opened", extra=context)
        else:
            logger.info("Circuit breaker state changed", extra=context)

        if self._on_transition is not None:
            self._on_transition(self.name, old, new)
