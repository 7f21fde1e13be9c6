"""
Per-source circuit breaker.

Each source id gets its own rolling window of attempt outcomes and a
three-state gate:

- CLOSED: requests flow; the circuit opens once the failure rate over the
  window reaches the threshold with at least `min_samples` attempts.
- OPEN: requests are rejected pre-flight until the cool-down elapses.
- HALF_OPEN: a bounded number of trial requests are let through; a success
  closes the circuit, a failure re-opens it with a longer cool-down.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerState:
    """Rolling state for a single source"""
    source_id: str
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    successes: int = 0
    attempts: Deque[bool] = field(default_factory=deque)  # True = success
    opened_at: Optional[float] = None
    cooldown_seconds: float = 0.0
    half_open_trials: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    last_state_change: Optional[float] = None
    last_error: Optional[str] = None

    def failure_rate(self) -> float:
        if not self.attempts:
            return 0.0
        return sum(1 for ok in self.attempts if not ok) / len(self.attempts)


class CircuitBreaker:
    """Failure-rate circuit breaker keyed by source id."""

    def __init__(
        self,
        failure_threshold: float = 0.5,
        window_size: int = 10,
        min_samples: int = 3,
        cooldown_seconds: float = 900.0,
        half_open_max_trials: int = 1,
        max_cooldown_multiplier: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.window_size = window_size
        self.min_samples = min_samples
        self.cooldown_seconds = cooldown_seconds
        self.half_open_max_trials = max(1, half_open_max_trials)
        self.max_cooldown = cooldown_seconds * max(1, max_cooldown_multiplier)
        self._clock = clock
        self._circuits: Dict[str, CircuitBreakerState] = {}
        self.logger = logging.getLogger(__name__)

    def _circuit(self, source_id: str) -> CircuitBreakerState:
        circuit = self._circuits.get(source_id)
        if circuit is None:
            circuit = CircuitBreakerState(
                source_id=source_id,
                attempts=deque(maxlen=self.window_size),
                cooldown_seconds=self.cooldown_seconds,
            )
            self._circuits[source_id] = circuit
        return circuit

    def _transition(self, circuit: CircuitBreakerState, new_state: CircuitState) -> None:
        old_state = circuit.state
        circuit.state = new_state
        circuit.last_state_change = self._clock()
        if new_state == CircuitState.OPEN:
            circuit.opened_at = circuit.last_state_change
            circuit.half_open_trials = 0
        elif new_state == CircuitState.HALF_OPEN:
            circuit.half_open_trials = 0
        self.logger.info(f"🔌 Circuit {circuit.source_id}: {old_state.value} → {new_state.value}")

    def allow_request(self, source_id: str) -> bool:
        """Return True when a request to the source may proceed."""
        circuit = self._circuit(source_id)

        if circuit.state == CircuitState.CLOSED:
            return True

        if circuit.state == CircuitState.OPEN:
            elapsed = self._clock() - (circuit.opened_at or 0.0)
            if elapsed < circuit.cooldown_seconds:
                self.logger.debug(
                    f"Circuit open for {source_id} ({circuit.cooldown_seconds - elapsed:.0f}s remaining)"
                )
                return False
            self._transition(circuit, CircuitState.HALF_OPEN)

        # HALF_OPEN: bounded trial requests
        if circuit.half_open_trials < self.half_open_max_trials:
            circuit.half_open_trials += 1
            return True
        return False

    def release_trial(self, source_id: str) -> None:
        """Give back a half-open trial slot whose request never reported an outcome."""
        circuit = self._circuit(source_id)
        if circuit.state == CircuitState.HALF_OPEN and circuit.half_open_trials > 0:
            circuit.half_open_trials -= 1
            self.logger.debug(f"Trial slot released for {source_id}")

    def record_success(self, source_id: str) -> None:
        circuit = self._circuit(source_id)
        circuit.successes += 1
        circuit.attempts.append(True)
        circuit.last_success_time = self._clock()

        if circuit.state == CircuitState.HALF_OPEN:
            circuit.cooldown_seconds = self.cooldown_seconds
            circuit.attempts.clear()
            self._transition(circuit, CircuitState.CLOSED)

    def record_failure(self, source_id: str, error: Any = None) -> None:
        circuit = self._circuit(source_id)
        circuit.failures += 1
        circuit.attempts.append(False)
        circuit.last_failure_time = self._clock()
        if error is not None:
            circuit.last_error = str(error) or type(error).__name__

        if circuit.state == CircuitState.HALF_OPEN:
            circuit.cooldown_seconds = min(circuit.cooldown_seconds * 2, self.max_cooldown)
            self.logger.warning(
                f"⚠️ Trial request to {source_id} failed; re-opening for {circuit.cooldown_seconds:.0f}s"
            )
            self._transition(circuit, CircuitState.OPEN)
            return

        if circuit.state == CircuitState.CLOSED:
            rate = circuit.failure_rate()
            if len(circuit.attempts) >= self.min_samples and rate >= self.failure_threshold:
                self.logger.warning(
                    f"⚠️ Circuit breaker opened for {source_id} "
                    f"({rate:.0%} failures over {len(circuit.attempts)} attempts)"
                )
                self._transition(circuit, CircuitState.OPEN)

    def get_state(self, source_id: str) -> CircuitState:
        return self._circuit(source_id).state

    def get_stats(self, source_id: str) -> Dict[str, Any]:
        circuit = self._circuit(source_id)
        rate = circuit.failure_rate()
        return {
            "state": circuit.state.value,
            "failures": circuit.failures,
            "successes": circuit.successes,
            "failure_rate": rate,
            "failure_rate_percent": round(rate * 100, 1),
            "recent_attempts": len(circuit.attempts),
            "cooldown_seconds": circuit.cooldown_seconds,
            "last_failure_time": circuit.last_failure_time,
            "last_success_time": circuit.last_success_time,
            "last_state_change": circuit.last_state_change,
            "last_error": circuit.last_error,
            "is_healthy": circuit.state == CircuitState.CLOSED and rate < self.failure_threshold,
        }

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {source_id: self.get_stats(source_id) for source_id in self._circuits}

    def reset(self, source_id: str) -> None:
        self._circuits.pop(source_id, None)
        self.logger.info(f"Circuit reset for {source_id}")

    def reset_all(self) -> None:
        self._circuits.clear()
        self.logger.info("All circuits reset")
