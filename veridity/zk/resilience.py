"""
Veridity Resilience Infrastructure

Guards around the external proving backend. A proof generation passes
through three gates, each with its own rejection exception so the proof
service can put a precise reason on the fallback envelope:

    Bulkhead ──► CircuitBreaker ──► Timeout ──► ProofBackend.prove
    (capacity)   (recent failures)  (latency)

    bulkhead.acquire()              # BulkheadFullError
    with breaker:                   # CircuitBreakerOpenError
        future = pool.submit(backend.prove, artifacts, claim)
        future.add_done_callback(lambda _f: bulkhead.release())
        output = timeout.wait(future, started)   # OperationTimeoutError

The bulkhead permit is released by the worker, not the caller, so a
generation abandoned by the timeout still occupies its slot until the
prover really returns.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import concurrent.futures
import threading
import time
from enum import Enum
from typing import Callable, Tuple, Type, TypeVar

from veridity.zk.observability import Layer, get_logger

T = TypeVar("T")

logger = get_logger("resilience", Layer.RESILIENCE)


# ════════════════════════════════════════════════════════════════════════════
# CIRCUIT BREAKER
# ════════════════════════════════════════════════════════════════════════════


class BreakerState(Enum):
    CLOSED = "closed"        # calls pass through
    OPEN = "open"            # calls rejected until the reset period elapses
    HALF_OPEN = "half_open"  # one trial call decides


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit breaker rejects a call."""
    def __init__(self, breaker_name: str, state: BreakerState):
        self.breaker_name = breaker_name
        self.state = state
        super().__init__(f"Circuit breaker '{breaker_name}' is {state.value}")


class CircuitBreaker:
    """
    Stops calling a prover that keeps failing.

    After ``failure_threshold`` consecutive failures the breaker opens and
    rejects calls for ``reset_seconds``. It then admits one trial call: a
    success closes it, a failure opens it again.

    Exceptions in ``excluded_exceptions`` are faults of the request, not of
    the prover. They neither count as failures nor settle the trial; when
    the trial call ends in one, the next call becomes the trial.

        with breaker:
            output = backend.prove(artifacts, claim)
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_seconds: float = 30.0,
        excluded_exceptions: Tuple[Type[BaseException], ...] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_seconds = reset_seconds
        self.excluded_exceptions = excluded_exceptions
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_running = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            self._expire_open()
            return self._state

    def _expire_open(self) -> None:
        if self._state is BreakerState.OPEN and self._clock() - self._opened_at >= self.reset_seconds:
            self._move(BreakerState.HALF_OPEN)

    def _move(self, state: BreakerState) -> None:
        previous, self._state = self._state, state
        if state is BreakerState.OPEN:
            self._opened_at = self._clock()
        elif state is BreakerState.CLOSED:
            self._failures = 0
        self._trial_running = False
        if previous is not state:
            logger.info("Circuit breaker state changed", breaker=self.name,
                        old_state=previous.value, new_state=state.value)

    def __enter__(self) -> "CircuitBreaker":
        with self._lock:
            self._expire_open()
            if self._state is BreakerState.CLOSED:
                return self
            if self._state is BreakerState.HALF_OPEN and not self._trial_running:
                self._trial_running = True
                return self
            raise CircuitBreakerOpenError(self.name, self._state)

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        with self._lock:
            if exc_val is None:
                self._failures = 0
                if self._state is BreakerState.HALF_OPEN:
                    self._move(BreakerState.CLOSED)
            elif isinstance(exc_val, self.excluded_exceptions):
                # the trial slot is free again; nothing was learned about the prover
                if self._state is BreakerState.HALF_OPEN:
                    self._trial_running = False
            else:
                self._failures += 1
                if self._state is BreakerState.HALF_OPEN or self._failures >= self.failure_threshold:
                    self._move(BreakerState.OPEN)
        return False


# ════════════════════════════════════════════════════════════════════════════
# BULKHEAD
# ════════════════════════════════════════════════════════════════════════════


class BulkheadFullError(Exception):
    """Raised when bulkhead is at capacity."""
    def __init__(self, name: str, max_concurrent: int):
        self.name = name
        self.max_concurrent = max_concurrent
        super().__init__(f"Bulkhead '{name}' at capacity ({max_concurrent})")


class Bulkhead:
    """Caps in-flight proof generations; never waits for a permit."""

    def __init__(self, name: str, max_concurrent: int = 10):
        self.name = name
        self.max_concurrent = max_concurrent
        self._permits = threading.BoundedSemaphore(max_concurrent)

    def acquire(self) -> None:
        if not self._permits.acquire(blocking=False):
            logger.warning("Bulkhead full", bulkhead=self.name, max_concurrent=self.max_concurrent)
            raise BulkheadFullError(self.name, self.max_concurrent)

    def release(self) -> None:
        self._permits.release()


# ════════════════════════════════════════════════════════════════════════════
# TIMEOUT
# ════════════════════════════════════════════════════════════════════════════


class OperationTimeoutError(Exception):
    """Raised when an operation exceeds its timeout."""
    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Operation '{operation}' timed out after {timeout_seconds}s")


class Timeout:
    """
    Deadline for work already running on a worker pool.

    The caller gives up after ``seconds`` counted from ``started``. A
    worker thread cannot be interrupted, so an expired call keeps running
    in the background and its result is discarded.
    """

    def __init__(self, seconds: float, name: str = "operation"):
        self.seconds = seconds
        self.name = name

    def wait(self, future: "concurrent.futures.Future[T]", started: float) -> T:
        remaining = max(0.0, self.seconds - (time.monotonic() - started))
        try:
            return future.result(timeout=remaining)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise OperationTimeoutError(self.name, self.seconds) from None
