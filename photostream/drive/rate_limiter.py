"""Request gate for Drive API calls.

Every outbound call waits for a token from a token bucket. When Drive
signals overload the permitted rate is multiplied by a decay factor and
the call is retried. The rate never increases again for the lifetime of
the gate.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, TypeVar

from googleapiclient.errors import HttpError

from photostream.core.config import settings
from photostream.core.logging import get_logger
from photostream.drive.exceptions import RateLimitExceededError, RequestCancelledError
from photostream.schemas.photo import RateState

logger = get_logger(__name__)

T = TypeVar("T")


class OverloadPolicy:
    """Decides what counts as overload and how the gate reacts to it.

    Args:
        decay: Factor applied to the rate on each overload signal.
        max_attempts: Overloaded attempts allowed per call (None is unbounded).
        min_rate: Floor for the decayed rate (None means no floor).
        markers: Lower-case substrings that identify a rate limit error.
    """

    def __init__(
        self,
        decay: float | None = None,
        max_attempts: int | None = None,
        min_rate: float | None = None,
        markers: list[str] | None = None,
    ):
        self.decay = settings.rate_limit_decay if decay is None else decay
        self.max_attempts = (
            settings.rate_limit_max_attempts if max_attempts is None else max_attempts
        )
        self.min_rate = settings.rate_limit_min_qps if min_rate is None else min_rate
        if markers is None:
            markers = settings.overload_markers
        self.markers = [m.lower() for m in markers]

    def is_overload(self, error: BaseException) -> bool:
        if isinstance(error, HttpError) and error.resp.status == 429:
            return True
        error_str = str(error).lower()
        return any(marker in error_str for marker in self.markers)

    def next_rate(self, rate: float) -> float:
        rate *= self.decay
        if self.min_rate is not None:
            rate = max(rate, self.min_rate)
        return rate

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts


class RequestGate:
    """Token bucket limiter wrapping every Drive call.

    Usage:
        gate = get_request_gate()
        result = await gate.execute(request.execute, cancel_event)
    """

    def __init__(
        self,
        rate: float | None = None,
        burst: int | None = None,
        policy: OverloadPolicy | None = None,
    ):
        """Initialize the gate.

        Args:
            rate: Initial permitted requests per second (default from settings).
            burst: Token bucket size (default from settings).
            policy: Overload handling policy.

        Raises:
            ValueError: If rate is not positive or burst is below one.
        """
        self._rate = float(settings.rate_limit_qps if rate is None else rate)
        self.burst = settings.rate_limit_burst if burst is None else burst
        self.policy = OverloadPolicy() if policy is None else policy
        if self._rate <= 0:
            raise ValueError(f"rate must be positive, got {self._rate}")
        if self.burst < 1:
            raise ValueError(f"burst must be at least 1, got {self.burst}")

        # Token bucket state. Tokens go negative while waiters hold reservations.
        self.tokens = float(self.burst)
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

        # Metrics
        self._requests_total = 0
        self._throttled_count = 0
        self._overload_count = 0

        logger.info(
            "request_gate_initialized",
            rate=self._rate,
            burst=self.burst,
            decay=self.policy.decay,
            max_attempts=self.policy.max_attempts,
        )

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def state(self) -> RateState:
        return RateState(rate=self._rate, burst=self.burst)

    def _refill(self, now: float) -> None:
        elapsed = now - self.last_refill
        self.tokens = min(float(self.burst), self.tokens + elapsed * self._rate)
        self.last_refill = now

    async def acquire(self, cancel_event: asyncio.Event | None = None) -> None:
        """Wait until a token is available.

        Args:
            cancel_event: Aborts the wait when set.

        Raises:
            RequestCancelledError: If cancel_event is set before a token is granted.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelledError()

        async with self._lock:
            self._refill(time.monotonic())
            self.tokens -= 1
            wait_time = -self.tokens / self._rate if self.tokens < 0 else 0.0

        self._requests_total += 1
        if wait_time <= 0:
            return

        self._throttled_count += 1
        logger.debug(
            "request_gate_throttling",
            wait_time=round(wait_time, 3),
            rate=self._rate,
        )
        try:
            await self._sleep(wait_time, cancel_event)
        except (RequestCancelledError, asyncio.CancelledError):
            # Give the reserved token back
            async with self._lock:
                self.tokens = min(float(self.burst), self.tokens + 1)
            raise

    @staticmethod
    async def _sleep(delay: float, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise RequestCancelledError()

    async def _degrade(self, error: BaseException, attempt: int, operation: str) -> None:
        async with self._lock:
            self._refill(time.monotonic())
            old_rate = self._rate
            self._rate = self.policy.next_rate(old_rate)

        logger.warning(
            "request_gate_overload",
            operation=operation,
            attempt=attempt,
            old_rate=round(old_rate, 4),
            new_rate=round(self._rate, 4),
            error=str(error),
        )

    async def execute(
        self,
        call: Callable[[], T],
        cancel_event: asyncio.Event | None = None,
        operation: str = "drive call",
    ) -> T:
        """Run a blocking call under rate control.

        The call runs in a worker thread. Overload errors degrade the rate
        and retry; any other error propagates unchanged.

        Args:
            call: Blocking callable, typically a googleapiclient request's execute.
            cancel_event: Aborts any token wait when set.
            operation: Description of the call for logging.

        Returns:
            Whatever ``call`` returns.

        Raises:
            RequestCancelledError: If cancelled while waiting for a token.
            RateLimitExceededError: If the policy's attempt ceiling is reached.
        """
        attempt = 0
        while True:
            await self.acquire(cancel_event)
            attempt += 1
            try:
                return await asyncio.to_thread(call)
            except Exception as e:
                if not self.policy.is_overload(e):
                    raise
                self._overload_count += 1
                await self._degrade(e, attempt, operation)
                if self.policy.exhausted(attempt):
                    logger.error(
                        "request_gate_max_attempts",
                        operation=operation,
                        attempts=attempt,
                    )
                    raise RateLimitExceededError(attempt) from e

    def get_stats(self) -> dict[str, Any]:
        """Get request gate statistics.

        Returns:
            Dictionary with gate stats.
        """
        return {
            "rate": self._rate,
            "burst": self.burst,
            "tokens_available": self.tokens,
            "requests_total": self._requests_total,
            "throttled_count": self._throttled_count,
            "overload_count": self._overload_count,
        }


# Global gate instance (initialized lazily with settings)
_gate: RequestGate | None = None


def get_request_gate() -> RequestGate:
    """Get or create the process-wide request gate."""
    global _gate
    if _gate is None:
        _gate = RequestGate()
    return _gate
