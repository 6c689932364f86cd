"""
Adaptive token bucket guarding calls to the upstream model provider.

One gate is shared by every in-flight turn in the process. `authorize()` is
called immediately before each upstream request and fails fast with
RateLimitedError instead of queuing; `observe()` feeds provider response
metadata back into the bucket.
"""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Callable, Mapping, Optional

from chatstream.core.config import get_settings
from chatstream.core.exceptions import RateLimitedError
from chatstream.core.logger import setup_logger

logger = setup_logger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}

# LiteLLM forwards provider headers with this prefix
_PROVIDER_PREFIX = "llm_provider-"


@dataclass
class RateLimitState:
    """Mutable bucket state. Never persisted."""

    tokens: int
    capacity: int
    refill_interval: float
    last_refill: float
    retry_after_deadline: Optional[float] = None


def parse_duration(value: str | None) -> Optional[float]:
    """
    Parse a provider duration header into seconds.

    Accepts bare numbers ("12", "0.5") and compound durations ("6m0s",
    "1.5s", "20ms"). Returns None when the value is absent or unparseable.
    """
    if value is None:
        return None
    raw = str(value).strip().lower()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        pass

    total = 0.0
    consumed = 0
    for match in _DURATION_PART.finditer(raw):
        if match.start() != consumed:
            return None
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        consumed = match.end()
    if consumed == 0 or consumed != len(raw):
        return None
    return total


@dataclass(frozen=True)
class RateLimitSignal:
    """Rate-limit metadata observed on a provider response."""

    retry_after: Optional[float] = None
    remaining: Optional[int] = None
    reset_after: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.retry_after is None and self.remaining is None and self.reset_after is None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str] | None) -> "RateLimitSignal":
        """Build a signal from response headers (case-insensitive)."""
        if not headers:
            return cls()

        normalized: dict[str, str] = {}
        for key, value in headers.items():
            name = str(key).lower()
            if name.startswith(_PROVIDER_PREFIX):
                name = name[len(_PROVIDER_PREFIX):]
            normalized.setdefault(name, value)

        retry_after = None
        if "retry-after-ms" in normalized:
            millis = parse_duration(normalized["retry-after-ms"])
            if millis is not None:
                retry_after = millis / 1000.0
        if retry_after is None:
            retry_after = parse_duration(normalized.get("retry-after"))

        remaining = None
        raw_remaining = normalized.get("x-ratelimit-remaining-requests")
        if raw_remaining is not None:
            try:
                remaining = max(0, int(float(raw_remaining)))
            except ValueError:
                remaining = None

        reset_after = parse_duration(normalized.get("x-ratelimit-reset-requests"))

        return cls(retry_after=retry_after, remaining=remaining, reset_after=reset_after)


class RateGate:
    """
    Process-wide token bucket.

    All state transitions happen under a threading.Lock held only for the
    duration of the arithmetic, so `authorize()` never suspends the caller.
    """

    def __init__(
        self,
        capacity: int,
        refill_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        if refill_interval <= 0:
            raise ValueError("refill_interval must be positive")
        self._clock = clock
        self._lock = threading.Lock()
        self._state = RateLimitState(
            tokens=capacity,
            capacity=capacity,
            refill_interval=refill_interval,
            last_refill=clock(),
        )

    def authorize(self) -> None:
        """
        Consume one token or raise RateLimitedError.

        Order of checks: hard retry-after deadline (no token consumed),
        interval refill, token exhaustion, consume.
        """
        with self._lock:
            state = self._state
            now = self._clock()

            if state.retry_after_deadline is not None:
                if state.retry_after_deadline > now:
                    wait = state.retry_after_deadline - now
                    logger.info(f"Rate gate closed by retry-after, {wait:.1f}s remaining")
                    raise RateLimitedError(wait)
                state.retry_after_deadline = None

            if now - state.last_refill >= state.refill_interval:
                state.tokens = state.capacity
                state.last_refill = now

            if state.tokens <= 0:
                wait = state.last_refill + state.refill_interval - now
                logger.info(f"Rate gate exhausted, next refill in {wait:.1f}s")
                raise RateLimitedError(wait)

            state.tokens -= 1

    def observe(self, signal: RateLimitSignal) -> None:
        """
        Apply provider response metadata.

        A retry-after value sets the hard deadline and fails the in-flight
        call; the token it already spent is not refunded. Remaining and
        reset values adjust the soft budget without failing the call.
        """
        if signal.is_empty:
            return

        with self._lock:
            state = self._state
            now = self._clock()

            if signal.remaining is not None:
                state.tokens = min(state.capacity, signal.remaining)
            if signal.reset_after is not None:
                # Next refill happens exactly reset_after seconds from now
                state.last_refill = now + signal.reset_after - state.refill_interval
            if signal.retry_after is not None:
                state.retry_after_deadline = now + signal.retry_after

        if signal.retry_after is not None:
            logger.warning(f"Upstream requested retry after {signal.retry_after:.1f}s")
            raise RateLimitedError(signal.retry_after)

    def snapshot(self) -> RateLimitState:
        """Return a copy of the current state."""
        with self._lock:
            return replace(self._state)


@lru_cache()
def get_rate_gate() -> RateGate:
    """Get the process-wide rate gate."""
    settings = get_settings()
    return RateGate(
        capacity=settings.RATE_LIMIT_CAPACITY,
        refill_interval=settings.RATE_LIMIT_INTERVAL_SECONDS,
    )
