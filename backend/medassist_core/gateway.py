from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    pass


class ProviderThrottled(ProviderError):
    """Raised by a provider call when the upstream answers HTTP 429."""


@dataclass(frozen=True)
class GenerationOutcome:
    ok: bool
    text: str | None = None
    error: str | None = None
    attempts: int = 0


class RateLimiter:
    """Enforces a minimum spacing between consecutive outbound calls.

    The lock is held while waiting, so concurrent callers are serialised and
    every pair of call starts is at least ``min_interval`` apart.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call: float | None = None

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            if self._last_call is not None:
                wait = self.min_interval - (now - self._last_call)
                if wait > 0:
                    logger.debug("rate limiting: waiting %.2fs", wait)
                    self._sleep(wait)
                    now = self._clock()
            self._last_call = now


class GenerationGateway:
    def __init__(
        self,
        limiter: RateLimiter,
        *,
        max_retries: int = 2,
        backoff_base_seconds: float = 5.0,
        backoff_cap_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.limiter = limiter
        self.max_retries = max(0, int(max_retries))
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_cap_seconds = backoff_cap_seconds
        self._sleep = sleep

    def backoff_for(self, attempt: int) -> float:
        return min(self.backoff_base_seconds * (2**attempt), self.backoff_cap_seconds)

    def call(self, fn: Callable[[], str | None], *, label: str = "generation") -> GenerationOutcome:
        """Run ``fn`` behind the rate limiter, retrying only on throttling.

        Any other failure, or an empty completion, ends the call with
        ``ok=False`` so the caller can fall back. Nothing is raised.
        """
        attempt = 0
        while True:
            self.limiter.acquire()
            try:
                text = fn()
            except ProviderThrottled as exc:
                if attempt >= self.max_retries:
                    logger.warning("%s throttled, retries exhausted after %d attempts", label, attempt + 1)
                    return GenerationOutcome(ok=False, error=f"throttled: {exc}", attempts=attempt + 1)
                delay = self.backoff_for(attempt)
                logger.warning("%s throttled, retrying in %.1fs (attempt %d)", label, delay, attempt + 1)
                self._sleep(delay)
                attempt += 1
                continue
            except Exception as exc:
                logger.warning("%s failed: %s", label, exc)
                return GenerationOutcome(ok=False, error=str(exc) or exc.__class__.__name__, attempts=attempt + 1)

            cleaned = (text or "").strip()
            if not cleaned:
                logger.info("%s returned an empty completion", label)
                return GenerationOutcome(ok=False, error="empty completion", attempts=attempt + 1)
            return GenerationOutcome(ok=True, text=cleaned, attempts=attempt + 1)
