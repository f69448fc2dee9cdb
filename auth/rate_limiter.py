"""Fixed-window rate limiting for auth endpoints.

Counters are keyed by route and client IP, so each sensitive route has its
own budget per caller. A fixed window allows up to twice the configured
rate across a window boundary; in exchange each key costs O(1) memory.

InMemoryRateLimitStore is per-process. Multi-worker deployments need a
shared RateLimitStore implementation.
"""

import asyncio
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from auth.config import AuthConfig
from auth.exceptions import RateLimitedError
from auth.security_logger import SecurityEvent, SecurityLogger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int = 0


class RateLimitStore(ABC):
    """Counter storage. Swap the in-memory one out for a shared store."""

    @abstractmethod
    def check(self, key: str, max_attempts: int, window_minutes: int) -> RateLimitDecision:
        """Count one attempt against key and decide."""

    @abstractmethod
    def sweep(self) -> int:
        """Drop entries whose window has elapsed. Returns number removed."""


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimitStore(RateLimitStore):
    """Dict of fixed windows guarded by a lock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, key: str, max_attempts: int, window_minutes: int) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                window = _Window(count=0, reset_at=now + window_minutes * 60)
                self._windows[key] = window

            window.count += 1

            if window.count > max_attempts:
                retry_after = max(math.ceil(window.reset_at - now), 1)
                return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

        return RateLimitDecision(allowed=True)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, window in self._windows.items() if window.reset_at < now]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


class RateLimiter:
    """Applies the per-route budgets from AuthConfig."""

    def __init__(
        self,
        store: RateLimitStore,
        config: AuthConfig,
        security_logger: SecurityLogger | None = None,
    ):
        self._store = store
        self._config = config
        self._security_logger = security_logger

    @staticmethod
    def key(route: str, ip_address: str | None) -> str:
        return f"{route}:{ip_address or 'unknown'}"

    def check(self, route: str, ip_address: str | None) -> None:
        """Count an attempt on route from ip_address.

        Routes without a configured rule are not limited.

        Raises:
            RateLimitedError: If the budget for this window is spent.
        """
        rule = self._config.rate_limits.get(route)
        if rule is None:
            return

        decision = self._store.check(
            self.key(route, ip_address),
            rule.max_attempts,
            rule.window_minutes,
        )
        if not decision.allowed:
            if self._security_logger is not None:
                self._security_logger.log(
                    SecurityEvent.RATE_LIMITED,
                    ip_address=ip_address,
                    details={"route": route},
                )
            else:
                logger.warning(f"Rate limit hit on {route} from {ip_address or 'unknown'}")
            raise RateLimitedError(retry_after_seconds=decision.retry_after_seconds)


class RateLimitSweeper:
    """Background task that periodically sweeps a RateLimitStore.

    Started and stopped with the application lifespan.
    """

    def __init__(self, store: RateLimitStore, interval_seconds: float = 60):
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Rate limit sweeper started (every {self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Rate limit sweeper stopped")

    def sweep_once(self) -> int:
        """Run one sweep. Failures are logged, never raised."""
        try:
            removed = self._store.sweep()
        except Exception:
            logger.exception("Rate limit sweep failed")
            return 0
        if removed:
            logger.debug(f"Swept {removed} expired rate limit windows")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.sweep_once()
