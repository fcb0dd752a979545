import time
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional
import logging

from .config import ProviderSpec
from .error_handler import RateLimitExceededError

logger = logging.getLogger("lookup_rotator.rate_limiter")


@dataclass(frozen=True)
class RateBudget:
    """Allowed requests per window for one provider."""

    limit: int
    window_seconds: float


@dataclass
class RateLimitWindow:
    """Counter state of one provider's current window."""

    requests: int = 0
    window_reset_at: float = 0.0


class RateLimiter:
    """
    Tracks a request budget per provider over a rolling window.

    Check and consume happen in one locked step: an allowed call has already
    been counted when try_consume() returns. Counters live in memory only and
    start over on process restart; this guards against accidental over-use of
    free tiers, it is not an auditable quota.
    """

    def __init__(
        self,
        budgets: Mapping[str, RateBudget],
        clock: Callable[[], float] = time.time,
    ):
        self._budgets = dict(budgets)
        self._windows: Dict[str, RateLimitWindow] = {}
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def from_providers(
        cls,
        providers: Mapping[str, ProviderSpec],
        clock: Callable[[], float] = time.time,
    ) -> "RateLimiter":
        budgets = {
            name: RateBudget(spec.rate_limit, spec.window_seconds)
            for name, spec in providers.items()
            if spec.rate_limit and spec.window_seconds
        }
        return cls(budgets, clock=clock)

    def try_consume(self, provider: str) -> bool:
        """
        Consume one request from the provider's budget.

        If the window has expired (now >= window_reset_at) the counter resets
        and a new window starts at `now` before the check, so a request at or
        after expiry always sees a fresh budget. Providers without a budget
        are unlimited but still counted.

        Returns:
            True when allowed (and counted), False when denied
        """
        with self._lock:
            now = self._clock()
            window = self._windows.setdefault(provider, RateLimitWindow())
            budget = self._budgets.get(provider)

            if budget is None:
                window.requests += 1
                return True

            if now >= window.window_reset_at:
                window.requests = 0
                window.window_reset_at = now + budget.window_seconds

            if window.requests >= budget.limit:
                logger.debug(
                    f"Rate limit hit for {provider}: {window.requests}/{budget.limit}"
                )
                return False

            window.requests += 1
            return True

    def acquire(self, provider: str) -> None:
        """
        try_consume() for callers that branch on exceptions.

        Raises:
            RateLimitExceededError: the provider's budget for this window is spent
        """
        if not self.try_consume(provider):
            raise RateLimitExceededError(provider)

    def remaining(self, provider: str) -> Optional[int]:
        """Requests left in the current window, or None when unlimited."""
        with self._lock:
            budget = self._budgets.get(provider)
            if budget is None:
                return None
            window = self._windows.get(provider)
            if window is None or self._clock() >= window.window_reset_at:
                return budget.limit
            return max(0, budget.limit - window.requests)

    def get_usage_stats(self) -> Dict[str, Any]:
        """Get current usage statistics for every provider with a budget or usage."""
        with self._lock:
            now = self._clock()
            stats = {}
            for provider in sorted(set(self._budgets) | set(self._windows)):
                budget = self._budgets.get(provider)
                window = self._windows.get(provider)
                if window is None or (
                    budget is not None and now >= window.window_reset_at
                ):
                    used, reset_at = 0, None
                else:
                    used = window.requests
                    reset_at = window.window_reset_at if budget else None
                stats[provider] = {
                    "used": used,
                    "limit": budget.limit if budget else None,
                    "remaining": max(0, budget.limit - used) if budget else None,
                    "window_seconds": budget.window_seconds if budget else None,
                    "window_reset_at": reset_at,
                }
            return stats
