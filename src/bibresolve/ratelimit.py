"""Distributed per-provider rate limiter backed by the shared store."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from bibresolve.cache.client import KeyValueStore
from bibresolve.cache.keys import CacheKeys
from bibresolve.core.exceptions import StoreError
from bibresolve.core.types import RateLimitStrategy

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a minimum interval between requests to each provider.

    The last-request timestamp lives in the shared store so concurrent
    workers cooperate. The read-modify-write is not atomic: two callers may
    both pass the check. If the store is unreachable the caller proceeds
    without waiting.
    """

    def __init__(
        self,
        store: KeyValueStore,
        strategy: RateLimitStrategy = RateLimitStrategy.ENFORCE,
        token_ttl: int = 60,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self.strategy = strategy
        self._token_ttl = token_ttl
        self._clock = clock
        self._sleep = sleep

    async def wait(self, provider_key: str, interval_seconds: float) -> float:
        """
        Wait until the provider's interval has elapsed, then take the token.

        Returns:
            Seconds slept (0.0 when no wait was needed or enforced).
        """
        if self.strategy == RateLimitStrategy.DISABLED or interval_seconds <= 0:
            return 0.0

        key = CacheKeys.rate_limit(provider_key)

        try:
            last_ms = await self._store.get(key)
        except StoreError as e:
            logger.warning(
                f"Rate limit state unavailable for {provider_key}, proceeding without wait: {e}"
            )
            return 0.0

        now_ms = self._now_ms()
        waited = 0.0

        if last_ms is not None:
            elapsed = (now_ms - int(last_ms)) / 1000
            remaining = interval_seconds - elapsed
            if remaining > 0:
                if self.strategy == RateLimitStrategy.LOG_ONLY:
                    logger.info(
                        f"Rate limit for {provider_key} would wait {remaining:.3f}s (log only)"
                    )
                else:
                    logger.debug(f"Rate limiting {provider_key}: sleeping {remaining:.3f}s")
                    await self._sleep(remaining)
                    waited = remaining
                    now_ms = self._now_ms()

        try:
            await self._store.set(key, now_ms, ttl=self._token_ttl)
        except StoreError as e:
            logger.warning(f"Could not record rate limit token for {provider_key}: {e}")

        return waited

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)
