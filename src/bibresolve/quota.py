"""Daily quota circuit breaker for metered providers."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Literal

from pydantic import BaseModel, Field

from bibresolve.cache.client import KeyValueStore
from bibresolve.cache.keys import CacheKeys
from bibresolve.core.exceptions import StoreError
from bibresolve.core.types import BreakerState

logger = logging.getLogger(__name__)

# Counters outlive their window so late readers still see them, then expire.
COUNTER_TTL_SECONDS = 2 * 24 * 3600

CRON_QUOTA_MULTIPLIER = 2
BULK_OPERATION_MAX_CALLS = 100

Operation = Literal["cron", "bulk_author", "batch_direct", "new_releases", "backfill"]


def window_for(timestamp: float, reset_hour_utc: int = 0) -> date:
    """
    Billing day that contains a timestamp.

    The day starts at ``reset_hour_utc`` o'clock UTC, so with a reset hour of
    6 the instant 2025-01-02T05:59Z still belongs to 2025-01-01.
    """
    moment = datetime.fromtimestamp(timestamp, UTC) - timedelta(hours=reset_hour_utc)
    return moment.date()


def window_bounds(window: date, reset_hour_utc: int = 0) -> tuple[datetime, datetime]:
    """Start and end (exclusive) of a billing day."""
    start = datetime(window.year, window.month, window.day, reset_hour_utc, tzinfo=UTC)
    return start, start + timedelta(days=1)


@dataclass(frozen=True)
class QuotaState:
    """Usage snapshot for one billing day."""

    used_today: int
    daily_limit: int
    window_start: datetime


class QuotaStatus(BaseModel):
    """Quota status as reported to callers."""

    used_today: int
    remaining: int
    limit: int
    window_start: datetime
    next_reset_in_hours: float
    buffer_remaining: int
    can_make_calls: bool


class QuotaCheckResult(BaseModel):
    """Answer to a quota check."""

    allowed: bool
    status: QuotaStatus
    reason: str | None = Field(default=None)


class QuotaManager:
    """
    Tracks a metered provider's daily call budget in the shared store.

    Two-phase protocol:
    1. ``check_quota(cost)`` before the request; a denied check means the
       request must not be issued.
    2. ``record_api_call(cost)`` after the request, whether it succeeded or not.

    The counter key embeds the billing day, so the reset at the day boundary
    is a pure function of the clock. Calls are allowed while usage stays
    within ``daily_limit - safety_buffer``; the buffer is held back for
    manual operations and absorbs races between concurrent workers.
    """

    def __init__(
        self,
        store: KeyValueStore,
        provider: str,
        daily_limit: int,
        safety_buffer: int = 0,
        reset_hour_utc: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self.provider = provider
        self.daily_limit = daily_limit
        self.safety_buffer = min(safety_buffer, daily_limit)
        self.reset_hour_utc = reset_hour_utc
        self._clock = clock

    @property
    def effective_limit(self) -> int:
        return self.daily_limit - self.safety_buffer

    def current_window(self) -> date:
        return window_for(self._clock(), self.reset_hour_utc)

    def _key(self, window: date) -> str:
        return CacheKeys.quota_usage(self.provider, window)

    async def _read_used(self, window: date) -> int:
        value = await self._store.get(self._key(window))
        return int(value) if value is not None else 0

    async def get_state(self) -> QuotaState:
        """Raw usage for the current window. Raises StoreError."""
        window = self.current_window()
        start, _ = window_bounds(window, self.reset_hour_utc)
        return QuotaState(
            used_today=await self._read_used(window),
            daily_limit=self.daily_limit,
            window_start=start,
        )

    def _build_status(self, used: int, window: date) -> QuotaStatus:
        start, end = window_bounds(window, self.reset_hour_utc)
        now = datetime.fromtimestamp(self._clock(), UTC)
        buffer_remaining = max(0, self.effective_limit - used)
        return QuotaStatus(
            used_today=used,
            remaining=max(0, self.daily_limit - used),
            limit=self.daily_limit,
            window_start=start,
            next_reset_in_hours=round((end - now).total_seconds() / 3600, 2),
            buffer_remaining=buffer_remaining,
            can_make_calls=buffer_remaining > 0,
        )

    def _fallback_status(self, window: date) -> QuotaStatus:
        # Store unreachable: report nothing left so callers stay closed.
        status = self._build_status(0, window)
        return status.model_copy(update={"buffer_remaining": 0, "can_make_calls": False})

    async def get_status(self) -> QuotaStatus:
        """Current quota status. Store failures report a closed breaker."""
        window = self.current_window()
        try:
            used = await self._read_used(window)
        except StoreError as e:
            logger.error(f"Quota status unavailable for {self.provider}: {e}")
            return self._fallback_status(window)
        return self._build_status(used, window)

    async def state(self) -> BreakerState:
        """CLOSED while calls are allowed, OPEN until the next reset otherwise."""
        status = await self.get_status()
        return BreakerState.CLOSED if status.can_make_calls else BreakerState.OPEN

    async def check_quota(self, cost: int = 1, reserve: bool = False) -> QuotaCheckResult:
        """
        Check whether ``cost`` more calls fit in today's budget.

        With ``reserve=True`` the calls are counted immediately and the caller
        must not record them again. A reservation that loses a race stays
        counted, which can only overcount.
        """
        window = self.current_window()
        try:
            used = await self._read_used(window)
        except StoreError as e:
            logger.error(f"Quota check failed for {self.provider}, denying: {e}")
            return QuotaCheckResult(
                allowed=False,
                status=self._fallback_status(window),
                reason=f"Quota check failed due to store error: {e.message}",
            )

        status = self._build_status(used, window)
        if used + cost > self.effective_limit:
            return QuotaCheckResult(
                allowed=False,
                status=status,
                reason=(
                    f"Request would exceed daily limit. Need {cost} calls, "
                    f"but only {status.buffer_remaining} remaining."
                ),
            )

        if not reserve:
            return QuotaCheckResult(allowed=True, status=status)

        try:
            new_used = await self._store.incr_by(
                self._key(window), cost, ttl=COUNTER_TTL_SECONDS
            )
        except StoreError as e:
            logger.error(f"Quota reservation failed for {self.provider}, denying: {e}")
            return QuotaCheckResult(
                allowed=False,
                status=self._fallback_status(window),
                reason=f"Quota reservation failed due to store error: {e.message}",
            )

        status = self._build_status(new_used, window)
        if new_used > self.effective_limit:
            return QuotaCheckResult(
                allowed=False,
                status=status,
                reason="Quota was exhausted by concurrent request",
            )
        return QuotaCheckResult(allowed=True, status=status)

    async def record_api_call(self, cost: int = 1) -> None:
        """Count calls that were attempted. Never raises."""
        window = self.current_window()
        try:
            await self._store.incr_by(self._key(window), cost, ttl=COUNTER_TTL_SECONDS)
        except StoreError as e:
            logger.error(f"Failed to record {cost} {self.provider} call(s): {e}")

    async def reset(self) -> None:
        """Clear today's counter (manual operations and tests)."""
        await self._store.delete(self._key(self.current_window()))

    async def safe_batch_size(self, max_batch_size: int = 1000, items_per_call: int = 1000) -> int:
        """
        Items that can be processed while spending at most half the buffer.

        Returns 0 when the breaker is open.
        """
        status = await self.get_status()
        if not status.can_make_calls:
            return 0
        return min(max_batch_size, (status.buffer_remaining // 2) * items_per_call)

    async def should_allow_operation(
        self,
        operation: Operation,
        estimated_calls: int = 1,
    ) -> QuotaCheckResult:
        """Quota check with per-operation rules layered on top."""
        result = await self.check_quota(estimated_calls)
        if not result.allowed:
            return result

        if operation == "cron":
            needed = estimated_calls * CRON_QUOTA_MULTIPLIER
            if result.status.buffer_remaining < needed:
                return QuotaCheckResult(
                    allowed=False,
                    status=result.status,
                    reason=(
                        f"Cron operation blocked: need {needed} buffer calls, "
                        f"only {result.status.buffer_remaining} remaining"
                    ),
                )
        elif operation == "bulk_author" and estimated_calls > BULK_OPERATION_MAX_CALLS:
            return QuotaCheckResult(
                allowed=False,
                status=result.status,
                reason=(
                    f"Bulk operation too large: {estimated_calls} calls requested, "
                    f"max {BULK_OPERATION_MAX_CALLS} allowed"
                ),
            )

        return result
