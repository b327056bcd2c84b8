"""Abstract provider with HTTP client management, caching, quota and rate limiting."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, TypeVar

import httpx
from pydantic import TypeAdapter

from bibresolve import __version__
from bibresolve.cache.keys import CacheKeys
from bibresolve.context import ServiceContext
from bibresolve.core.exceptions import (
    ProviderResponseError,
    ProviderUnavailableError,
    QuotaExceededError,
    RateLimitError,
    RegistrationError,
)
from bibresolve.core.types import Capability, ProviderClass
from bibresolve.quota import QuotaManager
from bibresolve.resolution.scoring import DEFAULT_PROFILE, ScoringProfile

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

# Upper bound on a server-requested Retry-After wait
MAX_RETRY_AFTER_SECONDS = 30.0

DAY = 24 * 3600


class BaseProvider(ABC):
    """
    Abstract base class for all providers.

    Subclasses declare ``NAME``, ``PROVIDER_CLASS`` and ``CAPABILITIES`` at
    class definition and implement one coroutine per capability, named after
    the capability value (``fetch_cover`` for ``Capability.FETCH_COVER``).

    Provides:
    - Capability dispatch through ``invoke``
    - HTTP client management with retry and backoff
    - Cache, quota and rate limit handling around every request
    """

    NAME: ClassVar[str]
    PROVIDER_CLASS: ClassVar[ProviderClass]
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset()
    BASE_URL: ClassVar[str] = ""

    # Minimum seconds between requests, shared across workers
    RATE_LIMIT_INTERVAL: ClassVar[float] = 1.0
    CACHE_TTL: ClassVar[int] = 7 * DAY
    # Secret name that must resolve for the provider to be available
    CREDENTIAL: ClassVar[str | None] = None
    SCORING: ClassVar[ScoringProfile] = DEFAULT_PROFILE
    PURPOSE: ClassVar[str] = "Book metadata enrichment"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if not hasattr(cls, "NAME"):
            return
        cls.CAPABILITIES = frozenset(cls.CAPABILITIES)
        for capability in cls.CAPABILITIES:
            if not callable(getattr(cls, capability.value, None)):
                raise RegistrationError(
                    f"{cls.__name__} declares {capability} but does not implement it",
                    details={"provider": cls.NAME, "capability": capability.value},
                )

    def __init__(self, context: ServiceContext) -> None:
        self.context = context
        self.settings = context.settings
        self._client: httpx.AsyncClient | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.NAME} ({self.PROVIDER_CLASS})>"

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def provider_class(self) -> ProviderClass:
        return self.PROVIDER_CLASS

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self.CAPABILITIES

    @property
    def base_url(self) -> str:
        return self.BASE_URL

    @property
    def http_timeout(self) -> float:
        return self.settings.http_timeout

    @property
    def quota(self) -> QuotaManager | None:
        """Quota manager when this provider is metered."""
        return self.context.quota_for(self.NAME)

    def supports(self, capability: Capability) -> bool:
        return capability in self.CAPABILITIES

    async def invoke(self, capability: Capability, *args: Any, **kwargs: Any) -> Any:
        """Run the coroutine implementing ``capability``."""
        if capability not in self.CAPABILITIES:
            raise RegistrationError(
                f"Provider {self.NAME} does not support {capability}",
                details={"provider": self.NAME, "capability": str(capability)},
            )
        method: Callable[..., Awaitable[Any]] = getattr(self, capability.value)
        return await method(*args, **kwargs)

    async def _credential(self) -> str | None:
        if self.CREDENTIAL is None:
            return None
        return await self.context.secrets.get_secret(self.CREDENTIAL)

    async def is_available(self) -> bool:
        """
        Whether the provider can be called right now.

        A secret source that raises counts as a missing credential.
        """
        if self.CREDENTIAL is None:
            return True
        try:
            return bool(await self._credential())
        except Exception as e:
            logger.warning(f"Credential lookup for {self.NAME} failed: {e}")
            return False

    # HTTP

    def _default_headers(self) -> dict[str, str]:
        """Headers sent with every request."""
        return {
            "User-Agent": (
                f"bibresolve/{__version__} ({self.PURPOSE}; "
                f"+mailto:{self.settings.contact_email})"
            ),
            "Accept": "application/json",
        }

    async def _auth_headers(self) -> dict[str, str]:
        """Per-request credential headers. Override for keyed APIs."""
        return {}

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.http_timeout),
                headers=self._default_headers(),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _before_call(self, cost: int) -> None:
        quota = self.quota
        if quota is not None:
            check = await quota.check_quota(cost)
            if not check.allowed:
                raise QuotaExceededError(
                    f"{self.NAME} quota closed: {check.reason}",
                    source=self.NAME,
                    reason=check.reason,
                )
        await self.context.rate_limiter.wait(self.NAME, self.RATE_LIMIT_INTERVAL)

    async def _after_call(self, cost: int) -> None:
        quota = self.quota
        if quota is not None:
            await quota.record_api_call(cost)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        cost: int = 1,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Issue one logical request, retrying 408/429/5xx and transport errors.

        Every attempt passes the quota check and rate limiter first and is
        recorded against the quota afterwards, whatever its outcome.

        Raises:
            QuotaExceededError: metered quota would be exceeded
            RateLimitError: still 429 after the last retry
            ProviderUnavailableError: transport error or 5xx after the last retry
        """
        max_retries = self.settings.http_max_retries
        client = self._get_client()
        auth = await self._auth_headers()
        if auth:
            kwargs["headers"] = {**auth, **kwargs.get("headers", {})}

        for attempt in range(max_retries + 1):
            await self._before_call(cost)
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                if attempt < max_retries:
                    await self._backoff(attempt, f"HTTP error: {e}")
                    continue
                raise ProviderUnavailableError(
                    message=f"HTTP error: {e}",
                    source=self.NAME,
                ) from e
            finally:
                await self._after_call(cost)

            if response.status_code not in RETRYABLE_STATUSES:
                return response

            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            if attempt < max_retries:
                await self._backoff(attempt, f"status {response.status_code}", retry_after)
                continue

            if response.status_code == 429:
                raise RateLimitError(
                    message="Rate limit exceeded",
                    source=self.NAME,
                    retry_after=retry_after,
                )
            raise ProviderUnavailableError(
                message=f"Server error {response.status_code}",
                source=self.NAME,
                status_code=response.status_code,
            )

        # range() always yields at least once
        raise AssertionError("unreachable")

    async def _backoff(self, attempt: int, why: str, retry_after: float | None = None) -> None:
        delay = self.settings.http_retry_backoff * (2**attempt)
        if retry_after is not None:
            delay = max(delay, retry_after)
        logger.info(f"{self.NAME} request failed ({why}), retrying in {delay:.2f}s")
        if delay > 0:
            await asyncio.sleep(delay)

    async def _get_json(
        self,
        url: str,
        *,
        method: str = "GET",
        not_found_statuses: tuple[int, ...] = (404,),
        cost: int = 1,
        **kwargs: Any,
    ) -> Any | None:
        """
        Request JSON. Returns None for a not-found status.

        Raises:
            ProviderResponseError: unexpected status or a body that is not JSON
        """
        response = await self._request(method, url, cost=cost, **kwargs)

        if response.status_code in not_found_statuses:
            return None
        if not response.is_success:
            raise ProviderResponseError(
                message=f"Unexpected status {response.status_code}",
                source=self.NAME,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseError(
                message=f"Malformed JSON: {e}",
                source=self.NAME,
                status_code=response.status_code,
            ) from e

    # Caching

    def cache_key(self, operation: str, identifier: str) -> str:
        return CacheKeys.response(self.NAME, operation, identifier)

    async def _cached_fetch(
        self,
        operation: str,
        identifier: str,
        loader: Callable[[], Awaitable[T | None]],
        result_type: Any = Any,
    ) -> T | None:
        """
        Cache lookup, then ``loader`` on a miss, then cache write.

        ``loader`` returning None is a confirmed absence and is cached with
        the negative TTL. Exceptions from ``loader`` are not cached.
        """
        adapter = TypeAdapter(result_type)
        key = self.cache_key(operation, identifier)

        lookup = await self.context.cache.get(key)
        if lookup.hit:
            logger.debug(f"Cache hit {key} (absent={lookup.absent})")
            if lookup.absent:
                return None
            try:
                return adapter.validate_python(lookup.value)
            except ValueError as e:
                logger.warning(f"Discarding unreadable cache entry {key}: {e}")

        result = await loader()

        if result is None:
            await self.context.cache.put(key, None, ttl=self.settings.negative_cache_ttl)
        else:
            await self.context.cache.put(
                key, adapter.dump_python(result, mode="json"), ttl=self.CACHE_TTL
            )
        return result

    async def __aenter__(self) -> BaseProvider:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return min(float(value), MAX_RETRY_AFTER_SECONDS)
    except ValueError:
        return None
