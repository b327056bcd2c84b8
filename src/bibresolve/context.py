"""Handles to shared state passed into every provider and service."""

from __future__ import annotations

from dataclasses import dataclass, field

from bibresolve.cache.client import KeyValueStore
from bibresolve.cache.response import ResponseCache
from bibresolve.config import BibResolveSettings
from bibresolve.core.types import ProviderName
from bibresolve.quota import QuotaManager
from bibresolve.ratelimit import RateLimiter
from bibresolve.secrets import SecretSource, SettingsSecretSource


@dataclass
class ServiceContext:
    """
    Everything a provider needs beyond its own HTTP client.

    All cross-request coordination (cache entries, rate limit tokens, quota
    counters) goes through ``store``; nothing here holds mutable state of its
    own.
    """

    settings: BibResolveSettings
    store: KeyValueStore
    cache: ResponseCache
    rate_limiter: RateLimiter
    secrets: SecretSource
    quotas: dict[str, QuotaManager] = field(default_factory=dict)

    def quota_for(self, provider: str) -> QuotaManager | None:
        return self.quotas.get(provider)

    @classmethod
    def from_settings(
        cls,
        settings: BibResolveSettings,
        store: KeyValueStore,
        secrets: SecretSource | None = None,
    ) -> ServiceContext:
        """Build a context with the ISBNdb quota manager wired from settings."""
        return cls(
            settings=settings,
            store=store,
            cache=ResponseCache(store, settings.cache_strategy),
            rate_limiter=RateLimiter(
                store,
                strategy=settings.rate_limit_strategy,
                token_ttl=settings.rate_limit_token_ttl,
            ),
            secrets=secrets or SettingsSecretSource(settings),
            quotas={
                ProviderName.ISBNDB: QuotaManager(
                    store,
                    provider=ProviderName.ISBNDB,
                    daily_limit=settings.isbndb_daily_limit,
                    safety_buffer=settings.isbndb_quota_buffer,
                    reset_hour_utc=settings.quota_reset_hour_utc,
                ),
            },
        )
