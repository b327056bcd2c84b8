"""Provider registry: who implements which capability, in priority order."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from bibresolve.context import ServiceContext
from bibresolve.core.exceptions import RegistrationError
from bibresolve.core.types import Capability, ProviderClass
from bibresolve.resolution.base import BaseProvider

logger = logging.getLogger(__name__)

CLASS_PRIORITY: dict[ProviderClass, int] = {
    provider_class: index for index, provider_class in enumerate(ProviderClass)
}


class ProviderRegistry:
    """
    Holds provider instances and answers "who supports X".

    Ordering is free before paid before AI, and registration order within a
    class, so callers walking ``providers_for`` spend the paid quota last.
    Lookups perform no I/O; only ``available_providers`` does.
    """

    def __init__(self, availability_timeout: float = 5.0) -> None:
        self._providers: dict[str, BaseProvider] = {}
        self.availability_timeout = availability_timeout

    def register(self, provider: BaseProvider) -> None:
        """Register a provider. Names are unique."""
        if provider.name in self._providers:
            raise RegistrationError(
                f"Provider {provider.name} is already registered",
                details={"provider": provider.name},
            )
        self._providers[provider.name] = provider
        logger.debug(
            f"Registered provider {provider.name} ({provider.provider_class}): "
            f"{sorted(provider.capabilities)}"
        )

    def register_all(self, providers: Iterable[BaseProvider]) -> None:
        for provider in providers:
            self.register(provider)

    def get(self, name: str) -> BaseProvider | None:
        return self._providers.get(name)

    def all(self) -> list[BaseProvider]:
        return self._ordered(self._providers.values())

    def providers_for(self, capability: Capability) -> list[BaseProvider]:
        """Providers declaring ``capability``, in priority order."""
        return self._ordered(p for p in self._providers.values() if p.supports(capability))

    def by_class(self, provider_class: ProviderClass) -> list[BaseProvider]:
        return [p for p in self._providers.values() if p.provider_class == provider_class]

    def has_capability(self, capability: Capability) -> bool:
        return any(p.supports(capability) for p in self._providers.values())

    async def available_providers(self, capability: Capability) -> list[BaseProvider]:
        """
        Providers for ``capability`` whose availability check passes.

        Checks run concurrently, each bounded by ``availability_timeout``.
        A check that raises or times out excludes its provider.
        """
        return await self.filter_available(self.providers_for(capability))

    async def filter_available(self, providers: list[BaseProvider]) -> list[BaseProvider]:
        """The subset of ``providers`` that pass their availability check, order kept."""
        if not providers:
            return []
        checks = await asyncio.gather(*(self._check(p) for p in providers))
        return [provider for provider, ok in zip(providers, checks) if ok]

    async def _check(self, provider: BaseProvider) -> bool:
        try:
            async with asyncio.timeout(self.availability_timeout):
                return await provider.is_available()
        except TimeoutError:
            logger.warning(f"Availability check for {provider.name} timed out")
            return False
        except Exception as e:
            logger.warning(f"Availability check for {provider.name} failed: {e}")
            return False

    def stats(self) -> dict[str, Any]:
        """Counts by class and by capability, for diagnostics."""
        return {
            "total_providers": len(self._providers),
            "by_class": {
                provider_class.value: len(self.by_class(provider_class))
                for provider_class in ProviderClass
            },
            "by_capability": {
                capability.value: [p.name for p in self.providers_for(capability)]
                for capability in Capability
            },
        }

    async def close_all(self) -> None:
        """Close every provider's HTTP client."""
        for provider in self._providers.values():
            await provider.close()

    @staticmethod
    def _ordered(providers: Iterable[BaseProvider]) -> list[BaseProvider]:
        # sorted() is stable, so registration order survives within a class
        return sorted(providers, key=lambda p: CLASS_PRIORITY[p.provider_class])

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    @classmethod
    def from_settings(cls, context: ServiceContext) -> ProviderRegistry:
        """Registry with every built-in provider sharing ``context``."""
        from bibresolve.resolution.providers import DEFAULT_PROVIDERS

        registry = cls(availability_timeout=context.settings.availability_timeout)
        registry.register_all(provider_cls(context) for provider_cls in DEFAULT_PROVIDERS)
        return registry
