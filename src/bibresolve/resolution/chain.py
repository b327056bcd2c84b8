"""Orchestrator: run a capability across its providers with fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from bibresolve.core.exceptions import ProviderError, QuotaExceededError, RegistrationError
from bibresolve.core.models import ISBNResolution
from bibresolve.core.types import AttemptStatus, Capability, ResolutionMode
from bibresolve.resolution.base import BaseProvider
from bibresolve.resolution.registry import ProviderRegistry

logger = logging.getLogger(__name__)

# How each capability combines provider answers when the caller does not say
CAPABILITY_MODES: dict[Capability, ResolutionMode] = {
    Capability.RESOLVE_ISBN: ResolutionMode.BEST_OF,
    Capability.FETCH_METADATA: ResolutionMode.AGGREGATE,
    Capability.FETCH_COVER: ResolutionMode.FIRST_MATCH,
    Capability.FETCH_SUBJECTS: ResolutionMode.AGGREGATE,
    Capability.CHECK_PUBLIC_DOMAIN: ResolutionMode.FIRST_MATCH,
    Capability.FETCH_RATINGS: ResolutionMode.FIRST_MATCH,
    Capability.FETCH_EDITION_VARIANTS: ResolutionMode.AGGREGATE,
    Capability.FETCH_EXTERNAL_IDS: ResolutionMode.AGGREGATE,
    Capability.GENERATE_BOOKS: ResolutionMode.AGGREGATE,
}


@dataclass
class ProviderAttempt:
    """What happened when one provider was asked."""

    provider: str
    status: AttemptStatus
    duration_ms: float = 0.0
    confidence: int | None = None
    error: str | None = None


@dataclass
class ChainOutcome:
    """Result of running one capability through the chain."""

    capability: Capability
    mode: ResolutionMode
    result: Any = None
    results: list[Any] = field(default_factory=list)
    attempts: list[ProviderAttempt] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.result is not None

    @property
    def providers_tried(self) -> list[str]:
        return [a.provider for a in self.attempts if a.status != AttemptStatus.SKIPPED]

    @property
    def source(self) -> str | None:
        return getattr(self.result, "source", None)


def is_present(result: Any) -> bool:
    """Whether a provider answer counts as a result rather than an absence."""
    if result is None:
        return False
    if isinstance(result, ISBNResolution):
        return result.found
    if isinstance(result, (list, tuple, dict)):
        return len(result) > 0
    return True


def confidence_of(result: Any) -> int:
    return getattr(result, "confidence", 0) or 0


class Orchestrator:
    """
    Resolves a capability across the registry's providers.

    Features:
    - Availability filtering before any network call
    - Per-provider timeout
    - First match, best of, or aggregate combination
    - Every provider fault is contained and recorded as an attempt
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        provider_timeout: float = 10.0,
        accept_confidence: int | None = None,
    ) -> None:
        self.registry = registry
        self.provider_timeout = provider_timeout
        self.accept_confidence = accept_confidence

    async def resolve(
        self,
        capability: Capability,
        *args: Any,
        mode: ResolutionMode | None = None,
        provider_order: list[str] | None = None,
        accept_confidence: int | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> ChainOutcome:
        """
        Run ``capability`` with ``args`` across providers.

        Never raises for provider failures: an exhausted chain returns an
        outcome whose ``found`` is False.
        """
        mode = mode or CAPABILITY_MODES.get(capability, ResolutionMode.FIRST_MATCH)
        outcome = ChainOutcome(capability=capability, mode=mode)

        candidates = self._candidates(capability, provider_order)
        active = await self.registry.filter_available(candidates)
        for provider in candidates:
            if provider not in active:
                outcome.attempts.append(
                    ProviderAttempt(provider=provider.name, status=AttemptStatus.SKIPPED)
                )

        if not active:
            logger.warning(f"No available providers for {capability}")
            return outcome

        call_timeout = timeout or self.provider_timeout
        if mode == ResolutionMode.AGGREGATE:
            await self._aggregate(outcome, active, call_timeout, args, kwargs)
        else:
            threshold = accept_confidence if accept_confidence is not None else self.accept_confidence
            await self._sequential(outcome, active, call_timeout, threshold, args, kwargs)

        if not outcome.found:
            logger.info(f"{capability} exhausted {len(outcome.attempts)} providers without a result")
        return outcome

    def _candidates(self, capability: Capability, provider_order: list[str] | None) -> list[BaseProvider]:
        providers = self.registry.providers_for(capability)
        if provider_order is None:
            return providers
        by_name = {p.name: p for p in providers}
        return [by_name[name] for name in provider_order if name in by_name]

    async def _sequential(
        self,
        outcome: ChainOutcome,
        providers: list[BaseProvider],
        timeout: float,
        accept_confidence: int | None,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        best_of = outcome.mode == ResolutionMode.BEST_OF
        for provider in providers:
            result, attempt = await self._attempt(provider, outcome.capability, timeout, args, kwargs)
            outcome.attempts.append(attempt)
            if result is None:
                continue

            outcome.results.append(result)
            if not best_of:
                outcome.result = result
                return

            # Ties keep the earlier, higher-priority provider
            if outcome.result is None or confidence_of(result) > confidence_of(outcome.result):
                outcome.result = result
            if accept_confidence is not None and confidence_of(outcome.result) >= accept_confidence:
                logger.debug(
                    f"{outcome.capability} accepted {provider.name} at "
                    f"{confidence_of(outcome.result)} >= {accept_confidence}"
                )
                return

    async def _aggregate(
        self,
        outcome: ChainOutcome,
        providers: list[BaseProvider],
        timeout: float,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        runs = await asyncio.gather(
            *(self._attempt(p, outcome.capability, timeout, args, kwargs) for p in providers)
        )
        for result, attempt in runs:
            outcome.attempts.append(attempt)
            if result is not None:
                outcome.results.append(result)
        if outcome.results:
            outcome.result = outcome.results[0]

    async def _attempt(
        self,
        provider: BaseProvider,
        capability: Capability,
        timeout: float,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> tuple[Any, ProviderAttempt]:
        """Invoke one provider. Returns (present result or None, attempt)."""
        start = time.perf_counter()

        def attempt(status: AttemptStatus, **extra: Any) -> ProviderAttempt:
            return ProviderAttempt(
                provider=provider.name,
                status=status,
                duration_ms=(time.perf_counter() - start) * 1000,
                **extra,
            )

        try:
            async with asyncio.timeout(timeout):
                result = await provider.invoke(capability, *args, **kwargs)
        except TimeoutError:
            logger.warning(f"{provider.name} {capability} timed out after {timeout}s")
            return None, attempt(AttemptStatus.TIMEOUT, error=f"timed out after {timeout}s")
        except QuotaExceededError as e:
            logger.warning(f"{provider.name} skipped: {e.message}")
            return None, attempt(AttemptStatus.SKIPPED, error=e.message)
        except ProviderError as e:
            logger.warning(f"{provider.name} {capability} failed: {e.message}")
            return None, attempt(AttemptStatus.ERROR, error=e.message)
        except RegistrationError:
            raise
        except Exception as e:
            logger.exception(f"{provider.name} {capability} raised unexpectedly: {e}")
            return None, attempt(AttemptStatus.ERROR, error=str(e))

        if not is_present(result):
            return None, attempt(AttemptStatus.NOT_FOUND)
        return result, attempt(AttemptStatus.SUCCESS, confidence=getattr(result, "confidence", None))
