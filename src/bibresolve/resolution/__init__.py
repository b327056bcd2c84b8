"""Resolution layer: providers, registry, orchestration and scoring."""

from bibresolve.resolution.base import BaseProvider
from bibresolve.resolution.chain import (
    CAPABILITY_MODES,
    ChainOutcome,
    Orchestrator,
    ProviderAttempt,
)
from bibresolve.resolution.registry import ProviderRegistry
from bibresolve.resolution.scoring import MatchSignals, ScoringProfile, score_candidate

__all__ = [
    # Base
    "BaseProvider",
    # Chain
    "CAPABILITY_MODES",
    "ChainOutcome",
    "Orchestrator",
    "ProviderAttempt",
    # Registry
    "ProviderRegistry",
    # Scoring
    "MatchSignals",
    "ScoringProfile",
    "score_candidate",
]
