"""Persistence for queue-driven enrichment."""

from .base import Base
from .models import EnrichedEditionModel
from .repository import EditionRepository
from .session import DatabaseManager
from .sink import DatabasePersistenceSink

__all__ = [
    "Base",
    "DatabaseManager",
    "DatabasePersistenceSink",
    "EditionRepository",
    "EnrichedEditionModel",
]
