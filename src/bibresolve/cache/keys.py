"""Cache key builders for consistent key formatting."""

import hashlib
from datetime import date

from bibresolve.core.normalization import normalize_author_name, normalize_title


class CacheKeys:
    """Key builders for everything bibresolve keeps in the shared store."""

    PREFIX = "bibresolve"

    @classmethod
    def response(
        cls,
        provider: str,
        operation: str,
        identifier: str,
    ) -> str:
        """Key for a cached provider response."""
        return f"{cls.PREFIX}:response:{provider}:{operation}:{identifier}"

    @classmethod
    def title_query(cls, title: str, author: str = "") -> str:
        """Stable identifier for a title/author lookup."""
        hash_input = f"{normalize_title(title)}|{normalize_author_name(author)}"
        return hashlib.md5(hash_input.encode()).hexdigest()[:16]

    @classmethod
    def rate_limit(cls, provider: str) -> str:
        """Key holding a provider's last request timestamp."""
        return f"{cls.PREFIX}:rate_limit:{provider}"

    @classmethod
    def quota_usage(cls, provider: str, window: date) -> str:
        """Key for a provider's call counter in one billing day."""
        return f"{cls.PREFIX}:quota:{provider}:{window.isoformat()}"

    @classmethod
    def not_found(cls, isbn: str, capability: str | None = None) -> str:
        """
        Key marking an ISBN the enrichment pipeline could not find.

        Metadata misses use the bare key; other capabilities are scoped by name.
        """
        if capability is None or capability == "fetch_metadata":
            return f"{cls.PREFIX}:not_found:{isbn}"
        return f"{cls.PREFIX}:not_found:{capability}:{isbn}"
