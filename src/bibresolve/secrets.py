"""Credential sources for provider API keys."""

from __future__ import annotations

from typing import Protocol

from bibresolve.config import BibResolveSettings

SECRET_NAMES = {
    "ISBNDB_API_KEY": "isbndb_api_key",
    "GOOGLE_BOOKS_API_KEY": "google_books_api_key",
    "LIBRARYTHING_API_KEY": "librarything_api_key",
    "GEMINI_API_KEY": "gemini_api_key",
}


class SecretSource(Protocol):
    """Asynchronous credential lookup. May raise; callers treat that as missing."""

    async def get_secret(self, name: str) -> str | None: ...


class SettingsSecretSource:
    """Reads provider credentials from application settings."""

    def __init__(self, settings: BibResolveSettings) -> None:
        self._settings = settings

    async def get_secret(self, name: str) -> str | None:
        attr = SECRET_NAMES.get(name)
        if attr is None:
            return None
        value = getattr(self._settings, attr)
        return value or None


class StaticSecretSource:
    """Fixed name -> value mapping."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    async def get_secret(self, name: str) -> str | None:
        return self._secrets.get(name)
