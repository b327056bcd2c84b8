"""Gemini book generation provider."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, ClassVar

from pydantic import BaseModel, Field, ValidationError

from bibresolve.core.exceptions import ProviderResponseError
from bibresolve.core.models import GeneratedBook
from bibresolve.core.types import Capability, ProviderClass, ProviderName
from bibresolve.resolution.base import BaseProvider

logger = logging.getLogger(__name__)

# Generated books carry no ISBN and must be resolved before they are trusted
GENERATED_CONFIDENCE = 30

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "author": {"type": "string"},
            "publisher": {"type": "string"},
            "format": {
                "type": "string",
                "enum": ["Hardcover", "Paperback", "eBook", "Audiobook", "Unknown"],
            },
            "publication_year": {"type": "integer"},
            "significance": {"type": "string"},
        },
        "required": ["title", "author", "publication_year"],
    },
}

_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```$")


class _GeneratedEntry(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=300)
    publisher: str | None = None
    publication_year: int | None = Field(default=None, ge=1000, le=2100)
    significance: str | None = None


def strip_code_fences(text: str) -> str:
    """Remove a Markdown code fence the model may wrap its JSON in."""
    return _FENCE_END.sub("", _FENCE_START.sub("", text.strip())).strip()


class GeminiProvider(BaseProvider):
    """
    Google Gemini structured-output generation.

    API Documentation: https://ai.google.dev/api/generate-content

    Produces candidate books for backfill. Responses are never cached.
    """

    NAME: ClassVar[str] = ProviderName.GEMINI
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.AI
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({
        Capability.GENERATE_BOOKS,
    })
    BASE_URL: ClassVar[str] = "https://generativelanguage.googleapis.com/v1beta/models"
    # Pay per use, no courtesy spacing
    RATE_LIMIT_INTERVAL: ClassVar[float] = 0.0
    CACHE_TTL: ClassVar[int] = 0
    CREDENTIAL: ClassVar[str | None] = "GEMINI_API_KEY"
    PURPOSE = "Book metadata generation for backfill"

    @property
    def http_timeout(self) -> float:
        return self.settings.generation_timeout

    async def _auth_headers(self) -> dict[str, str]:
        api_key = await self._credential()
        return {"x-goog-api-key": api_key} if api_key else {}

    async def generate_books(self, prompt: str, count: int = 10) -> list[GeneratedBook] | None:
        body = {
            "contents": [{
                "parts": [{
                    "text": (
                        f"{prompt}\n\nGenerate exactly {count} books. For each book, provide: "
                        "title, author, publisher (if known), publication_year, and "
                        "significance (why it's notable)."
                    ),
                }],
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }
        data = await self._get_json(
            f"/{self.settings.gemini_model}:generateContent", method="POST", json=body
        )
        text = _candidate_text(data)
        if not text:
            raise ProviderResponseError("No content in Gemini response", source=self.NAME)

        try:
            entries = json.loads(strip_code_fences(text))
        except ValueError as e:
            raise ProviderResponseError(
                f"Gemini returned malformed JSON: {e}", source=self.NAME
            ) from e
        if not isinstance(entries, list):
            raise ProviderResponseError("Gemini output is not a JSON array", source=self.NAME)

        books = []
        for raw in entries:
            try:
                entry = _GeneratedEntry.model_validate(raw)
            except ValidationError as e:
                logger.debug(f"Skipping invalid generated entry: {e}")
                continue
            books.append(GeneratedBook(
                title=entry.title,
                author=entry.author,
                publisher=entry.publisher,
                publish_date=str(entry.publication_year) if entry.publication_year else None,
                description=entry.significance,
                source=self.NAME,
                confidence=GENERATED_CONFIDENCE,
            ))

        logger.info(f"Gemini generated {len(books)} of {count} requested books")
        return books or None


def _candidate_text(data: Any) -> str | None:
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
