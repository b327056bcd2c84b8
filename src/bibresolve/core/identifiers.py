"""ISBN value object, normalization and language-scope helpers."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Literal, Self

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# Registration group prefixes (hyphens removed) for non-English publishing
FOREIGN_ISBN_PREFIXES: dict[str, str] = {
    "9782": "French",
    "97884": "Spanish",
    "97888": "Italian",
    "978972": "Portuguese",
    "978989": "Portuguese",
    "9783": "German",
    "97890": "Dutch",
    "97887": "Danish",
    "97882": "Norwegian",
    "97891": "Swedish",
    "97883": "Polish",
    "97880": "Czech/Slovak",
    "97886": "Serbian",
    "978953": "Croatian",
    "9787": "Chinese",
    "97889": "Korean",
    "9784": "Japanese",
    "97881": "Indian",
    "978975": "Turkish",
    "978966": "Ukrainian",
    "978985": "Belarusian",
    "9789944": "Azerbaijani",
}

ENGLISH_ISBN_PREFIXES: tuple[str, ...] = ("9780", "9781")


ISBN10_SHAPE = re.compile(r"^\d{9}[\dX]$")
ISBN13_SHAPE = re.compile(r"^97[89]\d{10}$")


def isbn10_check_digit(first_nine: str) -> str:
    """Mod-11 check character for the first nine digits of an ISBN-10."""
    remainder = sum(int(d) * weight for d, weight in zip(first_nine, range(10, 1, -1))) % 11
    check = (11 - remainder) % 11
    return "X" if check == 10 else str(check)


def isbn13_check_digit(first_twelve: str) -> str:
    """Mod-10 check digit for the first twelve digits of an ISBN-13 (weights 1,3,1,3...)."""
    total = sum(int(d) * (3 if i % 2 else 1) for i, d in enumerate(first_twelve))
    return str(-total % 10)


class ISBN(BaseModel):
    """
    A checksum-valid ISBN in either form.

    ``value`` holds digits only (and a trailing X for some ISBN-10s).
    Equality of identity across forms goes through ``to_isbn13``.
    """

    value: str = Field(..., description="Digits only, trailing X allowed for ISBN-10")
    format: Literal["isbn10", "isbn13"]

    @field_validator("value", mode="before")
    @classmethod
    def strip_separators(cls, v: str) -> str:
        return re.sub(r"[-\s]", "", str(v)).upper()

    @model_validator(mode="after")
    def check_digits(self) -> Self:
        if self.format == "isbn10":
            shape, expected = ISBN10_SHAPE, isbn10_check_digit
        else:
            shape, expected = ISBN13_SHAPE, isbn13_check_digit
        if not shape.match(self.value):
            raise ValueError(f"Malformed {self.format}: {self.value}")
        if expected(self.value[:-1]) != self.value[-1]:
            raise ValueError(f"Bad {self.format} check digit: {self.value}")
        return self

    @classmethod
    def parse(cls, value: str) -> ISBN:
        """Parse either form; the length decides which."""
        digits = re.sub(r"[-\s]", "", value).upper()
        forms = {10: "isbn10", 13: "isbn13"}
        if len(digits) not in forms:
            raise ValueError(f"An ISBN has 10 or 13 characters, got {len(digits)}")
        return cls(value=digits, format=forms[len(digits)])

    def to_isbn13(self) -> ISBN:
        if self.format == "isbn13":
            return self
        stem = "978" + self.value[:9]
        return ISBN(value=stem + isbn13_check_digit(stem), format="isbn13")

    def to_isbn10(self) -> ISBN | None:
        """The ISBN-10 form; 979-prefixed ISBNs have none."""
        if self.format == "isbn10":
            return self
        if not self.value.startswith("978"):
            return None
        stem = self.value[3:12]
        return ISBN(value=stem + isbn10_check_digit(stem), format="isbn10")

    def __str__(self) -> str:
        return self.value

    def __hash__(self) -> int:
        return hash(self.to_isbn13().value)


def normalize_isbn(raw: str | None) -> str | None:
    """
    Normalize any ISBN-10/13 string to a validated ISBN-13.

    Returns None for anything malformed, so callers can reject the input
    before a network call is made.
    """
    if not raw:
        return None
    try:
        return ISBN.parse(str(raw)).to_isbn13().value
    except ValueError:
        return None


def deduplicate_isbns(isbns: Iterable[str]) -> list[str]:
    """Normalize and deduplicate ISBNs, preserving first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for raw in isbns:
        isbn = normalize_isbn(raw)
        if isbn and isbn not in seen:
            seen.add(isbn)
            result.append(isbn)
    return result


def is_english_isbn(isbn: str) -> bool:
    """Whether the ISBN carries an English-language registration group."""
    normalized = normalize_isbn(isbn)
    return bool(normalized) and normalized.startswith(ENGLISH_ISBN_PREFIXES)


def is_foreign_isbn(isbn: str) -> bool:
    """Whether the ISBN carries a known non-English registration group."""
    normalized = normalize_isbn(isbn)
    if not normalized:
        return False
    return any(normalized.startswith(prefix) for prefix in FOREIGN_ISBN_PREFIXES)


def isbn_language(isbn: str) -> str | None:
    """Best-effort publishing language from the registration group."""
    normalized = normalize_isbn(isbn)
    if not normalized:
        return None
    if normalized.startswith(ENGLISH_ISBN_PREFIXES):
        return "English"
    # Longest prefix wins (978-953 Croatian before 978-9 anything)
    for prefix in sorted(FOREIGN_ISBN_PREFIXES, key=len, reverse=True):
        if normalized.startswith(prefix):
            return FOREIGN_ISBN_PREFIXES[prefix]
    return "Unknown"


def in_english_scope(isbn: str) -> bool:
    """
    Scope filter for English-focused providers.

    Known foreign prefixes are excluded, English prefixes are included and
    unknown prefixes are allowed through.
    """
    normalized = normalize_isbn(isbn)
    if not normalized:
        return False
    if is_foreign_isbn(normalized):
        return False
    if not is_english_isbn(normalized):
        logger.debug(f"Unknown ISBN prefix {normalized[:6]}, allowing query")
    return True


def isbn10_for(isbn: str) -> str | None:
    """ISBN-10 form of a valid ISBN, or None (979 prefixes have none)."""
    normalized = normalize_isbn(isbn)
    if not normalized:
        return None
    isbn10 = ISBN.parse(normalized).to_isbn10()
    return isbn10.value if isbn10 else None
