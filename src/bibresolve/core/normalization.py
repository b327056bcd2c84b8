"""Text normalization utilities for matching and deduplication."""

import re
import unicodedata

from rapidfuzz import fuzz

# Words that carry no signal when comparing titles
STOP_WORDS: frozenset[str] = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
})


def normalize_text(
    text: str,
    *,
    lowercase: bool = True,
    remove_accents: bool = True,
    remove_punctuation: bool = True,
    collapse_whitespace: bool = True,
) -> str:
    """
    Normalize text for matching purposes.

    Args:
        text: Input text to normalize
        lowercase: Convert to lowercase
        remove_accents: Remove diacritical marks
        remove_punctuation: Remove all punctuation
        collapse_whitespace: Replace multiple spaces with single space

    Returns:
        Normalized string suitable for comparison
    """
    if not text:
        return ""

    result = text

    if remove_accents:
        nfkd = unicodedata.normalize("NFKD", result)
        result = "".join(c for c in nfkd if not unicodedata.combining(c))

    if lowercase:
        result = result.lower()

    if remove_punctuation:
        # Punctuation becomes a word break so "Nineteen Eighty-Four" keeps two tokens
        result = re.sub(r"[^\w\s]", " ", result)

    if collapse_whitespace:
        result = re.sub(r"\s+", " ", result).strip()

    return result


def normalize_title(title: str) -> str:
    """
    Normalize a title for matching.

    Removes common articles anywhere in the title and normalizes text.
    """
    normalized = normalize_text(title)
    normalized = re.sub(r"\b(the|a|an)\b", "", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def normalize_author_name(name: str) -> str:
    """
    Normalize an author name for matching.

    Handles various name formats:
    - "George Orwell" -> "george orwell"
    - "Orwell, George" -> "george orwell"
    - "G. Orwell" -> "g orwell"
    """
    if "," in name:
        last, _, first = name.partition(",")
        name = f"{first.strip()} {last.strip()}"
    return normalize_text(name)


def meaningful_words(text: str) -> set[str]:
    """Normalized word set with stop words removed."""
    return {word for word in normalize_text(text).split() if word not in STOP_WORDS}


def calculate_similarity(text1: str, text2: str) -> float:
    """
    Calculate similarity between two strings using Jaccard similarity.

    Returns a score between 0.0 and 1.0.
    """
    if not text1 or not text2:
        return 0.0

    norm1 = normalize_text(text1)
    norm2 = normalize_text(text2)

    if norm1 == norm2:
        return 1.0

    words1 = set(norm1.split())
    words2 = set(norm2.split())

    if not words1 or not words2:
        return 0.0

    intersection = len(words1 & words2)
    union = len(words1 | words2)

    return intersection / union if union > 0 else 0.0


def title_similarity(title1: str, title2: str) -> float:
    """Edit-distance similarity (0.0-1.0) between two normalized titles."""
    norm1 = normalize_title(title1)
    norm2 = normalize_title(title2)
    if not norm1 and not norm2:
        return 1.0
    return fuzz.ratio(norm1, norm2) / 100


def extract_year(value: object) -> int | None:
    """First plausible four-digit year in a date-like value."""
    if value is None:
        return None
    if isinstance(value, int):
        return value if 1000 <= value <= 2999 else None
    if match := re.search(r"\b(1[0-9]|20)\d{2}\b", str(value)):
        return int(match.group())
    return None


def dedupe_case_insensitive(values: list[str]) -> list[str]:
    """Drop repeats ignoring case, keeping the first spelling seen."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if not value:
            continue
        folded = value.strip().casefold()
        if folded and folded not in seen:
            seen.add(folded)
            result.append(value.strip())
    return result
