"""Confidence heuristics for provider answers.

Every function here is pure: no clock, no randomness, no I/O. The same
query and signals always produce the same score.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace

from bibresolve.core.models import TitleQuery
from bibresolve.core.normalization import (
    meaningful_words,
    normalize_author_name,
    normalize_text,
    title_similarity,
)

MIN_CONFIDENCE = 0
MAX_CONFIDENCE = 100


@dataclass(frozen=True)
class ScoringProfile:
    """Weights for one provider's confidence formula."""

    base: int = 40
    title_bonus: int = 20
    author_bonus: int = 20
    fuzzy_title: bool = True
    description_bonus: int = 5
    subjects_bonus: int = 5
    cover_bonus: int = 5
    date_bonus: int = 5
    archival: bool = False
    archival_cutoff_year: int = 1928
    archival_bonus: int = 10


@dataclass(frozen=True)
class MatchSignals:
    """What a provider returned for a query, reduced to scoring inputs."""

    title: str | None = None
    authors: tuple[str, ...] = field(default_factory=tuple)
    has_description: bool = False
    has_subjects: bool = False
    has_cover: bool = False
    publication_year: int | None = None


DEFAULT_PROFILE = ScoringProfile()


def clamp_confidence(value: float) -> int:
    return int(max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, value)))


def title_match_bonus(query_title: str, candidate_title: str | None, profile: ScoringProfile) -> int:
    """
    Full bonus when either normalized title contains the other.

    Otherwise, with fuzzy matching on, a share of the bonus proportional to
    the overlap of meaningful (non stop word) tokens.
    """
    if not candidate_title:
        return 0

    query = normalize_text(query_title)
    candidate = normalize_text(candidate_title)
    if not query or not candidate:
        return 0
    if query in candidate or candidate in query:
        return profile.title_bonus
    if not profile.fuzzy_title:
        return 0

    query_words = meaningful_words(query_title)
    candidate_words = meaningful_words(candidate_title)
    if not query_words or not candidate_words:
        return 0

    overlap = len(query_words & candidate_words)
    ratio = overlap / max(len(query_words), len(candidate_words))
    return math.floor(ratio * profile.title_bonus)


def author_match_bonus(query_author: str, candidate_authors: tuple[str, ...], profile: ScoringProfile) -> int:
    """Full bonus when any candidate author contains, or is contained in, the query author."""
    query = normalize_author_name(query_author)
    if not query:
        return 0
    for author in candidate_authors:
        candidate = normalize_author_name(author)
        if candidate and (query in candidate or candidate in query):
            return profile.author_bonus
    return 0


def metadata_bonus(signals: MatchSignals, profile: ScoringProfile) -> int:
    bonus = 0
    if signals.has_description:
        bonus += profile.description_bonus
    if signals.has_subjects:
        bonus += profile.subjects_bonus
    if signals.has_cover:
        bonus += profile.cover_bonus
    if signals.publication_year is not None:
        bonus += profile.date_bonus
    return bonus


def archival_bonus(signals: MatchSignals, profile: ScoringProfile) -> int:
    """Older books are an archival source's strength."""
    if not profile.archival or signals.publication_year is None:
        return 0
    if signals.publication_year < profile.archival_cutoff_year:
        return profile.archival_bonus
    return 0


def score_candidate(
    query: TitleQuery,
    signals: MatchSignals,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> int:
    """Confidence (0-100) that ``signals`` describe the book in ``query``."""
    score = (
        profile.base
        + title_match_bonus(query.title, signals.title, profile)
        + author_match_bonus(query.author, signals.authors, profile)
        + metadata_bonus(signals, profile)
        + archival_bonus(signals, profile)
    )
    return clamp_confidence(score)


def score_record(signals: MatchSignals, profile: ScoringProfile = DEFAULT_PROFILE) -> int:
    """Confidence for an identifier lookup, where there is no title or author to match."""
    score = profile.base + metadata_bonus(signals, profile) + archival_bonus(signals, profile)
    if signals.title:
        score += profile.title_bonus
    if signals.authors:
        score += profile.author_bonus
    return clamp_confidence(score)


def titles_similar(title1: str, title2: str, threshold: float = 0.6) -> bool:
    """Whether two titles are close enough to be the same book."""
    return title_similarity(title1, title2) >= threshold


# Per-provider formulas
OPEN_LIBRARY_PROFILE = ScoringProfile(
    base=40, description_bonus=0, subjects_bonus=5, cover_bonus=5, date_bonus=5
)
GOOGLE_BOOKS_PROFILE = ScoringProfile(
    base=50, description_bonus=0, subjects_bonus=5, cover_bonus=5, date_bonus=0
)
ARCHIVE_ORG_PROFILE = ScoringProfile(
    base=40, description_bonus=5, subjects_bonus=5, cover_bonus=0, date_bonus=0, archival=True
)
WIKIDATA_PROFILE = ScoringProfile(
    base=40, description_bonus=0, subjects_bonus=5, cover_bonus=5, date_bonus=5
)
ISBNDB_PROFILE = ScoringProfile(
    base=60,
    fuzzy_title=False,
    description_bonus=0,
    subjects_bonus=0,
    cover_bonus=0,
    date_bonus=0,
)
# Second-pass Wikidata matches on a normalized title earn a smaller title bonus
WIKIDATA_FUZZY_PROFILE = replace(WIKIDATA_PROFILE, title_bonus=10)
