"""Shared test fixtures for all tests."""

from __future__ import annotations

from typing import Any

import pytest

from bibresolve.config import BibResolveSettings
from bibresolve.core.models import BookMetadata, ExternalIds
from bibresolve.core.types import RateLimitStrategy

# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def settings() -> BibResolveSettings:
    """Settings for tests: no retries, no backoff, no rate limit waits."""
    return BibResolveSettings(
        _env_file=None,
        isbndb_api_key="test-isbndb-key",
        librarything_api_key="test-lt-key",
        gemini_api_key="test-gemini-key",
        http_max_retries=0,
        http_retry_backoff=0.0,
        rate_limit_strategy=RateLimitStrategy.DISABLED,
        isbndb_daily_limit=100,
        isbndb_quota_buffer=10,
    )


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_metadata() -> BookMetadata:
    """Merged-looking metadata for Nineteen Eighty-Four."""
    return BookMetadata(
        isbn13="9780451524935",
        isbn10="0451524934",
        title="Nineteen Eighty-Four",
        authors=["George Orwell"],
        publisher="Signet Classics",
        publish_date="1961",
        page_count=328,
        language="en",
        subjects=["Dystopias", "Totalitarianism"],
        cover_url="https://covers.openlibrary.org/b/id/123-L.jpg",
        external_ids=ExternalIds(open_library_id="OL1168083W"),
        source="open-library",
        confidence=75,
    )


@pytest.fixture
def isbndb_book() -> dict[str, Any]:
    """Raw ISBNdb book record as returned by /book and /books."""
    return {
        "title": "1984",
        "title_long": "1984 (Signet Classics)",
        "isbn": "0451524934",
        "isbn13": "9780451524935",
        "authors": ["Orwell, George"],
        "publisher": "Signet Classics",
        "date_published": "1961-01-01",
        "pages": 328,
        "binding": "Mass Market Paperback",
        "synopsis": "A dystopian social science fiction novel.",
        "subjects": ["Fiction", "Dystopias"],
        "dewey_decimal": ["823.912"],
        "image": "https://images.isbndb.com/covers/49/35/9780451524935.jpg",
        "language": "en",
        "rating_avg": 4.2,
        "rating_count": 3500,
        "related": {
            "9780452284234": "Paperback",
            "9780547249643": "Hardcover",
        },
    }
