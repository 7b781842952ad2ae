"""
Autocomplete suggestions ranked by how often a value occurs.

One query per field (title, artist, album), all built by the same
function.  Per-field results are merged, re-sorted by count and truncated
to ``limit`` in total.  The most frequent completion wins regardless of its type, so
a very common artist can crowd out rarer titles.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.catalog.types import Suggestion, SuggestionType
from db.catalog_store import store_errors
from db.models import CatalogRecord
from db.query import has_value, owner_scope

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2

_SUGGESTION_FIELDS: tuple[tuple[SuggestionType, str], ...] = (
    (SuggestionType.TITLE, "title"),
    (SuggestionType.ARTIST, "artist"),
    (SuggestionType.ALBUM, "album"),
)


def _field_suggestions(
    session: Session,
    kind: SuggestionType,
    field: str,
    term: str,
    owner_id: str,
    limit: int,
) -> list[Suggestion]:
    """Distinct values of *field* containing *term*, most frequent first."""
    col = getattr(CatalogRecord, field)
    occurrences = func.count(CatalogRecord.id).label("occurrences")
    stmt = (
        select(col, occurrences)
        .where(owner_scope(owner_id), has_value(field), col.icontains(term, autoescape=True))
        .group_by(col)
        .order_by(occurrences.desc(), col)
        .limit(limit)
    )
    rows = session.execute(stmt)
    return [Suggestion(type=kind, value=value, count=count) for value, count in rows]


def suggest(
    session: Session,
    partial_query: str | None,
    owner_id: str,
    limit: int = 10,
) -> list[Suggestion]:
    """
    Autocomplete candidates across titles, artists and albums.

    Args:
        session: Active SQLAlchemy session.
        partial_query: What the user has typed so far.
        owner_id: Catalog owner.
        limit: Maximum number of suggestions returned in total.

    Returns:
        Suggestions ordered by count descending.  Empty when the trimmed
        query is shorter than two characters.

    Raises:
        ValueError: If *limit* < 1.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    term = (partial_query or "").strip()
    if len(term) < MIN_QUERY_LENGTH:
        return []

    merged: list[Suggestion] = []
    with store_errors(session, "suggest"):
        for kind, field in _SUGGESTION_FIELDS:
            merged.extend(_field_suggestions(session, kind, field, term, owner_id, limit))

    # sorted() is stable: equal counts keep title -> artist -> album order.
    ranked = sorted(merged, key=lambda s: s.count, reverse=True)[:limit]
    logger.debug("suggest owner=%s term=%r candidates=%d", owner_id, term, len(merged))
    return ranked
