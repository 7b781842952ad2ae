"""
Catalog search: free-text relevance merged with structured filters.

Free text matches two ways, OR-ed together:

1. the ranking primitive over the whole ranked document (see ``db/query.py``);
2. a case-insensitive substring match on title / artist / album /
   album_artist, so that "roc" still finds "Rocket Man" even when the
   ranking primitive tokenises on word boundaries.

Ordering
--------
``relevance`` with a query
    ``rank DESC, created_at DESC`` regardless of the requested order.
``relevance`` without a query
    ``created_at DESC``.
any other key
    that column in the requested order, no tie-break.

``total`` comes from a separate ``COUNT`` over the same filter.  Under
concurrent writes the count and the page may see different snapshots;
that window is accepted rather than papered over.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.orm import Session

from core.catalog.predicates import build_predicates
from core.catalog.types import SearchQuery, SortKey, SortOrder
from db.catalog_store import store_errors
from db.models import CatalogRecord
from db.query import Ranking, fold_predicates, ranking_for

logger = logging.getLogger(__name__)

_SORT_COLUMNS: dict[SortKey, ColumnElement] = {
    SortKey.TITLE: CatalogRecord.title,
    SortKey.ARTIST: CatalogRecord.artist,
    SortKey.ALBUM: CatalogRecord.album,
    SortKey.YEAR: CatalogRecord.year,
    SortKey.DURATION: CatalogRecord.duration,
    SortKey.CREATED_AT: CatalogRecord.created_at,
    SortKey.BPM: CatalogRecord.bpm,
}


@dataclass(frozen=True)
class SearchPage:
    """One page of search results plus pagination totals."""

    records: list[CatalogRecord]
    total: int
    total_pages: int
    current_page: int


def total_pages(total: int, limit: int) -> int:
    """``ceil(total / limit)``; an empty result has zero pages."""
    return math.ceil(total / limit) if total else 0


def _order_by(query: SearchQuery, ranking: Ranking) -> list[ColumnElement]:
    text = query.text
    if query.sort_by is SortKey.RELEVANCE:
        if text is not None:
            return [ranking.score(text).desc(), CatalogRecord.created_at.desc()]
        return [CatalogRecord.created_at.desc()]
    col = _SORT_COLUMNS[query.sort_by]
    return [col.asc() if query.sort_order is SortOrder.ASC else col.desc()]


def search_catalog(
    session: Session,
    query: SearchQuery,
    owner_id: str,
    *,
    ranking: Ranking | None = None,
    text_search_config: str = "english",
) -> SearchPage:
    """
    Search one owner's catalog.

    Args:
        session: Active SQLAlchemy session.
        query: Validated search request.
        owner_id: Catalog owner; every row returned belongs to this owner.
        ranking: Ranking strategy override.  Defaults to the strategy
            supported by the session's dialect.
        text_search_config: PostgreSQL text search configuration used when
            the default PostgreSQL ranking is selected.

    Returns:
        ``SearchPage`` with the requested page and totals.

    Raises:
        TransientStoreError: The store is unreachable.
        PersistenceFailure: The store rejected the query.
    """
    ranking = ranking or ranking_for(session, text_search_config)
    predicates = build_predicates(query)
    where = fold_predicates(owner_id, predicates, ranking)

    count_stmt = select(func.count()).select_from(CatalogRecord).where(where)
    page_stmt = (
        select(CatalogRecord)
        .where(where)
        .order_by(*_order_by(query, ranking))
        .offset(query.offset)
        .limit(query.limit)
    )

    with store_errors(session, "search"):
        total = session.execute(count_stmt).scalar_one()
        records = list(session.execute(page_stmt).scalars())

    logger.debug(
        "search owner=%s predicates=%d total=%d page=%d",
        owner_id,
        len(predicates),
        total,
        query.page,
    )
    return SearchPage(
        records=records,
        total=total,
        total_pages=total_pages(total, query.limit),
        current_page=query.page,
    )
