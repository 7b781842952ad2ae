"""
Fold catalog predicates into SQLAlchemy expressions.

``core.catalog.predicates`` describes *what* to filter; this module decides
*how* each predicate becomes SQL, including the text-ranking primitive.

Ranking strategies
------------------
PostgreSQL
    ``ts_rank(to_tsvector(cfg, doc), plainto_tsquery(cfg, q))`` with the
    ``@@`` operator as the match condition.
Anything else (SQLite in tests and local dev)
    Degraded term-hit score: the number of whitespace-separated query terms
    that occur, case-insensitively, anywhere in the ranked document.  Same
    idea as a keyword ILIKE search, with no special index required.

``doc`` is the space-joined concatenation of title, artist, album,
album_artist, composers, comment and lyrics.
"""

from __future__ import annotations

import functools
import operator
from typing import Protocol

from sqlalchemy import ColumnElement, String, and_, case, cast, func, literal_column, or_
from sqlalchemy.orm import InstrumentedAttribute, Session

from core.catalog.predicates import (
    RANKED_TEXT_FIELDS,
    SUBSTRING_TEXT_FIELDS,
    AnyContains,
    Contains,
    Equals,
    FreeText,
    Predicate,
    Range,
    TriState,
)
from db.models import CatalogRecord

# A query longer than this many terms adds cost without improving recall.
MAX_RANKED_TERMS = 10


def column(field: str) -> InstrumentedAttribute:
    """Resolve a predicate field name to the mapped column.

    Raises:
        ValueError: If the name is not a ``CatalogRecord`` column.
    """
    if field not in CatalogRecord.__table__.columns:
        raise ValueError(f"Unknown catalog field {field!r}")
    return getattr(CatalogRecord, field)


def _as_text(field: str) -> ColumnElement[str]:
    col = column(field)
    if field == "composers":
        return func.coalesce(cast(col, String), "")
    return func.coalesce(col, "")


def ranked_document() -> ColumnElement[str]:
    """Space-joined text of every ranked field; NULLs become empty strings."""
    parts = [_as_text(field) for field in RANKED_TEXT_FIELDS]
    doc = parts[0]
    for part in parts[1:]:
        doc = doc + " " + part
    return doc


class Ranking(Protocol):
    """A text-relevance primitive: a score to order by and a match to filter on."""

    def score(self, text: str) -> ColumnElement[float]: ...

    def match(self, text: str) -> ColumnElement[bool]: ...


class PostgresRanking:
    """Full-text ranking backed by PostgreSQL ``tsvector``.

    Args:
        config_name: Text search configuration, e.g. ``"english"``.  Must be
            a plain identifier (validated by ``CatalogConfig``) because it is
            inlined as a ``regconfig`` literal.
    """

    def __init__(self, config_name: str = "english") -> None:
        if not config_name.isidentifier():
            raise ValueError(f"Invalid text search config {config_name!r}")
        self._config = literal_column(f"'{config_name}'::regconfig")

    def _vector(self) -> ColumnElement:
        return func.to_tsvector(self._config, ranked_document())

    def _query(self, text: str) -> ColumnElement:
        return func.plainto_tsquery(self._config, text)

    def score(self, text: str) -> ColumnElement[float]:
        return func.ts_rank(self._vector(), self._query(text))

    def match(self, text: str) -> ColumnElement[bool]:
        return self._vector().op("@@")(self._query(text))


class TermHitRanking:
    """Portable fallback when the store has no ranking primitive."""

    @staticmethod
    def _terms(text: str) -> list[str]:
        seen: dict[str, None] = {}
        for term in text.lower().split():
            seen.setdefault(term, None)
        return list(seen)[:MAX_RANKED_TERMS]

    def score(self, text: str) -> ColumnElement[float]:
        doc = func.lower(ranked_document())
        hits = [
            case((doc.contains(term, autoescape=True), 1), else_=0) for term in self._terms(text)
        ]
        if not hits:
            return literal_column("0")
        return functools.reduce(operator.add, hits)

    def match(self, text: str) -> ColumnElement[bool]:
        return self.score(text) > 0


def ranking_for(session: Session, config_name: str = "english") -> Ranking:
    """Pick the ranking strategy supported by the session's database."""
    if session.get_bind().dialect.name == "postgresql":
        return PostgresRanking(config_name)
    return TermHitRanking()


def has_value(field: str) -> ColumnElement[bool]:
    """The shared "has a value" rule: not NULL and not the empty string."""
    col = column(field)
    return and_(col.is_not(None), col != "")


def predicate_clause(predicate: Predicate, ranking: Ranking) -> ColumnElement[bool]:
    """Render one predicate as a boolean SQL expression."""
    match predicate:
        case Equals(field=field, value=value):
            return column(field) == value
        case Contains(field=field, value=value):
            return column(field).icontains(value, autoescape=True)
        case Range(field=field, low=low, high=high):
            col = column(field)
            bounds = [col.is_not(None)]
            if low is not None:
                bounds.append(col >= low)
            if high is not None:
                bounds.append(col <= high)
            return and_(*bounds)
        case TriState(field=field, required=required):
            present = has_value(field)
            return present if required else ~present
        case AnyContains(field=field, values=values):
            haystack = func.lower(_as_text(field))
            return or_(*(haystack.contains(v.lower(), autoescape=True) for v in values))
        case FreeText(text=text):
            substring = [column(f).icontains(text, autoescape=True) for f in SUBSTRING_TEXT_FIELDS]
            return or_(ranking.match(text), *substring)
    raise TypeError(f"Unsupported predicate: {predicate!r}")


def owner_scope(owner_id: str) -> ColumnElement[bool]:
    return CatalogRecord.owner_id == owner_id


def fold_predicates(
    owner_id: str,
    predicates: list[Predicate],
    ranking: Ranking,
) -> ColumnElement[bool]:
    """AND the owner scope with every predicate."""
    return and_(owner_scope(owner_id), *(predicate_clause(p, ranking) for p in predicates))
