"""Typed filter predicates for catalog search.

A :class:`~core.catalog.types.SearchQuery` is turned into a flat list of
small tagged predicates.  ``db/query.py`` folds the list into one
conjunctive SQL expression; tests can assert on the list directly without
touching a database.

Variants:
    Equals       field = value
    Contains     field ILIKE %value%
    Range        low <= field <= high, either bound optional, NULL excluded
    TriState     field has a value (required=True) or has none (False)
    AnyContains  any element of a list field ILIKE %value% for any value
    FreeText     ranking match OR substring match over the name fields

Field names are ``CatalogRecord`` attribute names.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.catalog.types import SearchQuery

# Fields that a free-text query also matches by plain substring, so a
# partial word such as "roc" still finds "Rocket Man".
SUBSTRING_TEXT_FIELDS: tuple[str, ...] = ("title", "artist", "album", "album_artist")

# Fields concatenated into the ranked document.
RANKED_TEXT_FIELDS: tuple[str, ...] = (
    "title",
    "artist",
    "album",
    "album_artist",
    "composers",
    "comment",
    "lyrics",
)


@dataclass(frozen=True)
class Equals:
    field: str
    value: object


@dataclass(frozen=True)
class Contains:
    field: str
    value: str


@dataclass(frozen=True)
class Range:
    field: str
    low: float | None = None
    high: float | None = None

    def __post_init__(self) -> None:
        if self.low is None and self.high is None:
            raise ValueError(f"Range on {self.field!r} needs at least one bound")


@dataclass(frozen=True)
class TriState:
    field: str
    required: bool


@dataclass(frozen=True)
class AnyContains:
    field: str
    values: tuple[str, ...]


@dataclass(frozen=True)
class FreeText:
    text: str


Predicate = Equals | Contains | Range | TriState | AnyContains | FreeText


def _range(field: str, low: float | None, high: float | None) -> list[Predicate]:
    if low is None and high is None:
        return []
    return [Range(field, low, high)]


def build_predicates(query: SearchQuery) -> list[Predicate]:
    """Translate a search query into the predicates it constrains.

    Absent filters produce nothing, so an empty query yields an empty list
    (the owner scope is added by the caller, not here).

    Args:
        query: Validated search request.

    Returns:
        Predicates in a fixed order: free text, exact, substring, range,
        presence, composers.
    """
    predicates: list[Predicate] = []

    if query.text is not None:
        predicates.append(FreeText(query.text))

    for field in ("genre", "key", "channels", "disc_number", "track_number"):
        value = getattr(query, field)
        if isinstance(value, str):
            value = value.strip() or None
        if value is not None:
            predicates.append(Equals(field, value))

    for field in ("encoding", "artist", "album", "album_artist", "mood"):
        value = getattr(query, field)
        if value is not None and value.strip():
            predicates.append(Contains(field, value.strip()))

    predicates += _range("year", query.year_from, query.year_to)
    predicates += _range("duration", query.duration_from, query.duration_to)
    predicates += _range("bpm", query.bpm_from, query.bpm_to)
    predicates += _range("bitrate", query.min_bitrate, None)

    if query.has_lyrics is not None:
        predicates.append(TriState("lyrics", query.has_lyrics))
    if query.has_cover_art is not None:
        predicates.append(TriState("cover_art", query.has_cover_art))

    composers = tuple(c.strip() for c in query.composers if c and c.strip())
    if composers:
        predicates.append(AnyContains("composers", composers))

    return predicates
