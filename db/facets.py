"""
Facet aggregation over one owner's catalog.

Categorical facets are the sorted distinct non-empty values of a column.
Numeric facets are ``{min, max}`` over non-NULL values, falling back to
fixed defaults (``core.config.FacetDefaults``) when the owner has no value
at all, so range sliders always receive valid bounds.  BPM ignores values
<= 0, which are treated as unset.

Every sub-aggregation is an independent read-only query; they run in
sequence on the caller's session.
"""

from __future__ import annotations

import logging

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.orm import Session

from core.catalog.types import Facets, NumericRange
from core.config import FacetDefaults
from db.catalog_store import store_errors
from db.models import CatalogRecord
from db.query import has_value, owner_scope

logger = logging.getLogger(__name__)

_CATEGORICAL_FIELDS: tuple[str, ...] = ("genre", "artist", "album", "key", "mood", "encoding")


def distinct_values(session: Session, field: str, owner_id: str) -> tuple[str, ...]:
    """Sorted distinct non-empty values of *field* for *owner_id*."""
    col = getattr(CatalogRecord, field)
    stmt = (
        select(col)
        .where(owner_scope(owner_id), has_value(field))
        .distinct()
        .order_by(col)
    )
    return tuple(session.execute(stmt).scalars())


def value_range(
    session: Session,
    col: ColumnElement,
    owner_id: str,
    default: NumericRange,
    *extra: ColumnElement[bool],
) -> NumericRange:
    """``{min, max}`` of *col* over the owner's non-NULL values, or *default*."""
    stmt = select(func.min(col), func.max(col)).where(
        owner_scope(owner_id), col.is_not(None), *extra
    )
    low, high = session.execute(stmt).one()
    if low is None or high is None:
        return default
    return NumericRange(min=low, max=high)


def catalog_facets(
    session: Session,
    owner_id: str,
    defaults: FacetDefaults | None = None,
) -> Facets:
    """
    Compute all facets for one owner.

    Args:
        session: Active SQLAlchemy session.
        owner_id: Catalog owner.
        defaults: Fallback ranges for numeric facets without values.

    Returns:
        ``Facets`` value object.

    Raises:
        TransientStoreError: The store is unreachable.
    """
    defaults = defaults or FacetDefaults()

    with store_errors(session, "facets"):
        categorical = {
            field: distinct_values(session, field, owner_id) for field in _CATEGORICAL_FIELDS
        }
        year = value_range(
            session,
            CatalogRecord.year,
            owner_id,
            NumericRange(defaults.year_min, defaults.resolved_year_max),
        )
        duration = value_range(
            session,
            CatalogRecord.duration,
            owner_id,
            NumericRange(defaults.duration_min, defaults.duration_max),
        )
        bpm = value_range(
            session,
            CatalogRecord.bpm,
            owner_id,
            NumericRange(defaults.bpm_min, defaults.bpm_max),
            CatalogRecord.bpm > 0,
        )
        bitrate = value_range(
            session,
            CatalogRecord.bitrate,
            owner_id,
            NumericRange(defaults.bitrate_min, defaults.bitrate_max),
        )

    logger.debug("facets owner=%s genres=%d", owner_id, len(categorical["genre"]))
    return Facets(
        available_genres=categorical["genre"],
        available_artists=categorical["artist"],
        available_albums=categorical["album"],
        available_keys=categorical["key"],
        available_moods=categorical["mood"],
        available_encodings=categorical["encoding"],
        year_range=year,
        duration_range=duration,
        bpm_range=bpm,
        bitrate_range=bitrate,
    )
