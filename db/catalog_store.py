"""
Owner-scoped persistence for ``CatalogRecord`` rows.

Wraps a SQLAlchemy ``Session`` so the ingestion pipeline and the HTTP layer
never see driver exceptions: every ``SQLAlchemyError`` is rolled back and
re-raised as a :mod:`core.errors` type.

    OperationalError / invalidated connection  -> TransientStoreError
    anything else (IntegrityError, ...)        -> PersistenceFailure

Each write is a single commit, so an abandoned request can never leave a
row half-updated.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

from sqlalchemy import func, inspect, select
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from core.errors import NotFoundError, PersistenceFailure, TransientStoreError
from db.models import CatalogRecord

logger = logging.getLogger(__name__)


def translate_store_error(exc: SQLAlchemyError) -> PersistenceFailure:
    """Map a SQLAlchemy exception onto the catalog error taxonomy."""
    if isinstance(exc, OperationalError) or (
        isinstance(exc, DBAPIError) and exc.connection_invalidated
    ):
        return TransientStoreError(f"Catalog store unavailable: {exc.__class__.__name__}")
    return PersistenceFailure(f"Catalog store rejected the operation: {exc.__class__.__name__}")


@contextmanager
def store_errors(session: Session, action: str) -> Iterator[None]:
    """Roll back and translate any SQLAlchemy error raised inside the block."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Catalog store %s failed: %s", action, exc)
        raise translate_store_error(exc) from exc


def column_values(record: CatalogRecord) -> dict[str, object]:
    """Snapshot of a loaded record's column attributes."""
    return {attr.key: getattr(record, attr.key) for attr in inspect(record).mapper.column_attrs}


def restore_committed(record: CatalogRecord, values: Mapping[str, object]) -> None:
    """Put known committed values back on a record a rollback has expired.

    No query is issued, so the record stays readable while the store is down.
    """
    for key, value in values.items():
        set_committed_value(record, key, value)


class CatalogStore:
    """CRUD over catalog records, always filtered by owner.

    Args:
        session: Active SQLAlchemy session.  The store commits after every
            write; callers should not hold open transactions across calls.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def find(self, record_id: str, owner_id: str) -> CatalogRecord | None:
        """Return the record if it exists and belongs to *owner_id*."""
        stmt = select(CatalogRecord).where(
            CatalogRecord.id == record_id,
            CatalogRecord.owner_id == owner_id,
        )
        with store_errors(self._session, "find"):
            return self._session.execute(stmt).scalar_one_or_none()

    def get(self, record_id: str, owner_id: str) -> CatalogRecord:
        """Like :meth:`find` but raises when nothing matches.

        Raises:
            NotFoundError: Record missing or owned by someone else.
        """
        record = self.find(record_id, owner_id)
        if record is None:
            raise NotFoundError()
        return record

    def list_for_owner(
        self, owner_id: str, page: int = 1, limit: int = 10
    ) -> tuple[list[CatalogRecord], int, int]:
        """Newest-first page of an owner's records.

        Returns:
            ``(records, total, total_pages)``.

        Raises:
            ValueError: If *page* < 1 or *limit* < 1.
        """
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        count_stmt = (
            select(func.count()).select_from(CatalogRecord).where(CatalogRecord.owner_id == owner_id)
        )
        page_stmt = (
            select(CatalogRecord)
            .where(CatalogRecord.owner_id == owner_id)
            .order_by(CatalogRecord.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        with store_errors(self._session, "list"):
            total = self._session.execute(count_stmt).scalar_one()
            records = list(self._session.execute(page_stmt).scalars())
        return records, total, math.ceil(total / limit)

    def referenced_artifacts(self) -> set[str]:
        """Every audio and cover reference held by any record (all owners).

        Only the reconciliation sweep uses this; request handlers never
        read across owners.
        """
        stmt = select(CatalogRecord.file_path, CatalogRecord.cover_art)
        refs: set[str] = set()
        with store_errors(self._session, "scan"):
            for file_path, cover_art in self._session.execute(stmt):
                refs.add(file_path)
                if cover_art:
                    refs.add(cover_art)
        return refs

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    def add(self, record: CatalogRecord) -> CatalogRecord:
        """Insert a new record and commit."""
        with store_errors(self._session, "insert"):
            self._session.add(record)
            self._session.commit()
        return record

    def save(self, record: CatalogRecord) -> CatalogRecord:
        """Commit pending changes on an already-persisted record."""
        with store_errors(self._session, "update"):
            self._session.add(record)
            self._session.commit()
        return record

    def delete(self, record: CatalogRecord) -> None:
        """Delete the row and commit."""
        with store_errors(self._session, "delete"):
            self._session.delete(record)
            self._session.commit()
