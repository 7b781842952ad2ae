"""
SQLAlchemy ORM models for the audio catalog.

One ``CatalogRecord`` row per uploaded audio file.  Every query in ``db/``
is scoped by ``owner_id``; there is no cross-owner read path.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CatalogRecord(Base):
    """Metadata and storage references for one uploaded audio file.

    ``file_path`` and ``cover_art`` are artifact references understood by
    the artifact store (``ingestion/artifacts.py``).  ``owner_id`` is set
    once at creation and never updated.

    Text columns are unbounded ``VARCHAR``: tag values and filenames are
    stored at whatever length the file or the client supplies.
    """

    __tablename__ = "catalog_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    file_name: Mapped[str] = mapped_column(String)
    original_name: Mapped[str] = mapped_column(String)
    file_path: Mapped[str] = mapped_column(String)

    title: Mapped[str | None] = mapped_column(String, nullable=True)
    artist: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    album: Mapped[str | None] = mapped_column(String, nullable=True)
    genre: Mapped[str | None] = mapped_column(String, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_tracks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disc_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_discs: Mapped[int | None] = mapped_column(Integer, nullable=True)

    album_artist: Mapped[str | None] = mapped_column(String, nullable=True)
    composers: Mapped[list[str]] = mapped_column(JSON, default=list)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    bpm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    key: Mapped[str | None] = mapped_column(String, nullable=True)
    mood: Mapped[str | None] = mapped_column(String, nullable=True)
    isrc: Mapped[str | None] = mapped_column(String, nullable=True)
    lyrics: Mapped[str | None] = mapped_column(Text, nullable=True)

    duration: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
    size: Mapped[int] = mapped_column(Integer)
    format: Mapped[str] = mapped_column(String(16), default="mp3")
    bitrate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sample_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    channels: Mapped[int | None] = mapped_column(Integer, nullable=True)
    encoding: Mapped[str | None] = mapped_column(String, nullable=True)

    cover_art: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    owner_id: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint("size > 0", name="ck_catalog_size_positive"),
        CheckConstraint("duration IS NULL OR duration >= 0", name="ck_catalog_duration_nonneg"),
        Index("idx_catalog_owner_created", "owner_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CatalogRecord {self.id} {self.artist!r} - {self.title!r}>"
