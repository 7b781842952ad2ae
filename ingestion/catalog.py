"""
Catalog ingestion pipeline: extract -> merge -> persist -> attach artwork.

There is no transaction spanning the artifact store and the database, so
every mutation follows one staging order::

    1. audio artifact written      (by the caller / HTTP layer)
    2. record row committed
    3. derived artifact written and its reference attached (second commit)

A failure in step 2 deletes the step-1 artifact before the error
propagates, so no visible record ever points at nothing.  A crash between
steps leaves an orphaned artifact at worst; ``ingestion/reconcile.py``
finds those.

Compensating deletes are best-effort: their own failures are logged and
counted, never raised, so the original error is what the caller sees.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Any

from core.catalog.merge import clean_text, merge_fields
from core.catalog.types import Artwork, UploadFields
from core.errors import (
    CatalogError,
    EmptyUploadError,
    NonFatalEnrichmentFailure,
    PersistenceFailure,
    TransientStoreError,
    ValidationError,
)
from db.catalog_store import CatalogStore, column_values, restore_committed
from db.models import CatalogRecord
from infrastructure.metrics import (
    record_artwork_failure,
    record_cleanup_failure,
    record_ingest,
)
from ingestion.artifacts import ArtifactStore, extracted_artwork_hint
from ingestion.metadata import MetadataExtractor

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "mp3"

# Fields an owner may edit after upload.  owner_id, file references and
# audio properties are deliberately absent.
EDITABLE_TEXT_FIELDS: frozenset[str] = frozenset(
    {"title", "artist", "album", "album_artist", "genre", "comment", "mood", "key", "lyrics"}
)
EDITABLE_INT_FIELDS: frozenset[str] = frozenset(
    {"year", "track_number", "total_tracks", "disc_number", "total_discs", "bpm"}
)
EDITABLE_FIELDS: frozenset[str] = EDITABLE_TEXT_FIELDS | EDITABLE_INT_FIELDS | {"composers"}


def container_format(original_name: str) -> str:
    """Container format from the file extension, e.g. ``"flac"``."""
    suffix = PurePosixPath(original_name).suffix.lower().lstrip(".")
    return suffix or DEFAULT_FORMAT


def _ingest_status(exc: BaseException) -> str:
    if isinstance(exc, EmptyUploadError):
        return "empty"
    if isinstance(exc, TransientStoreError):
        return "transient_error"
    if isinstance(exc, PersistenceFailure):
        return "persistence_error"
    return "error"


class CatalogIngestor:
    """Owner-scoped catalog operations that touch both stores.

    Args:
        store: Catalog store bound to the request's session.
        artifacts: Byte storage holding audio files and covers.
        extractor: Tag reader used on freshly stored audio.
    """

    def __init__(
        self,
        store: CatalogStore,
        artifacts: ArtifactStore,
        extractor: MetadataExtractor,
    ) -> None:
        self._store = store
        self._artifacts = artifacts
        self._extractor = extractor

    # ------------------------------------------------------------------ #
    # Compensation                                                         #
    # ------------------------------------------------------------------ #

    def _discard(self, ref: str, reason: str) -> None:
        """Best-effort artifact delete; failures are logged, never raised."""
        try:
            self._artifacts.delete(ref)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cleanup of artifact %s after %s failed: %s", ref, reason, exc)
            record_cleanup_failure(reason)

    # ------------------------------------------------------------------ #
    # Ingest                                                               #
    # ------------------------------------------------------------------ #

    def ingest(
        self,
        audio_ref: str,
        original_name: str,
        fields: UploadFields,
        owner_id: str,
    ) -> CatalogRecord:
        """
        Create a catalog record for an audio artifact that is already stored.

        Args:
            audio_ref: Artifact reference of the stored audio file.
            original_name: Client-side filename.
            fields: Metadata typed in by the uploader; each set field wins
                over the extracted value.
            owner_id: Owner of the new record.

        Returns:
            The persisted record, with ``cover_art`` set when embedded
            artwork could be stored.

        Raises:
            EmptyUploadError: The artifact is missing or has zero bytes.
            PersistenceFailure: The record could not be saved.  The audio
                artifact has been deleted (best-effort).
        """
        size = self._artifacts.size(audio_ref)
        if size is None:
            record_ingest("empty")
            raise EmptyUploadError("File upload failed - file not saved to storage")
        if size == 0:
            self._discard(audio_ref, "empty_upload")
            record_ingest("empty")
            raise EmptyUploadError("File upload failed - empty file saved to storage")

        logger.info("Processing music upload for owner %s: %s", owner_id, original_name)

        try:
            extracted = self._extractor.extract(self._artifacts.local_path(audio_ref))
            if extracted.is_fallback:
                logger.warning("Using filename-derived metadata for %s", original_name)
            record = CatalogRecord(
                file_name=PurePosixPath(audio_ref).name,
                original_name=original_name,
                file_path=audio_ref,
                size=size,
                format=container_format(original_name),
                owner_id=owner_id,
                **merge_fields(fields, extracted, original_name=original_name),
            )
            self._store.add(record)
        except Exception as exc:
            logger.error("Failed to process music upload for owner %s: %s", owner_id, exc)
            self._discard(audio_ref, "ingest")
            record_ingest(_ingest_status(exc))
            raise

        if extracted.artwork is not None:
            try:
                self._attach_extracted_artwork(record, extracted.artwork, owner_id)
            except NonFatalEnrichmentFailure as exc:
                logger.warning("%s - continuing without cover art", exc)
                record_artwork_failure()

        logger.info(
            "Successfully processed music upload: %s by %s (%s)",
            record.title,
            record.artist,
            record.id,
        )
        record_ingest("ok")
        return record

    def _attach_extracted_artwork(
        self, record: CatalogRecord, artwork: Artwork, owner_id: str
    ) -> None:
        """Store embedded artwork and point the record at it.

        A failed save rolls the session back, which expires *record*; its
        committed values are put back from a snapshot so it stays readable
        without another round trip to the store.

        Raises:
            NonFatalEnrichmentFailure: Saving or attaching failed; any
                artwork already written has been discarded.
        """
        committed = column_values(record)
        record_id = record.id
        hint = extracted_artwork_hint(owner_id, record_id, artwork.extension)
        artwork_ref: str | None = None
        try:
            artwork_ref = self._artifacts.save(artwork.data, hint)
            record.cover_art = artwork_ref
            self._store.save(record)
        except Exception as exc:  # noqa: BLE001
            restore_committed(record, committed)
            if artwork_ref is not None:
                self._discard(artwork_ref, "artwork")
            raise NonFatalEnrichmentFailure(
                f"Failed to save extracted artwork for music {record_id}: {exc}"
            ) from exc
        logger.info("Artwork extracted and saved for music %s", record_id)

    # ------------------------------------------------------------------ #
    # Cover art                                                            #
    # ------------------------------------------------------------------ #

    def attach_cover_art(self, record_id: str, owner_id: str, cover_ref: str) -> CatalogRecord:
        """
        Replace a record's cover art with an already-stored image.

        The new reference is committed first; the previous cover artifact
        is deleted only afterwards, so the record never points at a
        deleted file.

        Raises:
            ValidationError: The image artifact is missing or empty.
            NotFoundError: No such record for this owner.  The uploaded
                image has been deleted.
            PersistenceFailure: The update failed.  The uploaded image has
                been deleted and the old cover is untouched.
        """
        if not self._artifacts.size(cover_ref):
            if self._artifacts.exists(cover_ref):
                self._discard(cover_ref, "cover")
            raise ValidationError("Cover art upload failed")

        try:
            record = self._store.get(record_id, owner_id)
            previous = record.cover_art
            record.cover_art = cover_ref
            self._store.save(record)
        except CatalogError:
            self._discard(cover_ref, "cover")
            raise

        if previous and previous != cover_ref:
            self._discard(previous, "cover_replace")
        logger.info("Cover art replaced for music %s", record_id)
        return record

    # ------------------------------------------------------------------ #
    # Edit / read / delete                                                 #
    # ------------------------------------------------------------------ #

    def update_fields(
        self, record_id: str, owner_id: str, changes: Mapping[str, Any]
    ) -> CatalogRecord:
        """
        Edit metadata fields of a record.

        Blank strings clear a text field.  ``composers`` takes a list.

        Raises:
            ValidationError: A field is not editable or has the wrong type.
            NotFoundError: No such record for this owner.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")

        record = self._store.get(record_id, owner_id)
        for field, value in changes.items():
            if field == "composers":
                if value is None:
                    value = []
                if not isinstance(value, (list, tuple)):
                    raise ValidationError("composers must be a list of names")
                value = [c for c in (clean_text(str(v)) for v in value) if c]
            elif field in EDITABLE_INT_FIELDS:
                if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                    raise ValidationError(f"{field} must be an integer")
            elif value is not None:
                if not isinstance(value, str):
                    raise ValidationError(f"{field} must be a string")
                value = value.strip() if field == "lyrics" else clean_text(value)
                value = value or None
            setattr(record, field, value)

        return self._store.save(record)

    def get(self, record_id: str, owner_id: str) -> CatalogRecord:
        return self._store.get(record_id, owner_id)

    def list_records(
        self, owner_id: str, page: int = 1, limit: int = 10
    ) -> tuple[list[CatalogRecord], int, int]:
        return self._store.list_for_owner(owner_id, page, limit)

    def delete(self, record_id: str, owner_id: str) -> None:
        """
        Delete a record together with its audio and cover artifacts.

        The row goes first: if that fails nothing has changed.  Artifact
        deletes afterwards are best-effort; a leftover file is an orphan
        for the reconciliation sweep, never a dangling visible record.

        Raises:
            NotFoundError: No such record for this owner (including a
                second delete of the same id).
        """
        record = self._store.get(record_id, owner_id)
        refs = [record.file_path] + ([record.cover_art] if record.cover_art else [])
        self._store.delete(record)
        for ref in refs:
            self._discard(ref, "delete")
        logger.info("Deleted music %s for owner %s", record_id, owner_id)


__all__ = ["CatalogIngestor", "EDITABLE_FIELDS", "container_format"]
