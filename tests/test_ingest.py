"""Tests for ingestion/catalog.py — the ingest / cover / edit / delete pipeline.

Fault injection uses ``unittest.mock`` on the store and the artifact store;
the database is in-memory SQLite.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import (
    FAKE_PNG,
    OTHER_OWNER,
    OWNER,
    FakeExtractor,
    extracted_with_artwork,
    make_record,
)
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from core.catalog.types import ExtractedMetadata, UploadFields
from core.errors import (
    EmptyUploadError,
    NotFoundError,
    PersistenceFailure,
    TransientStoreError,
    ValidationError,
)
from db.catalog_store import CatalogStore
from infrastructure import metrics
from ingestion.artifacts import LocalArtifactStore
from ingestion.catalog import CatalogIngestor, container_format


def _counter(counter, **labels) -> float:  # type: ignore[no-untyped-def]
    if labels:
        return counter.labels(**labels)._value.get()
    return counter._value.get()


class TestContainerFormat:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("a.mp3", "mp3"), ("b.FLAC", "flac"), ("c.m4a", "m4a"), ("noext", "mp3")],
    )
    def test_from_extension(self, name: str, expected: str) -> None:
        assert container_format(name) == expected


class TestIngest:
    def test_valid_upload_creates_record(
        self,
        ingestor: CatalogIngestor,
        artifacts: LocalArtifactStore,
        extractor: FakeExtractor,
        stored_audio,  # type: ignore[no-untyped-def]
    ) -> None:
        ref = stored_audio("song.mp3")
        record = ingestor.ingest(ref, "song.mp3", UploadFields(), OWNER)
        assert record.size > 0
        assert artifacts.exists(record.file_path)
        assert record.file_name == Path(ref).name
        assert record.title == "Tag Title"
        assert record.format == "mp3"
        assert record.owner_id == OWNER
        assert extractor.calls == [artifacts.local_path(ref)]

    def test_user_fields_override_tags(
        self, ingestor: CatalogIngestor, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        fields = UploadFields(title="Mine", artist="Me", album="Demo", genre="Ambient", year=2021)
        record = ingestor.ingest(stored_audio(), "song.mp3", fields, OWNER)
        assert (record.title, record.artist, record.album) == ("Mine", "Me", "Demo")
        assert (record.genre, record.year) == ("Ambient", 2021)
        assert record.bitrate == 320000

    def test_fallback_metadata_uses_filename(
        self, store: CatalogStore, artifacts: LocalArtifactStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        extractor = FakeExtractor(ExtractedMetadata(is_fallback=True))
        ingestor = CatalogIngestor(store, artifacts, extractor)
        ref = stored_audio("rocket_man.mp3")
        record = ingestor.ingest(ref, "rocket_man.mp3", UploadFields(), OWNER)
        assert record.title == "Rocket Man"
        assert record.artist == "Unknown Artist"

    def test_missing_artifact_is_empty_upload(self, ingestor: CatalogIngestor, store: CatalogStore) -> None:
        with pytest.raises(EmptyUploadError):
            ingestor.ingest("never_written.mp3", "x.mp3", UploadFields(), OWNER)
        assert store.list_for_owner(OWNER)[1] == 0

    def test_zero_byte_artifact_is_deleted(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, store: CatalogStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        ref = stored_audio("empty.mp3", data=b"")
        with pytest.raises(EmptyUploadError):
            ingestor.ingest(ref, "empty.mp3", UploadFields(), OWNER)
        assert not artifacts.exists(ref)
        assert store.list_for_owner(OWNER)[1] == 0

    def test_persistence_failure_removes_audio(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, store: CatalogStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        ref = stored_audio()
        before = _counter(metrics.ingest_total, status="persistence_error")
        with (
            patch.object(CatalogStore, "add", side_effect=PersistenceFailure("rejected")),
            pytest.raises(PersistenceFailure),
        ):
            ingestor.ingest(ref, "song.mp3", UploadFields(), OWNER)
        assert not artifacts.exists(ref)
        assert store.list_for_owner(OWNER)[1] == 0
        assert _counter(metrics.ingest_total, status="persistence_error") == before + 1

    def test_transient_failure_is_reraised_unchanged(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        ref = stored_audio()
        with (
            patch.object(CatalogStore, "add", side_effect=TransientStoreError("down")),
            pytest.raises(TransientStoreError),
        ):
            ingestor.ingest(ref, "song.mp3", UploadFields(), OWNER)
        assert not artifacts.exists(ref)

    def test_io_error_during_extraction_cleans_up(
        self, store: CatalogStore, artifacts: LocalArtifactStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        extractor = FakeExtractor()
        ingestor = CatalogIngestor(store, artifacts, extractor)
        ref = stored_audio()
        with (
            patch.object(extractor, "extract", side_effect=OSError("disk gone")),
            pytest.raises(OSError, match="disk gone"),
        ):
            ingestor.ingest(ref, "song.mp3", UploadFields(), OWNER)
        assert not artifacts.exists(ref)

    def test_cleanup_failure_does_not_mask_original_error(
        self, ingestor: CatalogIngestor, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        ref = stored_audio()
        before = _counter(metrics.cleanup_failures_total, reason="ingest")
        with (
            patch.object(CatalogStore, "add", side_effect=PersistenceFailure("rejected")),
            patch.object(LocalArtifactStore, "delete", side_effect=OSError("busy")),
            pytest.raises(PersistenceFailure, match="rejected"),
        ):
            ingestor.ingest(ref, "song.mp3", UploadFields(), OWNER)
        assert _counter(metrics.cleanup_failures_total, reason="ingest") == before + 1


class TestExtractedArtwork:
    def _ingestor(self, store: CatalogStore, artifacts: LocalArtifactStore) -> CatalogIngestor:
        return CatalogIngestor(store, artifacts, FakeExtractor(extracted_with_artwork()))

    def test_artwork_is_stored_and_attached(
        self, store: CatalogStore, artifacts: LocalArtifactStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        record = self._ingestor(store, artifacts).ingest(
            stored_audio(), "song.mp3", UploadFields(), OWNER
        )
        assert record.cover_art is not None
        assert record.cover_art.startswith(f"covers/extracted_{OWNER}_{record.id}_")
        assert record.cover_art.endswith(".png")
        assert artifacts.local_path(record.cover_art).read_bytes() == FAKE_PNG
        assert store.get(record.id, OWNER).cover_art == record.cover_art

    def test_artwork_save_failure_is_non_fatal(
        self, store: CatalogStore, artifacts: LocalArtifactStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        ref = stored_audio()
        before = metrics.artwork_failures_total._value.get()
        with patch.object(LocalArtifactStore, "save", side_effect=OSError("disk full")):
            record = self._ingestor(store, artifacts).ingest(
                ref, "song.mp3", UploadFields(), OWNER
            )
        assert record.cover_art is None
        assert store.get(record.id, OWNER).cover_art is None
        assert artifacts.exists(record.file_path)
        assert metrics.artwork_failures_total._value.get() == before + 1

    def test_artwork_attach_failure_removes_artwork(
        self, store: CatalogStore, artifacts: LocalArtifactStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        with patch.object(CatalogStore, "save", side_effect=PersistenceFailure("rejected")):
            record = self._ingestor(store, artifacts).ingest(
                stored_audio(), "song.mp3", UploadFields(), OWNER
            )
        assert record.cover_art is None
        assert not any(ref.startswith("covers/") for ref in artifacts.iter_refs())

    def test_store_outage_during_attach_leaves_readable_record(
        self, session: Session, store: CatalogStore, artifacts: LocalArtifactStore, stored_audio  # type: ignore[no-untyped-def]
    ) -> None:
        def _rolled_back_save(record: object) -> None:
            # What store_errors does on a lost connection: roll back, then raise.
            session.rollback()
            raise TransientStoreError("connection lost")

        ref = stored_audio()
        with patch.object(CatalogStore, "save", side_effect=_rolled_back_save):
            record = self._ingestor(store, artifacts).ingest(ref, "song.mp3", UploadFields(), OWNER)

        outage = OperationalError("SELECT", {}, Exception("server closed the connection"))
        with patch.object(Session, "execute", side_effect=outage):
            assert record.title == "Tag Title"
            assert record.file_path == ref
            assert record.cover_art is None
        assert not any(r.startswith("covers/") for r in artifacts.iter_refs())
        assert store.get(record.id, OWNER).cover_art is None


class TestAttachCoverArt:
    def test_replaces_and_removes_previous(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, add_records  # type: ignore[no-untyped-def]
    ) -> None:
        old = artifacts.save(FAKE_PNG, "covers/old.png")
        (record,) = add_records(make_record(cover_art=old))
        new = artifacts.save(FAKE_PNG, "covers/new.png")
        updated = ingestor.attach_cover_art(record.id, OWNER, new)
        assert updated.cover_art == new
        assert artifacts.exists(new)
        assert not artifacts.exists(old)

    def test_foreign_record_is_not_found_and_upload_removed(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, add_records  # type: ignore[no-untyped-def]
    ) -> None:
        (record,) = add_records(make_record(OTHER_OWNER))
        new = artifacts.save(FAKE_PNG, "covers/new.png")
        with pytest.raises(NotFoundError) as foreign:
            ingestor.attach_cover_art(record.id, OWNER, new)
        assert not artifacts.exists(new)

        again = artifacts.save(FAKE_PNG, "covers/again.png")
        with pytest.raises(NotFoundError) as missing:
            ingestor.attach_cover_art("no-such-id", OWNER, again)
        assert str(foreign.value) == str(missing.value)

    def test_empty_image_is_rejected(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, add_records  # type: ignore[no-untyped-def]
    ) -> None:
        (record,) = add_records(make_record())
        empty = artifacts.save(b"", "covers/empty.png")
        with pytest.raises(ValidationError):
            ingestor.attach_cover_art(record.id, OWNER, empty)
        assert not artifacts.exists(empty)

    def test_persistence_failure_keeps_old_cover(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, add_records  # type: ignore[no-untyped-def]
    ) -> None:
        old = artifacts.save(FAKE_PNG, "covers/old.png")
        (record,) = add_records(make_record(cover_art=old))
        new = artifacts.save(FAKE_PNG, "covers/new.png")
        with (
            patch.object(CatalogStore, "save", side_effect=PersistenceFailure("rejected")),
            pytest.raises(PersistenceFailure),
        ):
            ingestor.attach_cover_art(record.id, OWNER, new)
        assert artifacts.exists(old)
        assert not artifacts.exists(new)


class TestUpdateFields:
    def test_edits_and_clears(self, ingestor: CatalogIngestor, add_records) -> None:  # type: ignore[no-untyped-def]
        (record,) = add_records(make_record(mood="dark"))
        updated = ingestor.update_fields(
            record.id, OWNER, {"title": "  New   Title ", "mood": "", "bpm": 122}
        )
        assert updated.title == "New Title"
        assert updated.mood is None
        assert updated.bpm == 122

    def test_composers_list_is_cleaned(self, ingestor: CatalogIngestor, add_records) -> None:  # type: ignore[no-untyped-def]
        (record,) = add_records(make_record())
        updated = ingestor.update_fields(record.id, OWNER, {"composers": [" A ", "", "B"]})
        assert updated.composers == ["A", "B"]

    @pytest.mark.parametrize("field", ["owner_id", "file_path", "size", "cover_art"])
    def test_protected_fields_rejected(self, ingestor: CatalogIngestor, add_records, field: str) -> None:  # type: ignore[no-untyped-def]
        (record,) = add_records(make_record())
        with pytest.raises(ValidationError, match="not editable"):
            ingestor.update_fields(record.id, OWNER, {field: "x"})

    def test_wrong_type_rejected(self, ingestor: CatalogIngestor, add_records) -> None:  # type: ignore[no-untyped-def]
        (record,) = add_records(make_record())
        with pytest.raises(ValidationError, match="year"):
            ingestor.update_fields(record.id, OWNER, {"year": "1999"})

    def test_foreign_record_not_found(self, ingestor: CatalogIngestor, add_records) -> None:  # type: ignore[no-untyped-def]
        (record,) = add_records(make_record(OTHER_OWNER))
        with pytest.raises(NotFoundError):
            ingestor.update_fields(record.id, OWNER, {"title": "stolen"})


class TestDelete:
    def test_removes_record_audio_and_cover(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, store: CatalogStore, add_records  # type: ignore[no-untyped-def]
    ) -> None:
        audio = artifacts.save(b"audio", "owner-a_1718000000000_song.mp3")
        cover = artifacts.save(FAKE_PNG, "covers/cover.png")
        (record,) = add_records(make_record(file_path=audio, cover_art=cover))

        ingestor.delete(record.id, OWNER)

        assert store.find(record.id, OWNER) is None
        assert not artifacts.exists(audio)
        assert not artifacts.exists(cover)
        with pytest.raises(NotFoundError):
            ingestor.delete(record.id, OWNER)

    def test_artifact_delete_failure_is_logged_only(
        self, ingestor: CatalogIngestor, artifacts: LocalArtifactStore, store: CatalogStore, add_records  # type: ignore[no-untyped-def]
    ) -> None:
        audio = artifacts.save(b"audio", "owner-a_1718000000000_song.mp3")
        (record,) = add_records(make_record(file_path=audio))
        with patch.object(LocalArtifactStore, "delete", side_effect=OSError("busy")):
            ingestor.delete(record.id, OWNER)
        assert store.find(record.id, OWNER) is None
        assert artifacts.exists(audio)

    def test_foreign_record_untouched(
        self, ingestor: CatalogIngestor, store: CatalogStore, add_records  # type: ignore[no-untyped-def]
    ) -> None:
        (record,) = add_records(make_record(OTHER_OWNER))
        with pytest.raises(NotFoundError):
            ingestor.delete(record.id, OWNER)
        assert store.find(record.id, OTHER_OWNER) is not None
