"""
Shared fixtures for the test suite.

Centralizes reusable test infrastructure so individual test files
don't need to repeat override/mock boilerplate.

Every test gets a fresh in-memory SQLite catalog (one connection shared
through ``StaticPool``) and an artifact store under ``tmp_path``.  No
PostgreSQL, no network, no real audio decoding.
"""

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from api.deps import get_artifact_store, get_config, get_db, get_extractor
from api.main import app
from core.catalog.types import Artwork, ExtractedMetadata
from core.config import CatalogConfig
from db.catalog_store import CatalogStore
from db.models import Base, CatalogRecord
from db.session import build_engine
from ingestion.artifacts import LocalArtifactStore
from ingestion.catalog import CatalogIngestor

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

OWNER = "owner-a"
OTHER_OWNER = "owner-b"

BASE_TIME = datetime(2026, 2, 21, 12, 0, 0, tzinfo=UTC)
"""``created_at`` of the first record built by :func:`make_record`."""

FAKE_AUDIO = b"ID3" + b"\x00" * 256
FAKE_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# ---------------------------------------------------------------------------
# Fake metadata extractor
# ---------------------------------------------------------------------------


class FakeExtractor:
    """Returns a preset ``ExtractedMetadata`` without calling Mutagen.

    Records every path it was asked about in ``calls``.
    """

    def __init__(self, metadata: ExtractedMetadata | None = None) -> None:
        self.metadata = metadata or ExtractedMetadata(
            title="Tag Title",
            artist="Tag Artist",
            album="Tag Album",
            genre="Tag Genre",
            year=1999,
            duration=201.5,
            bitrate=320000,
            sample_rate=44100,
            channels=2,
            encoding="MPEG 1 Layer 3",
        )
        self.calls: list[Path] = []

    def extract(self, path: str | Path) -> ExtractedMetadata:
        self.calls.append(Path(path))
        return self.metadata


def extracted_with_artwork(**overrides: object) -> ExtractedMetadata:
    values: dict[str, object] = {
        "title": "Tag Title",
        "artist": "Tag Artist",
        "artwork": Artwork(data=FAKE_PNG, mime_type="image/png"),
    }
    values.update(overrides)
    return ExtractedMetadata(**values)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Record factory
# ---------------------------------------------------------------------------

_record_counter = 0


def make_record(owner_id: str = OWNER, **overrides: object) -> CatalogRecord:
    """Build an unsaved ``CatalogRecord`` with sensible defaults.

    Each call gets a ``created_at`` one minute after the previous one so
    newest-first ordering is deterministic.
    """
    global _record_counter  # noqa: PLW0603
    _record_counter += 1
    values: dict[str, object] = {
        "file_name": f"{owner_id}_1718000000000_track{_record_counter}.mp3",
        "original_name": f"track{_record_counter}.mp3",
        "file_path": f"{owner_id}_1718000000000_track{_record_counter}.mp3",
        "title": f"Track {_record_counter}",
        "artist": "Unknown Artist",
        "album": "Unknown Album",
        "genre": "Unknown",
        "size": 1024 * 1024,
        "format": "mp3",
        "composers": [],
        "owner_id": owner_id,
        "created_at": BASE_TIME + timedelta(minutes=_record_counter),
    }
    values.update(overrides)
    return CatalogRecord(**values)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Iterator[Engine]:
    eng = build_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory: sessionmaker) -> Iterator[Session]:
    db = session_factory()
    yield db
    db.close()


@pytest.fixture()
def store(session: Session) -> CatalogStore:
    return CatalogStore(session)


@pytest.fixture()
def add_records(session: Session):  # type: ignore[no-untyped-def]
    """Persist records built by :func:`make_record` and return them."""

    def _add(*records: CatalogRecord) -> list[CatalogRecord]:
        session.add_all(records)
        session.commit()
        return list(records)

    return _add


# ---------------------------------------------------------------------------
# Artifact / pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def artifacts(tmp_path: Path) -> LocalArtifactStore:
    return LocalArtifactStore(tmp_path / "uploads")


@pytest.fixture()
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture()
def ingestor(
    store: CatalogStore, artifacts: LocalArtifactStore, extractor: FakeExtractor
) -> CatalogIngestor:
    return CatalogIngestor(store, artifacts, extractor)


@pytest.fixture()
def stored_audio(artifacts: LocalArtifactStore):  # type: ignore[no-untyped-def]
    """Write fake audio bytes into the store and return the reference."""

    def _store(name: str = "song.mp3", data: bytes = FAKE_AUDIO, owner_id: str = OWNER) -> str:
        return artifacts.save(data, f"{owner_id}_1718000000000_{name}")

    return _store


# ---------------------------------------------------------------------------
# FastAPI test client fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_config(tmp_path: Path) -> CatalogConfig:
    return CatalogConfig(
        upload_dir=str(tmp_path / "uploads"),
        max_audio_bytes=64 * 1024,
        max_image_bytes=16 * 1024,
    )


@pytest.fixture()
def api_client(
    session_factory: sessionmaker,
    artifacts: LocalArtifactStore,
    extractor: FakeExtractor,
    test_config: CatalogConfig,
) -> Iterator[TestClient]:
    """FastAPI ``TestClient`` with DB, storage, extractor and config overridden.

    Sends ``X-Owner-Id: owner-a`` by default.
    """

    def _override_db() -> Iterator[Session]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_artifact_store] = lambda: artifacts
    app.dependency_overrides[get_extractor] = lambda: extractor
    app.dependency_overrides[get_config] = lambda: test_config

    with TestClient(app, headers={"X-Owner-Id": OWNER}) as c:
        yield c

    app.dependency_overrides.clear()
