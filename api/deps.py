"""
FastAPI dependency providers.

Reuses the canonical session factory from ``db.session`` to avoid
duplicate engine/sessionmaker definitions.  Provides singletons for the
configuration, artifact store and metadata extractor so they are created
once and reused across requests.
"""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from core.config import CatalogConfig, load_config
from db.catalog_store import CatalogStore
from db.session import SessionLocal
from ingestion.artifacts import LocalArtifactStore
from ingestion.catalog import CatalogIngestor
from ingestion.metadata import MetadataExtractor, MutagenExtractor


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_config: CatalogConfig | None = None


def get_config() -> CatalogConfig:
    """Return the catalog configuration, read from the environment once."""
    global _config  # noqa: PLW0603
    if _config is None:
        _config = load_config()
    return _config


_artifact_store: LocalArtifactStore | None = None


def get_artifact_store() -> LocalArtifactStore:
    """
    Return a cached ``LocalArtifactStore`` singleton.

    Rooted at ``CatalogConfig.upload_dir``; the directory is created on the
    first write.
    """
    global _artifact_store  # noqa: PLW0603
    if _artifact_store is None:
        _artifact_store = LocalArtifactStore(get_config().upload_dir)
    return _artifact_store


_extractor: MetadataExtractor | None = None


def get_extractor() -> MetadataExtractor:
    """Return a cached Mutagen-backed metadata extractor."""
    global _extractor  # noqa: PLW0603
    if _extractor is None:
        _extractor = MutagenExtractor()
    return _extractor


def get_owner_id(
    x_owner_id: Annotated[str | None, Header(description="Owner of the catalog.")] = None,
) -> str:
    """The caller's owner id, from the ``X-Owner-Id`` header.

    Authentication happens upstream; this service trusts the header.
    """
    if x_owner_id is None or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    return x_owner_id.strip()


def get_ingestor(
    db: Annotated[Session, Depends(get_db)],
    artifacts: Annotated[LocalArtifactStore, Depends(get_artifact_store)],
    extractor: Annotated[MetadataExtractor, Depends(get_extractor)],
) -> CatalogIngestor:
    """Build a pipeline bound to this request's session."""
    return CatalogIngestor(CatalogStore(db), artifacts, extractor)
