"""
Bulk import: copy a directory of audio files into one owner's catalog.

Each file goes through the same pipeline as an HTTP upload (store ->
extract -> merge -> persist -> artwork), so the two paths cannot drift.

CLI entry point::

    python -m ingestion.ingest --data-dir ~/Music --owner 3f2a --limit 10
"""

from __future__ import annotations

import argparse
import logging
import pathlib
from dataclasses import dataclass, field

from core.catalog.types import UploadFields
from core.config import AUDIO_EXTENSIONS, CatalogConfig, load_config
from core.errors import CatalogError, TransientStoreError
from db.catalog_store import CatalogStore
from db.models import Base
from db.session import SessionLocal, engine
from ingestion.artifacts import LocalArtifactStore, audio_file_name
from ingestion.catalog import CatalogIngestor
from ingestion.metadata import MetadataExtractor, MutagenExtractor

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    """Outcome counts for one import run."""

    imported: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


def find_audio_files(
    data_dir: str | pathlib.Path, *, limit: int | None = None
) -> list[pathlib.Path]:
    """Accepted audio files under *data_dir*, sorted, at most *limit*."""
    root = pathlib.Path(data_dir)
    files = sorted(
        p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in AUDIO_EXTENSIONS
    )
    return files[:limit] if limit is not None else files


def import_directory(
    data_dir: str | pathlib.Path,
    owner_id: str,
    ingestor: CatalogIngestor,
    artifacts: LocalArtifactStore,
    config: CatalogConfig,
    *,
    limit: int | None = None,
) -> ImportSummary:
    """
    Import every accepted audio file under *data_dir* for *owner_id*.

    Files over ``config.max_audio_bytes`` or with zero bytes are skipped.
    A failure on one file is logged and counted; the run goes on, except
    for ``TransientStoreError``, which aborts since every later file would
    fail the same way.
    """
    summary = ImportSummary()
    for path in find_audio_files(data_dir, limit=limit):
        size = path.stat().st_size
        if size == 0 or size > config.max_audio_bytes:
            logger.warning("Skipping %s (%d bytes)", path, size)
            summary.skipped.append(path.name)
            continue

        ref = artifacts.copy_into(path, audio_file_name(owner_id, path.name))
        try:
            record = ingestor.ingest(ref, path.name, UploadFields(), owner_id)
        except TransientStoreError:
            raise
        except CatalogError as exc:
            logger.error("Import of %s failed: %s", path, exc)
            summary.failed.append((path.name, str(exc)))
            continue
        summary.imported.append(record.id)
        print(f"  {path.name}: {record.title} by {record.artist}")
    return summary


def run_import(
    data_dir: str,
    owner_id: str,
    *,
    limit: int | None = None,
    extractor: MetadataExtractor | None = None,
) -> ImportSummary:
    """Create tables if needed, then import *data_dir* into the configured store."""
    Base.metadata.create_all(bind=engine)
    config = load_config()
    artifacts = LocalArtifactStore(config.upload_dir)

    session = SessionLocal()
    try:
        ingestor = CatalogIngestor(CatalogStore(session), artifacts, extractor or MutagenExtractor())
        summary = import_directory(data_dir, owner_id, ingestor, artifacts, config, limit=limit)
    finally:
        session.close()

    print(
        f"Imported {len(summary.imported)}, skipped {len(summary.skipped)}, "
        f"failed {len(summary.failed)}."
    )
    return summary


def main() -> None:
    """Parse CLI arguments and run the import."""
    parser = argparse.ArgumentParser(
        description="Import a directory of audio files into an owner's catalog.",
    )
    parser.add_argument(
        "--data-dir",
        required=True,
        help="Root directory searched recursively for audio files.",
    )
    parser.add_argument(
        "--owner",
        required=True,
        help="Owner id the imported records belong to.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of files to import.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    run_import(args.data_dir, args.owner, limit=args.limit)


if __name__ == "__main__":
    main()
