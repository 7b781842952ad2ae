"""
Orphan sweep: artifacts on disk that no catalog record references.

Orphans are the expected residue of a crash between writing an artifact and
committing the record (or of a failed best-effort delete).  They are never
visible through the API, only wasted space.

CLI entry point::

    python -m ingestion.reconcile            # report only
    python -m ingestion.reconcile --delete   # remove the orphans
"""

from __future__ import annotations

import argparse
import logging

from core.config import load_config
from db.catalog_store import CatalogStore
from db.session import SessionLocal
from ingestion.artifacts import LocalArtifactStore

logger = logging.getLogger(__name__)


def find_orphans(store: CatalogStore, artifacts: LocalArtifactStore) -> list[str]:
    """Artifact references present on disk but held by no record, sorted."""
    referenced = store.referenced_artifacts()
    return sorted(ref for ref in artifacts.iter_refs() if ref not in referenced)


def sweep(store: CatalogStore, artifacts: LocalArtifactStore, *, delete: bool = False) -> list[str]:
    """
    Find orphaned artifacts and optionally delete them.

    Returns:
        The orphan references found.  With ``delete=True`` each was removed;
        a removal that fails is logged and the sweep continues.
    """
    orphans = find_orphans(store, artifacts)
    for ref in orphans:
        if not delete:
            logger.info("Orphaned artifact: %s", ref)
            continue
        try:
            artifacts.delete(ref)
        except OSError as exc:
            logger.warning("Could not delete orphan %s: %s", ref, exc)
            continue
        logger.info("Deleted orphaned artifact: %s", ref)
    return orphans


def main() -> None:
    """Parse CLI arguments and run the sweep."""
    parser = argparse.ArgumentParser(
        description="List (or delete) stored artifacts that no catalog record references.",
    )
    parser.add_argument(
        "--delete",
        action="store_true",
        help="Remove the orphans instead of only listing them.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    artifacts = LocalArtifactStore(load_config().upload_dir)
    session = SessionLocal()
    try:
        orphans = sweep(CatalogStore(session), artifacts, delete=args.delete)
    finally:
        session.close()

    verb = "Deleted" if args.delete else "Found"
    print(f"{verb} {len(orphans)} orphaned artifact(s) under {artifacts.root}")


if __name__ == "__main__":
    main()
