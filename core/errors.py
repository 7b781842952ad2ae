"""
Error taxonomy for the catalog service.

Every failure the ingestion pipeline or the search layer surfaces is one of
these types.  The HTTP layer maps them to status codes in
``api/routes/music.py``; nothing below ``api/`` knows about HTTP.

Hierarchy::

    CatalogError
    ├── ValidationError            400  bad input, not retried
    │   ├── EmptyUploadError       400  zero-byte or missing upload
    │   └── UploadTooLargeError    413  over the configured size limit
    ├── NotFoundError              404  absent OR owned by someone else
    ├── ConflictError              409  duplicate identity constraint
    ├── PersistenceFailure         500  store rejected a write
    │   └── TransientStoreError    503  store unreachable, caller may retry
    └── NonFatalEnrichmentFailure  --   artwork failure, never reaches the caller
"""

from __future__ import annotations

NOT_FOUND_MESSAGE = "Music file not found"


class CatalogError(Exception):
    """Base class for all catalog errors."""


class ValidationError(CatalogError):
    """Input rejected before any state was changed."""


class EmptyUploadError(ValidationError):
    """The uploaded file is missing or has zero bytes."""


class UploadTooLargeError(ValidationError):
    """The uploaded file exceeds the configured size limit."""


class NotFoundError(CatalogError):
    """Record does not exist or is not owned by the caller.

    The two cases share one message so a caller cannot probe for the
    existence of other owners' records.
    """

    def __init__(self, message: str = NOT_FOUND_MESSAGE) -> None:
        super().__init__(message)


class ConflictError(CatalogError):
    """A uniqueness constraint was violated."""


class PersistenceFailure(CatalogError):
    """The catalog store failed to persist a change."""


class TransientStoreError(PersistenceFailure):
    """The catalog store is unavailable; the same call may succeed later."""


class NonFatalEnrichmentFailure(CatalogError):
    """Optional enrichment (embedded artwork) could not be stored."""
