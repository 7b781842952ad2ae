"""
Routes for the owner-scoped audio catalog.

``POST   /music/upload``              — store + ingest an audio file
``POST   /music/{id}/cover``          — replace cover art
``GET    /music/search``              — filtered, ranked, paginated search
``GET    /music/search/filters``      — facet values and ranges
``GET    /music/search/suggestions``  — autocomplete
``GET    /music``                     — newest-first listing
``GET    /music/{id}``                — one record
``PATCH  /music/{id}``                — edit metadata fields
``DELETE /music/{id}``                — delete record and its files

Every route requires the ``X-Owner-Id`` header; records of other owners
are reported exactly like missing ones.
"""

import logging
from pathlib import PurePosixPath
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from api.deps import get_artifact_store, get_config, get_db, get_ingestor, get_owner_id
from api.schemas.music import (
    FiltersResponse,
    MessageResponse,
    MusicListResponse,
    MusicResponse,
    SearchParams,
    SearchResponse,
    SuggestionOut,
    SuggestionParams,
    SuggestionsResponse,
    UpdateMusicRequest,
)
from core.catalog.types import UploadFields
from core.config import AUDIO_EXTENSIONS, IMAGE_EXTENSIONS, CatalogConfig
from core.errors import (
    CatalogError,
    ConflictError,
    NotFoundError,
    TransientStoreError,
    UploadTooLargeError,
    ValidationError,
)
from db.facets import catalog_facets
from db.search import search_catalog
from db.suggest import suggest
from infrastructure.metrics import LatencyTimer, record_query
from ingestion.artifacts import LocalArtifactStore
from ingestion.catalog import CatalogIngestor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/music", tags=["music"])

DbSession = Annotated[Session, Depends(get_db)]
OwnerId = Annotated[str, Depends(get_owner_id)]
Config = Annotated[CatalogConfig, Depends(get_config)]
Artifacts = Annotated[LocalArtifactStore, Depends(get_artifact_store)]
Ingestor = Annotated[CatalogIngestor, Depends(get_ingestor)]


def http_error(exc: CatalogError) -> HTTPException:
    """Map a catalog error onto an HTTP error response.

    Order matters: subclasses are checked before their bases.
    """
    if isinstance(exc, UploadTooLargeError):
        status = 413
    elif isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, ConflictError):
        status = 409
    elif isinstance(exc, TransientStoreError):
        status = 503
    else:
        status = 500
    if status >= 500:
        # Store internals stay in the log, not in the response.
        return HTTPException(status_code=status, detail="Catalog store error, please retry")
    return HTTPException(status_code=status, detail=str(exc))


def _require_extension(upload: UploadFile, allowed: frozenset[str], kind: str) -> str:
    filename = upload.filename or ""
    if PurePosixPath(filename).suffix.lower() not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Only {kind} files are allowed "
            f"({', '.join(sorted(allowed))})",
        )
    return filename


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


@router.post("/upload", response_model=MusicResponse, status_code=201)
def upload_music(
    music: Annotated[UploadFile, File(description="Audio file.")],
    owner_id: OwnerId,
    config: Config,
    artifacts: Artifacts,
    ingestor: Ingestor,
    title: Annotated[str | None, Form(max_length=500)] = None,
    artist: Annotated[str | None, Form(max_length=500)] = None,
    album: Annotated[str | None, Form(max_length=500)] = None,
    genre: Annotated[str | None, Form(max_length=200)] = None,
    year: Annotated[int | None, Form(ge=0, le=9999)] = None,
) -> MusicResponse:
    """
    Store an audio file and add it to the caller's catalog.

    Form fields that are set override the values read from the file's tags.
    """
    filename = _require_extension(music, AUDIO_EXTENSIONS, "audio")
    fields = UploadFields(title=title, artist=artist, album=album, genre=genre, year=year)
    try:
        stored = artifacts.store_upload(
            music.file, filename, owner_id, "audio", max_bytes=config.max_audio_bytes
        )
        record = ingestor.ingest(stored.ref, filename, fields, owner_id)
    except CatalogError as exc:
        raise http_error(exc) from exc
    return MusicResponse.from_record(record)


@router.post("/{music_id}/cover", response_model=MusicResponse)
def upload_cover_art(
    music_id: str,
    cover: Annotated[UploadFile, File(description="Cover image.")],
    owner_id: OwnerId,
    config: Config,
    artifacts: Artifacts,
    ingestor: Ingestor,
) -> MusicResponse:
    """Replace the cover art of one of the caller's records."""
    filename = _require_extension(cover, IMAGE_EXTENSIONS, "image")
    try:
        stored = artifacts.store_upload(
            cover.file, filename, owner_id, "cover", max_bytes=config.max_image_bytes
        )
        record = ingestor.attach_cover_art(music_id, owner_id, stored.ref)
    except CatalogError as exc:
        raise http_error(exc) from exc
    return MusicResponse.from_record(record)


# ---------------------------------------------------------------------------
# Search.  These must be registered before ``/{music_id}`` so that
# "search" is not captured as an id.
# ---------------------------------------------------------------------------


@router.get("/search", response_model=SearchResponse)
def search_music(
    params: Annotated[SearchParams, Query()],
    owner_id: OwnerId,
    db: DbSession,
    config: Config,
) -> SearchResponse:
    """Free-text and structured search over the caller's catalog."""
    query = params.to_query()
    try:
        with LatencyTimer() as t:
            page = search_catalog(
                db, query, owner_id, text_search_config=config.text_search_config
            )
    except CatalogError as exc:
        raise http_error(exc) from exc
    record_query(operation="search", latency_seconds=t.elapsed)
    return SearchResponse(
        music=[MusicResponse.from_record(r) for r in page.records],
        total=page.total,
        total_pages=page.total_pages,
        current_page=page.current_page,
    )


@router.get("/search/filters", response_model=FiltersResponse)
def search_filters(owner_id: OwnerId, db: DbSession, config: Config) -> FiltersResponse:
    """Distinct values and numeric ranges for building filter controls."""
    try:
        with LatencyTimer() as t:
            facets = catalog_facets(db, owner_id, config.facets)
    except CatalogError as exc:
        raise http_error(exc) from exc
    record_query(operation="facets", latency_seconds=t.elapsed)
    return FiltersResponse.from_facets(facets)


@router.get("/search/suggestions", response_model=SuggestionsResponse)
def search_suggestions(
    params: Annotated[SuggestionParams, Query()],
    owner_id: OwnerId,
    db: DbSession,
) -> SuggestionsResponse:
    """Autocomplete over titles, artists and albums."""
    try:
        with LatencyTimer() as t:
            suggestions = suggest(db, params.q, owner_id, params.limit)
    except CatalogError as exc:
        raise http_error(exc) from exc
    record_query(operation="suggest", latency_seconds=t.elapsed)
    return SuggestionsResponse(suggestions=[SuggestionOut.from_suggestion(s) for s in suggestions])


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@router.get("", response_model=MusicListResponse)
def list_music(
    owner_id: OwnerId,
    ingestor: Ingestor,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> MusicListResponse:
    """The caller's records, newest first."""
    try:
        records, total, pages = ingestor.list_records(owner_id, page, limit)
    except CatalogError as exc:
        raise http_error(exc) from exc
    return MusicListResponse(
        music=[MusicResponse.from_record(r) for r in records],
        total=total,
        total_pages=pages,
        current_page=page,
    )


@router.get("/{music_id}", response_model=MusicResponse)
def get_music(music_id: str, owner_id: OwnerId, ingestor: Ingestor) -> MusicResponse:
    try:
        record = ingestor.get(music_id, owner_id)
    except CatalogError as exc:
        raise http_error(exc) from exc
    return MusicResponse.from_record(record)


@router.patch("/{music_id}", response_model=MusicResponse)
def update_music(
    music_id: str,
    body: UpdateMusicRequest,
    owner_id: OwnerId,
    ingestor: Ingestor,
) -> MusicResponse:
    """Edit metadata fields.  Fields left out of the body are unchanged."""
    try:
        record = ingestor.update_fields(music_id, owner_id, body.model_dump(exclude_unset=True))
    except CatalogError as exc:
        raise http_error(exc) from exc
    return MusicResponse.from_record(record)


@router.delete("/{music_id}", response_model=MessageResponse)
def delete_music(music_id: str, owner_id: OwnerId, ingestor: Ingestor) -> MessageResponse:
    """Delete a record together with its audio file and cover art."""
    try:
        ingestor.delete(music_id, owner_id)
    except CatalogError as exc:
        raise http_error(exc) from exc
    return MessageResponse(message="Music file deleted successfully")
