"""
api/schemas/music.py — Pydantic request/response schemas for ``/music``.

Covers:
    GET    /music/search              — SearchParams / SearchResponse
    GET    /music/search/filters      — FiltersResponse
    GET    /music/search/suggestions  — SuggestionParams / SuggestionsResponse
    GET    /music                     — MusicListResponse
    PATCH  /music/{id}                — UpdateMusicRequest
    POST   /music/upload, /{id}/cover — MusicResponse
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from core.catalog.types import Facets, NumericRange, SearchQuery, SortKey, SortOrder, Suggestion
from db.models import CatalogRecord

_BYTES_PER_MB = 1024 * 1024

# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class MusicResponse(BaseModel):
    """Public projection of a catalog record.

    The stored audio path is never exposed; ``size`` is in megabytes.
    """

    id: str
    file_name: str
    original_name: str
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    year: int | None = None
    track_number: int | None = None
    total_tracks: int | None = None
    disc_number: int | None = None
    total_discs: int | None = None
    album_artist: str | None = None
    composers: list[str] = Field(default_factory=list)
    comment: str | None = None
    bpm: int | None = None
    key: str | None = None
    mood: str | None = None
    isrc: str | None = None
    lyrics: str | None = None
    duration: float | None = Field(None, description="Length in seconds.")
    size: float = Field(..., description="File size in megabytes, 2 decimals.")
    format: str
    bitrate: int | None = None
    sample_rate: int | None = None
    channels: int | None = None
    encoding: str | None = None
    cover_art: str | None = Field(None, description="Artifact reference of the cover image.")
    owner_id: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: CatalogRecord) -> MusicResponse:
        return cls(
            id=record.id,
            file_name=record.file_name,
            original_name=record.original_name,
            title=record.title,
            artist=record.artist,
            album=record.album,
            genre=record.genre,
            year=record.year,
            track_number=record.track_number,
            total_tracks=record.total_tracks,
            disc_number=record.disc_number,
            total_discs=record.total_discs,
            album_artist=record.album_artist,
            composers=list(record.composers or []),
            comment=record.comment,
            bpm=record.bpm,
            key=record.key,
            mood=record.mood,
            isrc=record.isrc,
            lyrics=record.lyrics,
            duration=float(record.duration) if record.duration is not None else None,
            size=round(record.size / _BYTES_PER_MB, 2),
            format=record.format,
            bitrate=record.bitrate,
            sample_rate=record.sample_rate,
            channels=record.channels,
            encoding=record.encoding,
            cover_art=record.cover_art,
            owner_id=record.owner_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class MusicListResponse(BaseModel):
    """Response body for ``GET /music``."""

    music: list[MusicResponse]
    total: int
    total_pages: int
    current_page: int


class MessageResponse(BaseModel):
    message: str


class UpdateMusicRequest(BaseModel):
    """Request body for ``PATCH /music/{id}``.

    Only fields present in the body are changed.  An empty string clears a
    text field.
    """

    title: str | None = Field(None, max_length=500)
    artist: str | None = Field(None, max_length=500)
    album: str | None = Field(None, max_length=500)
    album_artist: str | None = Field(None, max_length=500)
    genre: str | None = Field(None, max_length=200)
    year: int | None = Field(None, ge=0, le=9999)
    track_number: int | None = Field(None, ge=0)
    total_tracks: int | None = Field(None, ge=0)
    disc_number: int | None = Field(None, ge=0)
    total_discs: int | None = Field(None, ge=0)
    composers: list[str] | None = None
    comment: str | None = None
    mood: str | None = Field(None, max_length=200)
    key: str | None = Field(None, max_length=50)
    bpm: int | None = Field(None, ge=0, le=999)
    lyrics: str | None = None


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class SearchParams(BaseModel):
    """Query parameters for ``GET /music/search``."""

    q: str | None = Field(None, max_length=500, description="Free-text query.")
    genre: str | None = Field(None, description="Exact genre.")
    key: str | None = Field(None, description="Exact musical key.")
    channels: int | None = Field(None, ge=1)
    disc_number: int | None = Field(None, ge=0)
    track_number: int | None = Field(None, ge=0)
    encoding: str | None = Field(None, description="Codec name, substring match.")
    artist: str | None = Field(None, description="Substring match.")
    album: str | None = Field(None, description="Substring match.")
    album_artist: str | None = Field(None, description="Substring match.")
    mood: str | None = Field(None, description="Substring match.")
    year_from: int | None = None
    year_to: int | None = None
    duration_from: float | None = Field(None, ge=0)
    duration_to: float | None = Field(None, ge=0)
    bpm_from: int | None = Field(None, ge=0)
    bpm_to: int | None = Field(None, ge=0)
    min_bitrate: int | None = Field(None, ge=0, description="Bits per second, lower bound.")
    has_lyrics: bool | None = None
    has_cover_art: bool | None = None
    composers: list[str] = Field(
        default_factory=list, description="Matches when any stored composer contains one."
    )
    sort_by: SortKey = SortKey.RELEVANCE
    sort_order: SortOrder = SortOrder.DESC
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)

    @field_validator("sort_order", mode="before")
    @classmethod
    def sort_order_upper(cls, v: object) -> object:
        """Accept ``asc`` / ``desc`` in any case."""
        return v.upper() if isinstance(v, str) else v

    def to_query(self) -> SearchQuery:
        return SearchQuery(
            **self.model_dump(exclude={"composers"}),
            composers=tuple(c for c in self.composers if c.strip()),
        )


class SearchResponse(BaseModel):
    """Response body for ``GET /music/search``."""

    music: list[MusicResponse]
    total: int
    total_pages: int
    current_page: int


class RangeOut(BaseModel):
    min: float
    max: float

    @classmethod
    def from_range(cls, value: NumericRange) -> RangeOut:
        return cls(min=value.min, max=value.max)


class FiltersResponse(BaseModel):
    """Response body for ``GET /music/search/filters``."""

    available_genres: list[str]
    available_artists: list[str]
    available_albums: list[str]
    available_keys: list[str]
    available_moods: list[str]
    available_encodings: list[str]
    year_range: RangeOut
    duration_range: RangeOut
    bpm_range: RangeOut
    bitrate_range: RangeOut

    @classmethod
    def from_facets(cls, facets: Facets) -> FiltersResponse:
        return cls(
            available_genres=list(facets.available_genres),
            available_artists=list(facets.available_artists),
            available_albums=list(facets.available_albums),
            available_keys=list(facets.available_keys),
            available_moods=list(facets.available_moods),
            available_encodings=list(facets.available_encodings),
            year_range=RangeOut.from_range(facets.year_range),
            duration_range=RangeOut.from_range(facets.duration_range),
            bpm_range=RangeOut.from_range(facets.bpm_range),
            bitrate_range=RangeOut.from_range(facets.bitrate_range),
        )


class SuggestionParams(BaseModel):
    """Query parameters for ``GET /music/search/suggestions``."""

    q: str = Field(..., max_length=200, description="Partial title, artist or album.")
    limit: int = Field(10, ge=1, le=20)


class SuggestionOut(BaseModel):
    type: str
    value: str
    count: int

    @classmethod
    def from_suggestion(cls, suggestion: Suggestion) -> SuggestionOut:
        return cls(type=str(suggestion.type), value=suggestion.value, count=suggestion.count)


class SuggestionsResponse(BaseModel):
    suggestions: list[SuggestionOut]
