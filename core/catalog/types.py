"""Core value types for the audio catalog.

All types are frozen dataclasses (immutable value objects).
No I/O, no imports from db/, api/, or ingestion/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class SortKey(StrEnum):
    """Result orderings accepted by the search engine."""

    RELEVANCE = "relevance"
    TITLE = "title"
    ARTIST = "artist"
    ALBUM = "album"
    YEAR = "year"
    DURATION = "duration"
    CREATED_AT = "createdAt"
    BPM = "bpm"


class SortOrder(StrEnum):
    ASC = "ASC"
    DESC = "DESC"


class SuggestionType(StrEnum):
    TITLE = "title"
    ARTIST = "artist"
    ALBUM = "album"


@dataclass(frozen=True)
class Artwork:
    """Picture embedded in an audio file's tags.

    Attributes:
        data:        Raw image bytes.
        mime_type:   MIME type reported by the tag, e.g. ``"image/jpeg"``.
        description: Free-text description from the tag, often empty.
    """

    data: bytes
    mime_type: str = "image/jpeg"
    description: str = ""

    @property
    def extension(self) -> str:
        """File extension matching ``mime_type``; unknown types map to ``.jpg``."""
        mime = self.mime_type.lower()
        if "jpeg" in mime or "jpg" in mime:
            return ".jpg"
        if "png" in mime:
            return ".png"
        if "webp" in mime:
            return ".webp"
        return ".jpg"


@dataclass(frozen=True)
class ExtractedMetadata:
    """Best-effort metadata read from an audio file.

    Every field is optional.  ``is_fallback`` is True when the decoder
    could not parse the file and the values were synthesised from the
    filename instead.
    """

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
    composers: tuple[str, ...] = ()
    comment: str | None = None
    bpm: int | None = None
    key: str | None = None
    mood: str | None = None
    isrc: str | None = None
    lyrics: str | None = None

    duration: float | None = None
    bitrate: int | None = None
    sample_rate: int | None = None
    channels: int | None = None
    encoding: str | None = None

    artwork: Artwork | None = None
    is_fallback: bool = False

    def summary(self) -> str:
        """One-line description for log messages."""
        parts: list[str] = []
        if self.title:
            parts.append(f"Title: {self.title}")
        if self.artist:
            parts.append(f"Artist: {self.artist}")
        if self.album:
            parts.append(f"Album: {self.album}")
        if self.duration:
            parts.append(f"Duration: {self.duration:.1f}s")
        if self.artwork is not None:
            parts.append("Artwork: Yes")
        return ", ".join(parts) or "No metadata found"


@dataclass(frozen=True)
class UploadFields:
    """Metadata the uploader typed in.  Any value set here wins over extraction."""

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    year: int | None = None


@dataclass(frozen=True)
class SearchQuery:
    """A validated search request.

    Unset filters (``None`` / empty tuple) contribute no predicate at all.
    Range bounds are inclusive and either side may be omitted.

    Invariants:
        page >= 1
        1 <= limit <= 100
    """

    q: str | None = None

    # exact
    genre: str | None = None
    key: str | None = None
    channels: int | None = None
    disc_number: int | None = None
    track_number: int | None = None

    # substring
    encoding: str | None = None
    artist: str | None = None
    album: str | None = None
    album_artist: str | None = None
    mood: str | None = None

    # ranges
    year_from: int | None = None
    year_to: int | None = None
    duration_from: float | None = None
    duration_to: float | None = None
    bpm_from: int | None = None
    bpm_to: int | None = None
    min_bitrate: int | None = None

    # tri-state presence
    has_lyrics: bool | None = None
    has_cover_art: bool | None = None

    composers: tuple[str, ...] = ()

    sort_by: SortKey = SortKey.RELEVANCE
    sort_order: SortOrder = SortOrder.DESC
    page: int = 1
    limit: int = 20

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if not 1 <= self.limit <= 100:
            raise ValueError(f"limit must be in [1, 100], got {self.limit}")

    @property
    def text(self) -> str | None:
        """The free-text query trimmed, or None when blank."""
        if self.q is None:
            return None
        stripped = self.q.strip()
        return stripped or None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class NumericRange:
    """Inclusive ``[min, max]`` bounds for a numeric facet."""

    min: float
    max: float


@dataclass(frozen=True)
class Facets:
    """Distinct values and numeric ranges over one owner's catalog."""

    available_genres: tuple[str, ...]
    available_artists: tuple[str, ...]
    available_albums: tuple[str, ...]
    available_keys: tuple[str, ...]
    available_moods: tuple[str, ...]
    available_encodings: tuple[str, ...]
    year_range: NumericRange
    duration_range: NumericRange
    bpm_range: NumericRange
    bitrate_range: NumericRange


@dataclass(frozen=True)
class Suggestion:
    """An autocomplete candidate and how many records carry it."""

    type: SuggestionType
    value: str
    count: int = field(default=1)
