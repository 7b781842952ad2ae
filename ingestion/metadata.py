"""
ingestion/metadata.py — Tag and stream-info extraction using Mutagen.

Reads the three tag families Mutagen exposes for the accepted upload
formats:

- ID3 frames (MP3, and WAV files carrying an ID3 chunk)
- Vorbis comments (FLAC, Ogg Vorbis / Opus)
- MP4 atoms (M4A / AAC)

Contract:
    - Missing or zero-byte file  -> ``EmptyUploadError``.
    - Undecodable / unrecognised -> fallback ``ExtractedMetadata`` with a
      title derived from the filename and ``is_fallback=True``.
    - ``OSError`` from inspecting the file propagates; it is not a decode
      issue.  (Mutagen wraps read errors during parsing in ``MutagenError``,
      which is treated as a decode failure.)

Usage:
    from ingestion.metadata import MutagenExtractor
    meta = MutagenExtractor().extract("/uploads/music/3f2a_1718000000000_song.mp3")
"""

from __future__ import annotations

import base64
import logging
import re
import struct
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any, Protocol

from mutagen import File as MutagenFile
from mutagen import FileType, MutagenError
from mutagen.flac import Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Cover, MP4Tags

from core.catalog.merge import (
    DEFAULT_ALBUM,
    DEFAULT_ARTIST,
    DEFAULT_GENRE,
    clean_text,
    title_from_filename,
)
from core.catalog.types import Artwork, ExtractedMetadata
from core.errors import EmptyUploadError

logger = logging.getLogger(__name__)

# Errors Mutagen (or malformed tag values) raise while decoding.
_DECODE_ERRORS: tuple[type[Exception], ...] = (
    MutagenError,
    ValueError,
    TypeError,
    KeyError,
    IndexError,
    EOFError,
    struct.error,
)

# Stream codec names for containers whose info object has no ``codec``.
_ENCODING_BY_TYPE: dict[str, str] = {
    "MP3": "MPEG 1 Layer 3",
    "EasyMP3": "MPEG 1 Layer 3",
    "FLAC": "FLAC",
    "OggVorbis": "Vorbis I",
    "OggOpus": "Opus",
    "WAVE": "PCM",
}

_YEAR_RE = re.compile(r"\b(\d{4})\b")


class MetadataExtractor(Protocol):
    def extract(self, path: str | Path) -> ExtractedMetadata: ...


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def _first_text(value: Any) -> str | None:
    """First non-blank string of a tag value (list, frame or scalar)."""
    if value is None:
        return None
    if hasattr(value, "text"):
        value = value.text
    if isinstance(value, (list, tuple)):
        for item in value:
            text = _first_text(item)
            if text:
                return text
        return None
    return clean_text(str(value))


def _all_texts(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if hasattr(value, "text"):
        value = value.text
    items = value if isinstance(value, (list, tuple)) else [value]
    texts: list[str] = []
    for item in items:
        # Some taggers pack several names into one "A; B" string.
        for part in re.split(r"\s*;\s*|\x00", str(item)):
            cleaned = clean_text(part)
            if cleaned and cleaned not in texts:
                texts.append(cleaned)
    return tuple(texts)


def _multiline_text(value: Any) -> str | None:
    """Like _first_text but keeps line breaks (lyrics)."""
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _picture_artwork(picture: Any) -> Artwork:
    return Artwork(
        data=bytes(picture.data),
        mime_type=picture.mime or "image/jpeg",
        description=picture.desc or "",
    )


def parse_number_pair(value: Any) -> tuple[int | None, int | None]:
    """Parse ``"3/12"``, ``"3"`` or ``(3, 12)`` into ``(number, of)``."""
    if value is None:
        return None, None
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, tuple):
        number, total = (value + (0, 0))[:2]
        return (number or None), (total or None)
    text = _first_text(value)
    if not text:
        return None, None
    head, _, tail = text.partition("/")
    return _to_int(head), _to_int(tail)


def _to_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, list):
        value = value[0] if value else None
        if value is None:
            return None
    if isinstance(value, int):
        return value
    text = _first_text(value)
    if not text:
        return None
    try:
        return int(round(float(text)))
    except ValueError:
        return None


def parse_year(value: Any) -> int | None:
    """Pull a four-digit year out of a date-ish tag (``"2004-05-01"``, ``2004``)."""
    text = _first_text(value)
    if not text:
        return None
    match = _YEAR_RE.search(text)
    return int(match.group(1)) if match else None


# ---------------------------------------------------------------------------
# Tag family readers: each returns a dict of ExtractedMetadata fields
# ---------------------------------------------------------------------------


def _read_id3(tags: ID3) -> dict[str, Any]:
    def frame(frame_id: str) -> Any:
        frames = tags.getall(frame_id)
        return frames[0] if frames else None

    track, total_tracks = parse_number_pair(frame("TRCK"))
    disc, total_discs = parse_number_pair(frame("TPOS"))
    genre = frame("TCON")
    recorded = frame("TDRC")
    lyrics = frame("USLT")
    pictures = tags.getall("APIC")
    artwork = None
    if pictures:
        # Prefer the front cover (type 3) when several pictures are embedded.
        picture = next((p for p in pictures if p.type == 3), pictures[0])
        artwork = _picture_artwork(picture)
    return {
        "title": _first_text(frame("TIT2")),
        "artist": _first_text(frame("TPE1")),
        "album": _first_text(frame("TALB")),
        "genre": _first_text(genre.genres) if genre is not None else None,
        "year": parse_year(recorded if recorded is not None else frame("TYER")),
        "track_number": track,
        "total_tracks": total_tracks,
        "disc_number": disc,
        "total_discs": total_discs,
        "album_artist": _first_text(frame("TPE2")),
        "composers": _all_texts(frame("TCOM")),
        "comment": _first_text(frame("COMM")),
        "bpm": _to_int(frame("TBPM")),
        "key": _first_text(frame("TKEY")),
        "mood": _first_text(frame("TMOO")),
        "isrc": _first_text(frame("TSRC")),
        "lyrics": _multiline_text(lyrics.text) if lyrics is not None else None,
        "artwork": artwork,
    }


def _read_vorbis(audio: FileType) -> dict[str, Any]:
    tags = audio.tags

    def tag(*names: str) -> Any:
        for name in names:
            values = tags.get(name)
            if values:
                return values
        return None

    track, total_tracks = parse_number_pair(tag("tracknumber"))
    disc, total_discs = parse_number_pair(tag("discnumber"))
    return {
        "title": _first_text(tag("title")),
        "artist": _first_text(tag("artist")),
        "album": _first_text(tag("album")),
        "genre": _first_text(tag("genre")),
        "year": parse_year(tag("date", "year")),
        "track_number": track,
        "total_tracks": total_tracks or _to_int(tag("tracktotal", "totaltracks")),
        "disc_number": disc,
        "total_discs": total_discs or _to_int(tag("disctotal", "totaldiscs")),
        "album_artist": _first_text(tag("albumartist", "album artist")),
        "composers": _all_texts(tag("composer")),
        "comment": _first_text(tag("comment", "description")),
        "bpm": _to_int(tag("bpm")),
        "key": _first_text(tag("initialkey", "key")),
        "mood": _first_text(tag("mood")),
        "isrc": _first_text(tag("isrc")),
        "lyrics": _multiline_text(tag("lyrics", "unsyncedlyrics")),
        "artwork": _vorbis_artwork(audio),
    }


def _vorbis_artwork(audio: FileType) -> Artwork | None:
    pictures = list(getattr(audio, "pictures", []) or [])
    if not pictures:
        # Ogg files embed pictures as base64 FLAC picture blocks.
        for encoded in audio.tags.get("metadata_block_picture", []) or []:
            try:
                pictures.append(Picture(base64.b64decode(encoded)))
            except _DECODE_ERRORS:
                logger.debug("Skipping undecodable metadata_block_picture")
    if not pictures:
        return None
    picture = next((p for p in pictures if p.type == 3), pictures[0])
    return _picture_artwork(picture)


def _read_mp4(tags: MP4Tags) -> dict[str, Any]:
    track, total_tracks = parse_number_pair(tags.get("trkn"))
    disc, total_discs = parse_number_pair(tags.get("disk"))
    artwork = None
    covers = tags.get("covr") or []
    if covers:
        cover = covers[0]
        is_png = getattr(cover, "imageformat", None) == MP4Cover.FORMAT_PNG
        mime = "image/png" if is_png else "image/jpeg"
        artwork = Artwork(data=bytes(cover), mime_type=mime)
    return {
        "title": _first_text(tags.get("\xa9nam")),
        "artist": _first_text(tags.get("\xa9ART")),
        "album": _first_text(tags.get("\xa9alb")),
        "genre": _first_text(tags.get("\xa9gen")),
        "year": parse_year(tags.get("\xa9day")),
        "track_number": track,
        "total_tracks": total_tracks,
        "disc_number": disc,
        "total_discs": total_discs,
        "album_artist": _first_text(tags.get("aART")),
        "composers": _all_texts(tags.get("\xa9wrt")),
        "comment": _first_text(tags.get("\xa9cmt")),
        "bpm": _to_int(tags.get("tmpo")),
        "key": None,
        "mood": None,
        "isrc": None,
        "lyrics": _multiline_text(tags.get("\xa9lyr")),
        "artwork": artwork,
    }


def _reader_for(audio: FileType) -> Callable[[], dict[str, Any]] | None:
    tags = audio.tags
    if tags is None:
        return None
    if isinstance(tags, ID3):
        return lambda: _read_id3(tags)
    if isinstance(tags, MP4Tags):
        return lambda: _read_mp4(tags)
    if hasattr(tags, "get"):
        return lambda: _read_vorbis(audio)
    return None


def _stream_info(audio: FileType) -> dict[str, Any]:
    info = audio.info
    duration = getattr(info, "length", None)
    bitrate = getattr(info, "bitrate", None)
    encoding = getattr(info, "codec", None) or _ENCODING_BY_TYPE.get(type(audio).__name__)
    return {
        "duration": round(float(duration), 2) if duration and duration > 0 else None,
        "bitrate": int(bitrate) if bitrate else None,
        "sample_rate": getattr(info, "sample_rate", None) or None,
        "channels": getattr(info, "channels", None) or None,
        "encoding": encoding,
    }


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


def fallback_metadata(path: Path, today: date | None = None) -> ExtractedMetadata:
    """Metadata synthesised from the filename when decoding fails."""
    return ExtractedMetadata(
        title=title_from_filename(path.name),
        artist=DEFAULT_ARTIST,
        album=DEFAULT_ALBUM,
        genre=DEFAULT_GENRE,
        year=(today or date.today()).year,
        is_fallback=True,
    )


class MutagenExtractor:
    """Best-effort metadata extractor backed by Mutagen."""

    def extract(self, path: str | Path) -> ExtractedMetadata:
        """Read tags, stream properties and embedded artwork from *path*.

        Raises:
            EmptyUploadError: The file is missing or empty.
            OSError: The file exists but could not be inspected.
        """
        path = Path(path)
        if not path.is_file():
            logger.error("File not found for metadata extraction: %s", path)
            raise EmptyUploadError("File not found for metadata extraction")
        size = path.stat().st_size
        if size == 0:
            logger.error("Empty file found for metadata extraction: %s", path)
            raise EmptyUploadError("Cannot extract metadata from empty file")

        logger.info("Extracting metadata from: %s (%d bytes)", path.name, size)
        try:
            audio = MutagenFile(path)
            if audio is None:
                raise MutagenError(f"unrecognised audio format: {path.suffix or '?'}")
            reader = _reader_for(audio)
            fields = reader() if reader is not None else {}
            fields.update(_stream_info(audio))
        except _DECODE_ERRORS as exc:
            logger.warning(
                "Metadata extraction failed, using fallback values for %s: %s", path.name, exc
            )
            return fallback_metadata(path)

        metadata = ExtractedMetadata(**fields)
        logger.info("Extracted metadata: %s", metadata.summary())
        return metadata
