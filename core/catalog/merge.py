"""Field-merge rules for new catalog records.

Every user-editable field is resolved with one precedence chain::

    user-supplied value  >  extracted value  >  computed default

applied per field, so a user who only types a title still gets the
extracted artist, album and audio properties.  A blank string counts as
"no value" at every step.

Pure functions, no I/O.
"""

from __future__ import annotations

import re
from datetime import date
from pathlib import PurePath
from typing import Any

from core.catalog.types import ExtractedMetadata, UploadFields

DEFAULT_ARTIST = "Unknown Artist"
DEFAULT_ALBUM = "Unknown Album"
DEFAULT_GENRE = "Unknown"
DEFAULT_TITLE = "Untitled"

# Stored uploads are named "<owner>_<epoch-ms>_<original>"; the prefix is
# noise when a title has to be derived from the name.
_GENERATED_PREFIX_RE = re.compile(r"^[A-Za-z0-9-]+_\d{10,}_")
_SEPARATOR_RE = re.compile(r"[_-]")
_WS_RE = re.compile(r"\s+")


def has_value(value: Any) -> bool:
    """True unless *value* is None, a blank string or an empty sequence."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, bytes)):
        return len(value) > 0
    return True


def coalesce(*candidates: Any) -> Any:
    """Return the first candidate that :func:`has_value`, else None.

    Strings are returned stripped.

    Example::

        >>> coalesce(None, "  ", "Daft Punk", "Unknown Artist")
        'Daft Punk'
    """
    for candidate in candidates:
        if has_value(candidate):
            return candidate.strip() if isinstance(candidate, str) else candidate
    return None


def clean_text(value: str | None) -> str | None:
    """Normalise whitespace; blank becomes None."""
    if value is None:
        return None
    text = _WS_RE.sub(" ", value).strip()
    return text or None


def title_from_filename(filename: str) -> str:
    """Derive a display title from a file name.

    Drops the extension and any generated ``<owner>_<timestamp>_`` prefix,
    turns underscores and hyphens into spaces, and capitalises each word::

        >>> title_from_filename("3f2a_1718000000000_rocket_man-live.mp3")
        'Rocket Man Live'
    """
    stem = PurePath(filename).stem
    stem = _GENERATED_PREFIX_RE.sub("", stem)
    spaced = _WS_RE.sub(" ", _SEPARATOR_RE.sub(" ", stem)).strip()
    if not spaced:
        return DEFAULT_TITLE
    return " ".join(word[:1].upper() + word[1:].lower() for word in spaced.split(" "))


def merge_fields(
    user: UploadFields,
    extracted: ExtractedMetadata,
    *,
    original_name: str,
    today: date | None = None,
) -> dict[str, Any]:
    """Combine user input, extracted tags and defaults into record columns.

    Args:
        user: Values the uploader supplied.
        extracted: Result of metadata extraction (possibly a fallback).
        original_name: Client-side filename, used to derive a default title.
        today: Reference date for the default year (defaults to today).

    Returns:
        Mapping of ``CatalogRecord`` column name to value.  Only metadata
        columns are included; file and ownership columns are the caller's.
    """
    year_default = (today or date.today()).year
    return {
        "title": coalesce(user.title, extracted.title, title_from_filename(original_name)),
        "artist": coalesce(user.artist, extracted.artist, DEFAULT_ARTIST),
        "album": coalesce(user.album, extracted.album, DEFAULT_ALBUM),
        "genre": coalesce(user.genre, extracted.genre, DEFAULT_GENRE),
        "year": coalesce(user.year, extracted.year, year_default),
        "track_number": extracted.track_number,
        "total_tracks": extracted.total_tracks,
        "disc_number": extracted.disc_number,
        "total_discs": extracted.total_discs,
        "album_artist": clean_text(extracted.album_artist),
        "composers": [c for c in (clean_text(c) for c in extracted.composers) if c],
        "comment": clean_text(extracted.comment),
        "bpm": extracted.bpm,
        "key": clean_text(extracted.key),
        "mood": clean_text(extracted.mood),
        "isrc": clean_text(extracted.isrc),
        "lyrics": coalesce(extracted.lyrics),
        "duration": extracted.duration,
        "bitrate": extracted.bitrate,
        "sample_rate": extracted.sample_rate,
        "channels": extracted.channels,
        "encoding": clean_text(extracted.encoding),
    }
