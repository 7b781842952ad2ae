"""
Configuration dataclasses for the catalog service.

These immutable config objects decouple parameter passing from function
signatures, making it easy to define a standard configuration and override
single values in tests.

Environment variables (read by :func:`load_config`)
---------------------------------------------------
``CATALOG_UPLOAD_DIR``
    Root directory of the local artifact store (default ``uploads/music``).
``CATALOG_MAX_AUDIO_BYTES``
    Upload size limit for audio files (default 10 MiB).
``CATALOG_MAX_IMAGE_BYTES``
    Upload size limit for cover images (default 5 MiB).
``CATALOG_TEXT_SEARCH_CONFIG``
    PostgreSQL text search configuration used for ranking (default ``english``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date

AUDIO_EXTENSIONS: frozenset[str] = frozenset({".mp3", ".m4a", ".flac", ".ogg", ".wav"})
IMAGE_EXTENSIONS: frozenset[str] = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})

_MIB = 1024 * 1024


@dataclass(frozen=True)
class FacetDefaults:
    """
    Fallback bounds returned by the facet aggregator for numeric fields
    that have no value anywhere in an owner's catalog.

    Range sliders in the UI always need valid bounds, so an empty catalog
    yields these instead of ``None``.  ``year_max`` of ``None`` means
    "the current calendar year" and is resolved on access.
    """

    year_min: int = 1900
    year_max: int | None = None
    duration_min: float = 0.0
    duration_max: float = 600.0
    bpm_min: int = 0
    bpm_max: int = 200
    bitrate_min: int = 32000
    bitrate_max: int = 320000

    def __post_init__(self) -> None:
        """Validate that each default range is ordered."""
        pairs = {
            "duration": (self.duration_min, self.duration_max),
            "bpm": (self.bpm_min, self.bpm_max),
            "bitrate": (self.bitrate_min, self.bitrate_max),
        }
        if self.year_max is not None:
            pairs["year"] = (self.year_min, self.year_max)
        for name, (low, high) in pairs.items():
            if low > high:
                raise ValueError(f"{name} default range is inverted: {low} > {high}")

    @property
    def resolved_year_max(self) -> int:
        return self.year_max if self.year_max is not None else date.today().year


@dataclass(frozen=True)
class CatalogConfig:
    """
    Runtime configuration for ingestion and search.

    Attributes:
        upload_dir: Root directory of the local artifact store.  Audio files
            are written directly below it, cover images under ``covers/``.
        max_audio_bytes: Largest accepted audio upload.
        max_image_bytes: Largest accepted cover image upload.
        text_search_config: PostgreSQL ``regconfig`` name passed to
            ``to_tsvector`` / ``plainto_tsquery``.
        facets: Fallback ranges for empty numeric facets.
    """

    upload_dir: str = "uploads/music"
    max_audio_bytes: int = 10 * _MIB
    max_image_bytes: int = 5 * _MIB
    text_search_config: str = "english"
    facets: FacetDefaults = field(default_factory=FacetDefaults)

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.upload_dir:
            raise ValueError("upload_dir must be a non-empty path")
        if self.max_audio_bytes <= 0:
            raise ValueError(f"max_audio_bytes must be positive, got {self.max_audio_bytes}")
        if self.max_image_bytes <= 0:
            raise ValueError(f"max_image_bytes must be positive, got {self.max_image_bytes}")
        if not self.text_search_config.isidentifier():
            raise ValueError(
                f"text_search_config must be a plain identifier, got {self.text_search_config!r}"
            )


def load_config() -> CatalogConfig:
    """Build a :class:`CatalogConfig` from ``CATALOG_*`` environment variables.

    Raises:
        ValueError: If a numeric variable is not an integer or any value
            fails validation.
    """
    return CatalogConfig(
        upload_dir=os.getenv("CATALOG_UPLOAD_DIR", "uploads/music"),
        max_audio_bytes=int(os.getenv("CATALOG_MAX_AUDIO_BYTES", str(10 * _MIB))),
        max_image_bytes=int(os.getenv("CATALOG_MAX_IMAGE_BYTES", str(5 * _MIB))),
        text_search_config=os.getenv("CATALOG_TEXT_SEARCH_CONFIG", "english"),
    )


DEFAULT_CONFIG = CatalogConfig()
"""Default configuration: local ``uploads/music`` store, 10 MiB audio, 5 MiB images."""
