"""Audio catalog core: pure value types, field merging and search predicates.

Exports:
    ExtractedMetadata, Artwork, UploadFields  (ingestion types)
    SearchQuery, SortKey, SortOrder            (search types)
    Facets, NumericRange                       (facet types)
    Suggestion, SuggestionType                 (autocomplete types)
    coalesce, title_from_filename              (merge helpers)
    build_predicates                           (filter composition)
"""

from core.catalog.merge import coalesce, title_from_filename
from core.catalog.predicates import build_predicates
from core.catalog.types import (
    Artwork,
    ExtractedMetadata,
    Facets,
    NumericRange,
    SearchQuery,
    SortKey,
    SortOrder,
    Suggestion,
    SuggestionType,
    UploadFields,
)

__all__ = [
    "Artwork",
    "ExtractedMetadata",
    "UploadFields",
    "SearchQuery",
    "SortKey",
    "SortOrder",
    "Facets",
    "NumericRange",
    "Suggestion",
    "SuggestionType",
    "coalesce",
    "title_from_filename",
    "build_predicates",
]
