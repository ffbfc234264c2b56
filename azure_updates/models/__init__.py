"""
Data models for the Azure Updates service
"""
from .update import (
    AVAILABILITY_RINGS,
    RETIREMENT_RING,
    Availability,
    AzureUpdate,
    parse_timestamp,
)
from .search import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MIN_LIMIT,
    MIN_OFFSET,
    FilterOptions,
    SearchFilters,
    SearchMetadata,
    SearchQuery,
    SearchResponse,
    SearchResult,
    SortBy,
    ValidationIssue,
    ValidationResult,
)
from .sync import INITIAL_SYNC_CHECKPOINT, SyncCheckpoint, SyncResult, SyncStatus

__all__ = [
    "AVAILABILITY_RINGS",
    "RETIREMENT_RING",
    "Availability",
    "AzureUpdate",
    "parse_timestamp",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "MIN_LIMIT",
    "MIN_OFFSET",
    "FilterOptions",
    "SearchFilters",
    "SearchMetadata",
    "SearchQuery",
    "SearchResponse",
    "SearchResult",
    "SortBy",
    "ValidationIssue",
    "ValidationResult",
    "INITIAL_SYNC_CHECKPOINT",
    "SyncCheckpoint",
    "SyncResult",
    "SyncStatus",
]
