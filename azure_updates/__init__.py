"""
Azure Updates Search
Version: 1.0

Local, periodically refreshed mirror of the Azure Updates feed with
keyword + structured search over a SQLite FTS5 index.
"""

__version__ = "1.0.0"

from .config import Settings, SyncConfig
from .database import Database
from .errors import AzureUpdatesError, IndexUnavailableError, UpstreamError
from .logger import get_logger
from .retry import RetryOptions, with_retry
from .search import SearchEngine
from .sync import SyncController
from .validation import validate_search_input

__all__ = [
    "Settings",
    "SyncConfig",
    "Database",
    "AzureUpdatesError",
    "IndexUnavailableError",
    "UpstreamError",
    "get_logger",
    "RetryOptions",
    "with_retry",
    "SearchEngine",
    "SyncController",
    "validate_search_input",
    "__version__"
]
