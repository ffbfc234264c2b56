"""
Caller-facing operations.

Each function takes untyped input, validates it and returns a JSON-ready
payload. Validation problems and unknown ids come back as error payloads;
index failures propagate as IndexUnavailableError.
"""

import sqlite3
import time
from typing import Any, Dict, List

from .config import Settings
from .database import Database
from .errors import IndexUnavailableError
from .logger import get_logger
from .search import SearchEngine
from .staleness import freshness_message, hours_since_sync
from .sync import SyncController
from .validation import validate_search_input, validate_update_id

logger = get_logger(__name__)

VALIDATION_FAILED = "Validation failed"
NOT_FOUND = "Update not found"

USAGE_EXAMPLES: List[Dict[str, Any]] = [
    {
        "description": 'Phrase search: find exact "Azure Virtual Machines" mentions',
        "query": {"query": '"Azure Virtual Machines" retirement', "limit": 10},
    },
    {
        "description": "Filter by tags with AND semantics (must have ALL listed tags)",
        "query": {"query": "security", "filters": {"tags": ["Security", "Retirements"]}, "limit": 10},
    },
    {
        "description": "Filter by products and categories, newest first",
        "query": {
            "filters": {"products": ["Azure Key Vault"], "productCategories": ["Security"]},
            "sortBy": "modified:desc",
            "limit": 20,
        },
    },
    {
        "description": "Upcoming retirements in 2026, earliest first",
        "query": {
            "query": "retirement",
            "filters": {"retirementDateFrom": "2026-01-01", "retirementDateTo": "2026-12-31"},
            "sortBy": "retirementDate:asc",
            "limit": 20,
        },
    },
    {
        "description": "Recent security updates",
        "query": {"filters": {"tags": ["Security"], "dateFrom": "2025-01-01"}, "limit": 10},
    },
]

QUERY_TIPS = [
    "Search returns lightweight metadata; fetch /v1/updates/{id} for the full description",
    'Use double quotes for exact phrases (e.g. "Azure Virtual Machines")',
    "Unquoted words are ORed and prefix-matched (security auth matches security OR authentication)",
    "tags, products and productCategories filters require ALL listed values",
    "An empty filter array is the same as leaving the filter out",
    "sortBy supports modified:desc/asc, created:desc/asc, retirementDate:desc/asc",
    "Without sortBy, keyword searches are ranked by relevance and filter-only searches by newest modified",
    "Date filters accept ISO 8601 dates (YYYY-MM-DD) and are inclusive",
]


def validation_error(details: List[str]) -> Dict[str, Any]:
    return {"error": VALIDATION_FAILED, "details": details}


async def search_updates(engine: SearchEngine, raw: Any) -> Dict[str, Any]:
    """
    Validate and run a search request.

    Args:
        engine: Search engine over the local index
        raw: Untyped search input

    Returns:
        {"results": [...], "metadata": {...}} or a validation error payload

    Raises:
        IndexUnavailableError: If the index cannot be read
    """
    validation = validate_search_input(raw)
    if not validation.valid:
        logger.warning(f"Search validation failed: {validation.messages}")
        return validation_error(validation.messages)

    response = await engine.search(validation.query)
    return response.to_dict()


def get_update_details(db: Database, raw: Any) -> Dict[str, Any]:
    """
    Get one update with its full Markdown description.

    Args:
        db: Database holding the index
        raw: Untyped input, expected {"id": "..."}

    Returns:
        Update detail dict, or a validation / not-found error payload

    Raises:
        IndexUnavailableError: If the index cannot be read
    """
    update_id, errors = validate_update_id(raw)
    if errors:
        logger.warning(f"Update lookup validation failed: {errors}")
        return validation_error(errors)

    try:
        update = db.get_update(update_id)
    except sqlite3.DatabaseError as e:
        raise IndexUnavailableError(f"Search index unavailable: {e}") from e

    if update is None:
        logger.info(f"Update not found: {update_id}")
        return {"error": NOT_FOUND, "details": f"No Azure update found with ID: {update_id}"}

    return update.to_detail()


def build_guide(db: Database, controller: SyncController, settings: Settings) -> Dict[str, Any]:
    """
    Build the search guide: filters present in the index, usage examples,
    and data freshness.
    """
    start = time.perf_counter()

    options = db.get_filter_options()
    total = db.get_update_count()
    checkpoint = db.get_checkpoint()
    retention = settings.retention_start_date

    guide = {
        "overview": (
            f"Keyword and structured search over {total:,} Azure updates, retirements "
            "and feature announcements. Search returns lightweight metadata; fetch a "
            "single update by id for its full description."
        ),
        "dataAvailability": {
            "retentionStartDate": retention,
            "note": (
                f"Updates are retained from {retention} onwards. Older updates are "
                "filtered out during sync."
                if retention else "All historical updates are retained."
            ),
        },
        "availableFilters": {
            "tags": options.tags,
            "productCategories": options.product_categories,
            "products": options.products,
            "statuses": options.statuses,
            "availabilityRings": options.availability_rings,
        },
        "usageExamples": USAGE_EXAMPLES,
        "dataFreshness": {
            "lastSync": checkpoint.last_sync if checkpoint and not checkpoint.never_synced else None,
            "hoursSinceSync": hours_since_sync(checkpoint),
            "message": freshness_message(checkpoint),
            "isStale": controller.needs_sync(),
            "totalRecords": total,
            "syncStatus": checkpoint.sync_status.value if checkpoint else None,
        },
        "queryTips": QUERY_TIPS,
    }

    logger.info(
        f"Guide generated: {len(options.tags)} tags, {len(options.products)} products, "
        f"{total} records in {(time.perf_counter() - start) * 1000:.1f}ms"
    )
    return guide
