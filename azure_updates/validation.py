"""
Input validation for search requests.

Turns an untyped request (e.g. decoded JSON) into a SearchQuery, or into
the full list of field-level problems. Never raises on malformed input.
"""

from typing import Any, Dict, List, Optional, Tuple

from .models import (
    AVAILABILITY_RINGS,
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MIN_LIMIT,
    MIN_OFFSET,
    SearchFilters,
    SearchQuery,
    SortBy,
    ValidationIssue,
    ValidationResult,
    parse_timestamp,
)

# Request field -> SearchFilters attribute
ARRAY_FILTERS = (
    ("tags", "tags"),
    ("productCategories", "product_categories"),
    ("products", "products"),
)
DATE_FILTERS = (
    ("dateFrom", "date_from"),
    ("dateTo", "date_to"),
    ("retirementDateFrom", "retirement_date_from"),
    ("retirementDateTo", "retirement_date_to"),
)
SORT_OPTIONS = [option.value for option in SortBy]

# Largest value SQLite accepts for LIMIT/OFFSET
SQL_INTEGER_MAX = 2 ** 63 - 1


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid count
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_valid_iso_date(value: str) -> bool:
    """Lightweight ISO 8601 check: has a date separator and parses."""
    if "-" not in value:
        return False
    try:
        parse_timestamp(value)
    except ValueError:
        return False
    return True


def _validate_count(
    data: Dict[str, Any],
    name: str,
    minimum: int,
    maximum: Optional[int],
    errors: List[ValidationIssue]
) -> None:
    if name not in data:
        return

    value = data[name]
    if not _is_number(value):
        errors.append(ValidationIssue(name, f"{name} must be a number"))
    elif isinstance(value, float) and not value.is_integer():
        errors.append(ValidationIssue(name, f"{name} must be a whole number"))
    elif maximum is not None and not minimum <= value <= maximum:
        errors.append(ValidationIssue(name, f"{name} must be between {minimum} and {maximum}"))
    elif value < minimum:
        errors.append(ValidationIssue(name, f"{name} must be non-negative"))
    elif value > SQL_INTEGER_MAX:
        errors.append(ValidationIssue(name, f"{name} must be at most {SQL_INTEGER_MAX}"))


def _validate_filters(filters: Any, errors: List[ValidationIssue]) -> None:
    if not isinstance(filters, dict):
        errors.append(ValidationIssue("filters", "filters must be an object"))
        return

    for name, _ in ARRAY_FILTERS:
        if name not in filters:
            continue
        value = filters[name]
        if not isinstance(value, list):
            errors.append(ValidationIssue(f"filters.{name}", f"filters.{name} must be an array"))
        elif not all(isinstance(item, str) for item in value):
            errors.append(ValidationIssue(
                f"filters.{name}", f"filters.{name} must be an array of strings"
            ))

    if "status" in filters and not isinstance(filters["status"], str):
        errors.append(ValidationIssue("filters.status", "filters.status must be a string"))

    if "availabilityRing" in filters:
        ring = filters["availabilityRing"]
        if not isinstance(ring, str):
            errors.append(ValidationIssue(
                "filters.availabilityRing", "filters.availabilityRing must be a string"
            ))
        elif ring not in AVAILABILITY_RINGS:
            errors.append(ValidationIssue(
                "filters.availabilityRing",
                f"filters.availabilityRing must be one of: {', '.join(AVAILABILITY_RINGS)}"
            ))

    for name, _ in DATE_FILTERS:
        if name not in filters:
            continue
        value = filters[name]
        if not isinstance(value, str):
            errors.append(ValidationIssue(
                f"filters.{name}", f"filters.{name} must be an ISO 8601 date string"
            ))
        elif not is_valid_iso_date(value):
            errors.append(ValidationIssue(
                f"filters.{name}", f"filters.{name} must be a valid ISO 8601 date"
            ))


def _build_filters(filters: Dict[str, Any]) -> Optional[SearchFilters]:
    """Keep only provided, non-empty filter fields."""
    values: Dict[str, Any] = {}

    if filters.get("status"):
        values["status"] = filters["status"]
    if filters.get("availabilityRing"):
        values["availability_ring"] = filters["availabilityRing"]
    for name, attr in DATE_FILTERS:
        if filters.get(name):
            values[attr] = filters[name]
    # An empty array means "no constraint", same as absent
    for name, attr in ARRAY_FILTERS:
        if filters.get(name):
            values[attr] = list(filters[name])

    return SearchFilters(**values) if values else None


def validate_search_input(raw: Any) -> ValidationResult:
    """
    Validate a search request and convert it to a SearchQuery.

    Every check runs, so one call reports all problems.

    Args:
        raw: Untyped request, expected to be a dict with optional keys
            query, filters, sortBy, limit, offset

    Returns:
        ValidationResult (valid + query, or invalid + errors)
    """
    if not isinstance(raw, dict):
        return ValidationResult.failure([
            ValidationIssue("input", "Input must be an object with query parameters")
        ])

    errors: List[ValidationIssue] = []

    if "query" in raw and raw["query"] is not None and not isinstance(raw["query"], str):
        errors.append(ValidationIssue("query", "query must be a string"))

    _validate_count(raw, "limit", MIN_LIMIT, MAX_LIMIT, errors)
    _validate_count(raw, "offset", MIN_OFFSET, None, errors)

    if "sortBy" in raw:
        sort_by = raw["sortBy"]
        if not isinstance(sort_by, str):
            errors.append(ValidationIssue("sortBy", "sortBy must be a string"))
        elif sort_by not in SORT_OPTIONS:
            errors.append(ValidationIssue("sortBy", f"sortBy must be one of: {', '.join(SORT_OPTIONS)}"))

    if "filters" in raw:
        _validate_filters(raw["filters"], errors)

    if errors:
        return ValidationResult.failure(errors)

    query = SearchQuery(
        query=raw.get("query"),
        filters=_build_filters(raw["filters"]) if "filters" in raw else None,
        sort_by=SortBy(raw["sortBy"]) if "sortBy" in raw else None,
        limit=int(raw.get("limit", DEFAULT_LIMIT)),
        offset=int(raw.get("offset", MIN_OFFSET)),
    )
    return ValidationResult.success(query)


def validate_update_id(raw: Any) -> Tuple[Optional[str], List[str]]:
    """
    Validate input for a single-update lookup.

    Args:
        raw: Untyped request, expected to be {"id": "<update id>"}

    Returns:
        (id, errors); id is None when errors is non-empty
    """
    if not isinstance(raw, dict):
        return None, ["Input must be an object"]

    if "id" not in raw:
        return None, ["id is required"]

    update_id = raw["id"]
    if not isinstance(update_id, str):
        return None, ["id must be a string"]
    if update_id.strip() == "":
        return None, ["id cannot be empty"]

    return update_id.strip(), []
