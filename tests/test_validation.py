"""
Query Validator Tests

Malformed input never raises; every problem is reported with its field.
"""

import pytest

from azure_updates.models import DEFAULT_LIMIT, SortBy
from azure_updates.validation import (
    is_valid_iso_date,
    validate_search_input,
    validate_update_id,
)


def fields_of(result):
    return [e.field for e in result.errors]


class TestValidInput:
    """Accepted input is normalized into a SearchQuery."""

    def test_empty_object_uses_defaults(self):
        result = validate_search_input({})
        assert result.valid
        assert result.query.limit == DEFAULT_LIMIT
        assert result.query.offset == 0
        assert result.query.filters is None
        assert result.query.sort_by is None

    def test_full_request(self):
        result = validate_search_input({
            "query": "security",
            "filters": {
                "tags": ["Security"],
                "products": ["Azure Key Vault"],
                "productCategories": ["Security"],
                "status": "Launched",
                "availabilityRing": "General Availability",
                "dateFrom": "2025-01-01",
                "dateTo": "2025-12-31T23:59:59Z",
                "retirementDateFrom": "2026-01-01",
                "retirementDateTo": "2026-12-31",
            },
            "sortBy": "retirementDate:asc",
            "limit": 50,
            "offset": 10,
        })

        assert result.valid, result.messages
        query = result.query
        assert query.query == "security"
        assert query.sort_by == SortBy.RETIREMENT_DATE_ASC
        assert query.limit == 50
        assert query.offset == 10
        assert query.filters.tags == ["Security"]
        assert query.filters.product_categories == ["Security"]
        assert query.filters.availability_ring == "General Availability"
        assert query.filters.date_to == "2025-12-31T23:59:59Z"

    def test_limit_boundaries_accepted(self):
        assert validate_search_input({"limit": 1}).valid
        assert validate_search_input({"limit": 100}).valid

    def test_integral_float_is_accepted(self):
        result = validate_search_input({"limit": 10.0})
        assert result.valid
        assert result.query.limit == 10

    def test_empty_arrays_are_accepted_and_dropped(self):
        result = validate_search_input({"filters": {"tags": [], "products": []}})
        assert result.valid
        assert result.query.filters is None

    def test_absent_filters_are_stripped(self):
        result = validate_search_input({"filters": {"tags": ["Security"]}})
        dumped = result.query.filters.model_dump(exclude_none=True)
        assert dumped == {"tags": ["Security"]}

    def test_whitespace_query_is_valid(self):
        result = validate_search_input({"query": "   "})
        assert result.valid
        assert result.query.keyword is None


class TestInvalidInput:
    """Rejected input lists every problem."""

    @pytest.mark.parametrize("raw", [None, "security", 42, ["a"], True])
    def test_non_object_input(self, raw):
        result = validate_search_input(raw)
        assert not result.valid
        assert fields_of(result) == ["input"]

    @pytest.mark.parametrize("limit", [0, 101, -1])
    def test_limit_out_of_range(self, limit):
        result = validate_search_input({"limit": limit})
        assert not result.valid
        assert "between 1 and 100" in result.messages[0]

    def test_boolean_is_not_a_number(self):
        result = validate_search_input({"limit": True, "offset": False})
        assert not result.valid
        assert fields_of(result) == ["limit", "offset"]

    def test_string_limit_rejected(self):
        result = validate_search_input({"limit": "10"})
        assert result.messages == ["limit must be a number"]

    def test_fractional_limit_rejected(self):
        result = validate_search_input({"limit": 10.5})
        assert fields_of(result) == ["limit"]

    def test_oversized_integers_are_reported_not_raised(self):
        result = validate_search_input({"limit": 10 ** 400, "offset": 10 ** 400})

        assert fields_of(result) == ["limit", "offset"]
        assert result.messages[0] == "limit must be between 1 and 100"
        assert result.messages[1].startswith("offset must be at most")

    def test_non_finite_float_rejected(self):
        result = validate_search_input({"offset": float("inf")})
        assert result.messages == ["offset must be a whole number"]

    def test_negative_offset_rejected(self):
        result = validate_search_input({"offset": -5})
        assert result.messages == ["offset must be non-negative"]

    def test_unknown_sort(self):
        result = validate_search_input({"sortBy": "relevance"})
        assert fields_of(result) == ["sortBy"]
        assert "modified:desc" in result.messages[0]

    def test_query_must_be_string(self):
        result = validate_search_input({"query": 123})
        assert fields_of(result) == ["query"]

    def test_filters_must_be_object(self):
        result = validate_search_input({"filters": ["Security"]})
        assert fields_of(result) == ["filters"]

    def test_filter_array_types(self):
        result = validate_search_input({
            "filters": {"tags": "Security", "products": [1, 2], "productCategories": [None]}
        })
        assert fields_of(result) == [
            "filters.tags", "filters.productCategories", "filters.products"
        ]

    def test_unknown_ring(self):
        result = validate_search_input({"filters": {"availabilityRing": "Beta"}})
        assert fields_of(result) == ["filters.availabilityRing"]

    @pytest.mark.parametrize("value", ["20250101", "yesterday", "2025-13-45", 20250101])
    def test_bad_dates(self, value):
        result = validate_search_input({"filters": {"dateFrom": value}})
        assert fields_of(result) == ["filters.dateFrom"]

    def test_errors_accumulate(self):
        result = validate_search_input({
            "query": 5,
            "limit": 0,
            "offset": -1,
            "sortBy": "nope",
            "filters": {"status": 3, "retirementDateTo": "soon"},
        })
        assert not result.valid
        assert result.query is None
        assert fields_of(result) == [
            "query", "limit", "offset", "sortBy", "filters.status", "filters.retirementDateTo"
        ]


class TestIsoDate:

    def test_date_only(self):
        assert is_valid_iso_date("2025-01-01")

    def test_datetime_with_seven_digit_fraction(self):
        assert is_valid_iso_date("2025-01-01T10:00:00.1234567Z")

    def test_missing_separator(self):
        assert not is_valid_iso_date("20250101")


class TestUpdateIdValidation:

    def test_valid_id_is_trimmed(self):
        assert validate_update_id({"id": "  kv-sec-1 "}) == ("kv-sec-1", [])

    def test_missing_id(self):
        assert validate_update_id({}) == (None, ["id is required"])

    def test_non_string_id(self):
        assert validate_update_id({"id": 7}) == (None, ["id must be a string"])

    def test_blank_id(self):
        assert validate_update_id({"id": "   "}) == (None, ["id cannot be empty"])

    def test_non_object(self):
        assert validate_update_id("kv-sec-1") == (None, ["Input must be an object"])
