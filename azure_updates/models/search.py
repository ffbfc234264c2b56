"""
Search query, result and validation models
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .update import AzureUpdate

DEFAULT_LIMIT = 20
MIN_LIMIT = 1
MAX_LIMIT = 100
MIN_OFFSET = 0


class SortBy(str, Enum):
    """Sort options; each value carries its direction"""
    MODIFIED_DESC = "modified:desc"
    MODIFIED_ASC = "modified:asc"
    CREATED_DESC = "created:desc"
    CREATED_ASC = "created:asc"
    RETIREMENT_DATE_ASC = "retirementDate:asc"
    RETIREMENT_DATE_DESC = "retirementDate:desc"

    @property
    def field_name(self) -> str:
        return self.value.split(":")[0]

    @property
    def descending(self) -> bool:
        return self.value.endswith(":desc")


class SearchFilters(BaseModel):
    """Structured filters, combined with AND"""

    status: Optional[str] = None
    availability_ring: Optional[str] = None
    date_from: Optional[str] = Field(None, description="Modified on or after this date")
    date_to: Optional[str] = Field(None, description="Modified on or before this date")
    retirement_date_from: Optional[str] = None
    retirement_date_to: Optional[str] = None

    # Multi-valued: record must contain ALL listed values
    tags: Optional[List[str]] = None
    products: Optional[List[str]] = None
    product_categories: Optional[List[str]] = None


class SearchQuery(BaseModel):
    """Validated, fully-typed search query"""

    query: Optional[str] = Field(None, description="Free-text keyword query")
    filters: Optional[SearchFilters] = None
    sort_by: Optional[SortBy] = None
    limit: int = Field(DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT)
    offset: int = Field(MIN_OFFSET, ge=MIN_OFFSET)

    @property
    def keyword(self) -> Optional[str]:
        """Free text when it carries a signal, else None."""
        if self.query and self.query.strip():
            return self.query
        return None


class SearchResult(BaseModel):
    """An update plus its relevance score (None when no keyword was given)"""

    update: AzureUpdate
    relevance_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.update.to_summary()
        if self.relevance_score is not None:
            data["relevance"] = self.relevance_score
        return data


class SearchMetadata(BaseModel):
    """Pagination and timing metadata"""

    total_results: int
    returned_results: int
    limit: int
    offset: int
    has_more: bool
    query_time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalResults": self.total_results,
            "returnedResults": self.returned_results,
            "limit": self.limit,
            "offset": self.offset,
            "hasMore": self.has_more,
            "queryTime": self.query_time_ms,
        }


class SearchResponse(BaseModel):
    """Ranked page plus metadata"""

    results: List[SearchResult]
    metadata: SearchMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "metadata": self.metadata.to_dict(),
        }


class FilterOptions(BaseModel):
    """Distinct filter values present in the local index"""

    tags: List[str] = Field(default_factory=list)
    product_categories: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)
    availability_rings: List[str] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)


@dataclass
class ValidationIssue:
    """One field-level validation problem."""
    field: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class ValidationResult:
    """Tagged result: valid with a query, or invalid with errors."""
    valid: bool
    query: Optional[SearchQuery] = None
    errors: List[ValidationIssue] = field(default_factory=list)

    @classmethod
    def success(cls, query: SearchQuery) -> "ValidationResult":
        return cls(valid=True, query=query)

    @classmethod
    def failure(cls, errors: List[ValidationIssue]) -> "ValidationResult":
        return cls(valid=False, errors=list(errors))

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.errors]
