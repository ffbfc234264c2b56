"""
Search engine over the local Azure Updates index.

Keyword search runs against the FTS5 table with BM25 ranking; structured
filters are ANDed as SQL clauses. Count and page are read from one
snapshot so totals always agree with the returned page.
"""

import re
import sqlite3
import time
from datetime import timezone
from typing import Any, List, Optional, Tuple

from .database import UPDATE_COLUMNS, Database
from .errors import IndexUnavailableError
from .logger import get_logger
from .models import (
    RETIREMENT_RING,
    AzureUpdate,
    SearchFilters,
    SearchMetadata,
    SearchQuery,
    SearchResponse,
    SearchResult,
    SortBy,
    parse_timestamp,
)

logger = get_logger(__name__)

# bm25 column weights: id, title, description_md, tags, categories, products
BM25_WEIGHTS = (0.0, 10.0, 1.0, 5.0, 3.0, 3.0)

_PHRASE_PATTERN = re.compile(r'"([^"]+)"')
_FTS_OPERATORS = re.compile(r"[(){}\[\]^~*:]")

RETIREMENT_DATE_SQL = f"""(
    SELECT MIN(ra.date) FROM update_availabilities ra
    WHERE ra.update_id = au.id AND ra.ring = '{RETIREMENT_RING}' AND ra.date IS NOT NULL
)"""

# (table, column, SearchFilters attribute) for superset filters
LABEL_FILTERS = (
    ("update_tags", "tag", "tags"),
    ("update_products", "product", "products"),
    ("update_categories", "category", "product_categories"),
)


def normalize_timestamp_bound(value: str, upper: bool = False) -> str:
    """
    Render a datetime bound in the stored `modified` format.

    Stored values are UTC with 7 fractional digits, so bounds are converted
    to the same shape before the string comparison. Upper bounds are padded
    to cover the whole microsecond.

    Args:
        value: ISO 8601 timestamp, with or without an offset
        upper: True for an inclusive upper bound

    Returns:
        UTC timestamp like 2025-01-01T07:00:00.0000000Z
    """
    utc = parse_timestamp(value).astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.%f") + ("9Z" if upper else "0Z")

def sanitize_fts_query(text: str) -> str:
    """
    Turn free text into a safe FTS5 MATCH expression.

    Quoted phrases are kept as phrase queries. Every other word becomes a
    quoted prefix term, and all terms are ORed together.

    Args:
        text: User-entered search text

    Returns:
        FTS5 query string ('""' when nothing searchable remains)
    """
    phrases: List[str] = []

    def keep_phrase(match: re.Match) -> str:
        phrases.append('"' + match.group(1).replace('"', '""') + '"')
        return f" __PHRASE_{len(phrases) - 1}__ "

    processed = _PHRASE_PATTERN.sub(keep_phrase, text)
    processed = _FTS_OPERATORS.sub(" ", processed)

    tokens = []
    for word in processed.split():
        placeholder = re.fullmatch(r"__PHRASE_(\d+)__", word)
        if placeholder:
            tokens.append(phrases[int(placeholder.group(1))])
        else:
            tokens.append('"' + word.replace('"', '""') + '"*')

    return " OR ".join(tokens) if tokens else '""'


def build_filter_clauses(filters: Optional[SearchFilters]) -> Tuple[List[str], List[Any]]:
    """
    Build WHERE clauses for structured filters.

    Args:
        filters: Filters from a validated query

    Returns:
        (clauses, params); clauses are combined with AND
    """
    clauses: List[str] = []
    params: List[Any] = []

    if filters is None:
        return clauses, params

    if filters.status:
        clauses.append("au.status = ?")
        params.append(filters.status)

    if filters.availability_ring:
        clauses.append(
            "EXISTS (SELECT 1 FROM update_availabilities ua "
            "WHERE ua.update_id = au.id AND ua.ring = ?)"
        )
        params.append(filters.availability_ring)

    if filters.date_from:
        clauses.append("au.modified >= ?")
        if len(filters.date_from) == 10:
            params.append(filters.date_from)
        else:
            params.append(normalize_timestamp_bound(filters.date_from))

    if filters.date_to:
        if len(filters.date_to) == 10:
            # Date-only bound covers the whole day
            clauses.append("substr(au.modified, 1, 10) <= ?")
            params.append(filters.date_to)
        else:
            clauses.append("au.modified <= ?")
            params.append(normalize_timestamp_bound(filters.date_to, upper=True))

    # Availability dates are stored as YYYY-MM-DD
    if filters.retirement_date_from:
        clauses.append(
            "EXISTS (SELECT 1 FROM update_availabilities ua "
            "WHERE ua.update_id = au.id AND ua.ring = ? AND ua.date >= ?)"
        )
        params.extend([RETIREMENT_RING, filters.retirement_date_from[:10]])

    if filters.retirement_date_to:
        clauses.append(
            "EXISTS (SELECT 1 FROM update_availabilities ua "
            "WHERE ua.update_id = au.id AND ua.ring = ? AND ua.date <= ?)"
        )
        params.extend([RETIREMENT_RING, filters.retirement_date_to[:10]])

    # Superset semantics: one EXISTS per requested value
    for table, column, attr in LABEL_FILTERS:
        for value in getattr(filters, attr) or []:
            clauses.append(
                f"EXISTS (SELECT 1 FROM {table} lt WHERE lt.update_id = au.id AND lt.{column} = ?)"
            )
            params.append(value)

    return clauses, params


def build_order_by(sort_by: Optional[SortBy], scored: bool) -> str:
    """
    Build the ORDER BY clause.

    - sortBy given: that field, then relevance (if scored) or id
    - keyword only: relevance
    - neither: most recently modified first
    """
    tie_break = "relevance DESC, au.id ASC" if scored else "au.id ASC"

    if sort_by is None:
        if scored:
            return "ORDER BY relevance DESC, au.id ASC"
        return "ORDER BY au.modified DESC, au.id ASC"

    direction = "DESC" if sort_by.descending else "ASC"

    if sort_by.field_name == "retirementDate":
        # Records without a retirement date go last in either direction
        return (
            f"ORDER BY retirement_date IS NULL, retirement_date {direction}, {tie_break}"
        )

    return f"ORDER BY au.{sort_by.field_name} {direction}, {tie_break}"


class SearchEngine:
    """Keyword + structured search over the local index."""

    def __init__(self, db: Database):
        """Initialize search engine.

        Args:
            db: Database holding the index
        """
        self.db = db

    async def search(self, query: SearchQuery) -> SearchResponse:
        """
        Run a validated search query.

        Args:
            query: Validated SearchQuery

        Returns:
            SearchResponse with one page of results and metadata

        Raises:
            IndexUnavailableError: If the index is missing or unreadable
        """
        start = time.perf_counter()
        keyword = query.keyword

        logger.info(
            f"Search: query={keyword!r}, sort_by={query.sort_by.value if query.sort_by else None}, "
            f"limit={query.limit}, offset={query.offset}"
        )

        self.db.ensure_available()

        try:
            results, total = self._execute(query, keyword)
        except sqlite3.DatabaseError as e:
            logger.error(f"Search failed: {e}")
            raise IndexUnavailableError(f"Search index unavailable: {e}") from e

        query_time_ms = round((time.perf_counter() - start) * 1000, 2)
        metadata = SearchMetadata(
            total_results=total,
            returned_results=len(results),
            limit=query.limit,
            offset=query.offset,
            has_more=query.offset + len(results) < total,
            query_time_ms=query_time_ms,
        )

        logger.info(f"Search returned {len(results)} of {total} results in {query_time_ms}ms")
        return SearchResponse(results=results, metadata=metadata)

    def _execute(self, query: SearchQuery, keyword: Optional[str]) -> Tuple[List[SearchResult], int]:
        clauses, filter_params = build_filter_clauses(query.filters)

        if keyword is not None:
            fts_query = sanitize_fts_query(keyword)
            if fts_query == '""':
                # Only operators/punctuation: nothing can match
                return [], 0

            weights = ", ".join(str(w) for w in BM25_WEIGHTS)
            select = f"-bm25(updates_fts, {weights}) AS relevance"
            source = "azure_updates au JOIN updates_fts ON updates_fts.rowid = au.rowid"
            clauses = ["updates_fts MATCH ?"] + clauses
            params: List[Any] = [fts_query] + filter_params
        else:
            select = "NULL AS relevance"
            source = "azure_updates au"
            params = list(filter_params)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        columns = ", ".join(f"au.{c.strip()}" for c in UPDATE_COLUMNS.split(","))

        if query.sort_by is not None and query.sort_by.field_name == "retirementDate":
            select += f", {RETIREMENT_DATE_SQL} AS retirement_date"

        page_sql = f"""
            SELECT {columns}, {select}
            FROM {source}
            {where}
            {build_order_by(query.sort_by, keyword is not None)}
            LIMIT ? OFFSET ?
        """
        count_sql = f"SELECT COUNT(*) FROM {source} {where}"

        with self.db.get_connection() as conn:
            # One read transaction: count and page see the same snapshot
            conn.execute("BEGIN")
            total = conn.execute(count_sql, params).fetchone()[0]
            rows = conn.execute(page_sql, params + [query.limit, query.offset]).fetchall()
            updates = self.db.load_updates(conn, rows)

        results = [
            SearchResult(
                update=update,
                relevance_score=round(row["relevance"], 4) if row["relevance"] is not None else None,
            )
            for update, row in zip(updates, rows)
        ]
        return results, total

    async def get_update(self, update_id: str) -> Optional[AzureUpdate]:
        """
        Get a full update record by id.

        Raises:
            IndexUnavailableError: If the index is missing or unreadable
        """
        self.db.ensure_available()
        try:
            return self.db.get_update(update_id)
        except sqlite3.DatabaseError as e:
            raise IndexUnavailableError(f"Search index unavailable: {e}") from e
