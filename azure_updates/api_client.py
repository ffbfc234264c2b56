"""
Azure Updates API client.
Fetches paged update records from the public release-communications feed.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx
from markdownify import markdownify

from .config import DEFAULT_API_ENDPOINT
from .errors import UpstreamError
from .logger import get_logger
from .models import Availability, AzureUpdate
from .retry import RetryOptions, with_retry

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 100
REQUEST_TIMEOUT = 30.0  # seconds
USER_AGENT = "azure-updates-search/1.0"

MONTHS = {
    "January": "01", "February": "02", "March": "03", "April": "04",
    "May": "05", "June": "06", "July": "07", "August": "08",
    "September": "09", "October": "10", "November": "11", "December": "12",
}

# A page is (records, cursor for the next page or None)
Page = Tuple[List[AzureUpdate], Optional[str]]


def html_to_markdown(html: str) -> str:
    """Convert an HTML description to Markdown."""
    if not html:
        return ""
    return markdownify(html, heading_style="ATX", strip=["script", "style"]).strip()


def convert_availability(raw: Dict[str, Any]) -> Availability:
    """
    Convert an upstream availability entry.

    Upstream sends year + month name; we keep the first day of that month.
    """
    date = None
    year = raw.get("year")
    month = MONTHS.get(raw.get("month") or "")
    if year and month:
        date = f"{int(year):04d}-{month}-01"
    return Availability(ring=raw.get("ring") or "", date=date)


def convert_record(raw: Dict[str, Any]) -> AzureUpdate:
    """
    Convert a raw API record into an AzureUpdate.

    Args:
        raw: JSON object from the `value` array

    Returns:
        AzureUpdate with derived Markdown description
    """
    description = raw.get("description") or ""
    return AzureUpdate(
        id=raw["id"],
        title=raw.get("title") or "",
        description=description,
        description_markdown=html_to_markdown(description) or None,
        status=raw.get("status") or None,
        locale=raw.get("locale") or None,
        created=raw["created"],
        modified=raw["modified"],
        tags=list(raw.get("tags") or []),
        product_categories=list(raw.get("productCategories") or []),
        products=list(raw.get("products") or []),
        availabilities=[convert_availability(a) for a in raw.get("availabilities") or []],
    )


class AzureUpdatesClient:
    """Async client for the Azure Updates API.

    Use as an async context manager so the underlying connection pool
    is closed:

        async with AzureUpdatesClient(endpoint) as client:
            async for page in client.iter_pages(modified_since=...):
                ...
    """

    def __init__(
        self,
        api_endpoint: str = DEFAULT_API_ENDPOINT,
        timeout: float = REQUEST_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
        retry_options: Optional[RetryOptions] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """Initialize API client.

        Args:
            api_endpoint: Base API URL
            timeout: Request timeout in seconds
            page_size: Records requested per page ($top)
            retry_options: Retry policy for each page request
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_endpoint = api_endpoint.rstrip("/")
        self.page_size = page_size
        self.retry_options = retry_options or RetryOptions(
            retryable_errors=["network", "timeout", "connection", "503", "429"]
        )
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            },
        )

    async def __aenter__(self) -> "AzureUpdatesClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()

    def build_query_url(
        self,
        modified_since: Optional[str] = None,
        skip: int = 0,
        include_count: bool = False
    ) -> str:
        """
        Build OData query URL.

        Uses `modified ge` rather than `gt` so records sharing the checkpoint
        timestamp are not missed; re-fetching them is a harmless upsert.
        """
        params = {"$top": str(self.page_size)}
        if skip > 0:
            params["$skip"] = str(skip)
        if include_count:
            params["$count"] = "true"
        if modified_since:
            params["$filter"] = f"modified ge {modified_since}"
        params["$orderby"] = "modified desc"
        return f"{self.api_endpoint}?{urlencode(params)}"

    async def _get_json(self, url: str) -> Dict[str, Any]:
        """GET a URL and decode JSON, mapping failures to UpstreamError."""
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Request timeout: {url}: {e}") from e
        except httpx.TransportError as e:
            raise UpstreamError(f"Network error: {url}: {e}") from e

        if response.status_code >= 400:
            raise UpstreamError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from upstream: {e}") from e

    async def fetch_page(
        self,
        cursor: Optional[str] = None,
        modified_since: Optional[str] = None
    ) -> Page:
        """
        Fetch one page of updates (with retry).

        Args:
            cursor: URL of the page to fetch; first page when None
            modified_since: ISO 8601 lower bound on `modified` (first page only)

        Returns:
            (records, next cursor or None)

        Raises:
            UpstreamError: After retries are exhausted or on a non-retryable error
        """
        url = cursor or self.build_query_url(modified_since=modified_since)
        logger.debug(f"GET {url}")

        data = await with_retry(lambda: self._get_json(url), self.retry_options)

        records = [convert_record(raw) for raw in data.get("value") or []]
        next_cursor = data.get("@odata.nextLink")

        if not next_cursor and len(records) == self.page_size:
            # Server didn't hand out a link; fall back to $skip paging
            skip = self._skip_of(url) + len(records)
            total = data.get("@odata.count")
            if total is None or skip < total:
                next_cursor = self._with_skip(url, skip)

        return records, next_cursor

    def _skip_of(self, url: str) -> int:
        query = httpx.URL(url).params
        return int(query.get("$skip", "0"))

    def _with_skip(self, url: str, skip: int) -> str:
        return str(httpx.URL(url).copy_set_param("$skip", str(skip)))

    async def iter_pages(self, modified_since: Optional[str] = None) -> AsyncIterator[List[AzureUpdate]]:
        """
        Iterate over all pages modified since a timestamp.

        Args:
            modified_since: ISO 8601 lower bound, None for a full fetch

        Yields:
            List of AzureUpdate per page
        """
        cursor: Optional[str] = None
        page_number = 0
        fetched = 0

        while True:
            records, cursor = await self.fetch_page(cursor=cursor, modified_since=modified_since)
            page_number += 1
            fetched += len(records)

            logger.info(f"Fetched page {page_number}: {len(records)} records ({fetched} total)")

            if records:
                yield records

            if not cursor or not records:
                break

    async def fetch_update_count(self) -> int:
        """
        Fetch total number of updates available upstream.

        Returns:
            Total count, 0 if the request fails
        """
        url = f"{self.api_endpoint}?{urlencode({'$count': 'true', '$top': '1'})}"
        try:
            data = await with_retry(
                lambda: self._get_json(url),
                self.retry_options,
                max_retries=2,
                initial_delay=0.5,
            )
        except UpstreamError as e:
            logger.warning(f"Failed to fetch update count: {e}")
            return 0
        return int(data.get("@odata.count") or 0)
