"""
Azure update record models
"""
import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

UPDATE_URL_TEMPLATE = "https://azure.microsoft.com/en-us/updates/?id={id}"

# Availability rings accepted by the ring filter
AVAILABILITY_RINGS = (
    "General Availability",
    "Preview",
    "Private Preview",
    "Retirement",
)
RETIREMENT_RING = "Retirement"

_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an upstream ISO 8601 timestamp into an aware datetime.

    Upstream `modified` values carry 7 fractional digits; Python keeps 6,
    so the fraction is truncated. Naive values are taken as UTC.

    Args:
        value: ISO 8601 timestamp (e.g. 2025-01-01T10:00:00.1234567Z)

    Returns:
        Timezone-aware datetime
    """
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Availability(BaseModel):
    """One availability timeline entry (ring + optional date)"""

    ring: str = Field(..., description="e.g. 'General Availability', 'Preview', 'Retirement'")
    date: Optional[str] = Field(None, description="YYYY-MM-DD, null when TBD")


class AzureUpdate(BaseModel):
    """Complete Azure update record"""

    id: str = Field(..., min_length=1, description="Stable unique identifier")
    title: str
    description: str = Field("", description="HTML description as sent upstream")
    description_markdown: Optional[str] = Field(None, description="Markdown derived from description")
    status: Optional[str] = None
    locale: Optional[str] = None
    created: str = Field(..., description="ISO 8601 timestamp")
    modified: str = Field(..., description="ISO 8601 timestamp, 7 fractional digits")

    tags: List[str] = Field(default_factory=list)
    product_categories: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)
    availabilities: List[Availability] = Field(default_factory=list)

    @property
    def url(self) -> str:
        return UPDATE_URL_TEMPLATE.format(id=self.id)

    @property
    def created_at(self) -> datetime:
        return parse_timestamp(self.created)

    @property
    def modified_at(self) -> datetime:
        return parse_timestamp(self.modified)

    def to_summary(self) -> dict:
        """Lightweight representation without description fields."""
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "status": self.status,
            "tags": self.tags,
            "productCategories": self.product_categories,
            "products": self.products,
            "availabilities": [a.model_dump() for a in self.availabilities],
            "created": self.created,
            "modified": self.modified,
        }

    def to_detail(self) -> dict:
        """Full representation including the Markdown description."""
        detail = self.to_summary()
        detail.update({
            "description": self.description_markdown or self.description,
            "locale": self.locale,
        })
        return detail
