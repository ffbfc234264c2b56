"""
PyTest Configuration and Fixtures for Azure Updates Search Tests

Provides:
- Temporary SQLite index per test (schema applied, nothing synced)
- A small, fixed set of Azure updates covering every filter dimension
- A fake upstream client that replays pages without any network

Usage:
    pytest tests/ -v
"""

from typing import List, Optional

import pytest

from azure_updates.config import SyncConfig
from azure_updates.database import Database
from azure_updates.models import Availability, AzureUpdate
from azure_updates.search import SearchEngine
from azure_updates.sync import SyncController


# ============================================================================
# Sample data
# ============================================================================

def make_update(
    update_id: str,
    title: str,
    modified: str,
    created: str,
    tags: Optional[List[str]] = None,
    categories: Optional[List[str]] = None,
    products: Optional[List[str]] = None,
    status: Optional[str] = "Launched",
    availabilities: Optional[List[Availability]] = None,
    description: str = ""
) -> AzureUpdate:
    return AzureUpdate(
        id=update_id,
        title=title,
        description=description,
        description_markdown=description or None,
        status=status,
        locale="en-US",
        created=created,
        modified=modified,
        tags=tags or [],
        product_categories=categories or [],
        products=products or [],
        availabilities=availabilities or [],
    )


def build_sample_updates() -> List[AzureUpdate]:
    return [
        make_update(
            "vm-retire-1",
            "Retirement: Azure Virtual Machines classic deployment model",
            modified="2025-03-01T10:00:00.0000000Z",
            created="2024-12-01T00:00:00.0000000Z",
            tags=["Retirements", "Compute"],
            categories=["Compute"],
            products=["Virtual Machines"],
            availabilities=[Availability(ring="Retirement", date="2026-03-01")],
            description="Migrate classic VMs to Azure Resource Manager before the deadline.",
        ),
        make_update(
            "kv-sec-1",
            "Azure Key Vault adds security hardening for managed HSM",
            modified="2025-02-15T08:30:00.1234567Z",
            created="2025-02-01T00:00:00.0000000Z",
            tags=["Security", "Features"],
            categories=["Security"],
            products=["Azure Key Vault"],
            availabilities=[Availability(ring="General Availability", date="2025-02-01")],
            description="Key Vault **managed HSM** now enforces stricter defaults.",
        ),
        make_update(
            "sql-sec-2",
            "Azure SQL Database security baseline in preview",
            modified="2024-11-20T12:00:00.0000000Z",
            created="2024-11-01T00:00:00.0000000Z",
            tags=["Security"],
            categories=["Databases"],
            products=["Azure SQL Database"],
            status="In preview",
            availabilities=[Availability(ring="Preview", date="2024-11-01")],
        ),
        make_update(
            "aks-1",
            "AKS Kubernetes 1.30 generally available",
            modified="2025-01-01T09:00:00.0000000Z",
            created="2024-12-15T00:00:00.0000000Z",
            tags=["Features"],
            categories=["Containers"],
            products=["Azure Kubernetes Service"],
            availabilities=[Availability(ring="General Availability", date="2025-01-01")],
        ),
        make_update(
            "storage-retire-2",
            "Retirement: legacy Storage API security protocols",
            modified="2025-01-10T00:00:00.0000000Z",
            created="2024-10-01T00:00:00.0000000Z",
            tags=["Retirements", "Security"],
            categories=["Storage"],
            products=["Azure Storage"],
            availabilities=[
                Availability(ring="General Availability", date="2020-01-01"),
                Availability(ring="Retirement", date="2025-09-30"),
            ],
        ),
        make_update(
            "func-1",
            "Azure Functions Python 3.12 support",
            modified="2025-01-05T00:00:00.0000000Z",
            created="2025-01-02T00:00:00.0000000Z",
            tags=["Features"],
            categories=["Compute"],
            products=["Azure Functions"],
            status="In development",
        ),
    ]


NEWEST_MODIFIED = "2025-03-01T10:00:00.0000000Z"


# ============================================================================
# Fake upstream
# ============================================================================

class FakeUpdatesClient:
    """Replays fixed pages; optionally fails before a given page."""

    def __init__(
        self,
        pages: List[List[AzureUpdate]],
        fail_at_page: Optional[int] = None,
        error: Optional[BaseException] = None
    ):
        self.pages = pages
        self.fail_at_page = fail_at_page
        self.error = error
        self.calls: List[Optional[str]] = []
        self.closed = False

    async def __aenter__(self) -> "FakeUpdatesClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.closed = True

    async def iter_pages(self, modified_since: Optional[str] = None):
        self.calls.append(modified_since)
        for i, page in enumerate(self.pages):
            if self.fail_at_page is not None and i == self.fail_at_page:
                raise self.error
            yield page


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def sample_updates() -> List[AzureUpdate]:
    return build_sample_updates()


@pytest.fixture
def db(tmp_path) -> Database:
    """Empty, initialised index."""
    database = Database(str(tmp_path / "azure-updates.db"))
    database.init()
    return database


@pytest.fixture
def seeded_db(db, sample_updates) -> Database:
    db.upsert_batch(sample_updates)
    return db


@pytest.fixture
def engine(seeded_db) -> SearchEngine:
    return SearchEngine(seeded_db)


@pytest.fixture
def fake_client(sample_updates) -> FakeUpdatesClient:
    return FakeUpdatesClient([sample_updates[:3], sample_updates[3:]])


@pytest.fixture
def controller(db, fake_client) -> SyncController:
    return SyncController(
        db,
        client_factory=lambda: fake_client,
        config=SyncConfig(staleness_threshold_hours=24, batch_size=100, max_retries=0),
    )
