"""
Sync controller.

Keeps the local index fresh: differential fetch from the high watermark,
atomic batch upserts, and a checkpoint that is never left in_progress once
sync() returns.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .api_client import AzureUpdatesClient
from .config import SyncConfig
from .database import Database, utc_now_iso
from .logger import get_logger
from .models import AzureUpdate, SyncResult, SyncStatus, parse_timestamp
from .retry import RetryOptions
from .staleness import freshness_message, hours_since_sync, is_stale, next_sync_time

logger = get_logger(__name__)

ClientFactory = Callable[[], AzureUpdatesClient]


def filter_by_retention(updates: List[AzureUpdate], retention_start_date: Optional[str]) -> List[AzureUpdate]:
    """
    Drop updates older than the retention start date.

    An update is kept when the later of its created/modified timestamps
    falls on or after the cutoff.

    Args:
        updates: Fetched updates
        retention_start_date: YYYY-MM-DD, or None to keep everything

    Returns:
        Updates inside the retention window
    """
    if not retention_start_date:
        return updates

    cutoff = parse_timestamp(f"{retention_start_date}T00:00:00Z")
    kept = [
        u for u in updates
        if max(u.created_at, u.modified_at) >= cutoff
    ]

    if len(kept) != len(updates):
        logger.info(
            f"Filtered out {len(updates) - len(kept)} updates older than {retention_start_date}"
        )
    return kept


class SyncController:
    """Runs syncs against the upstream feed and reports sync status."""

    def __init__(
        self,
        db: Database,
        client_factory: Optional[ClientFactory] = None,
        config: Optional[SyncConfig] = None
    ):
        """Initialize sync controller.

        Args:
            db: Database holding the index and checkpoint
            client_factory: Returns a fresh AzureUpdatesClient per sync
            config: Staleness threshold, batch size, retry and retention settings
        """
        self.db = db
        self.config = config or SyncConfig()
        self.client_factory = client_factory or self._default_client

    def _default_client(self) -> AzureUpdatesClient:
        return AzureUpdatesClient(
            api_endpoint=self.config.api_url,
            retry_options=RetryOptions(
                max_retries=self.config.max_retries,
                retryable_errors=["network", "timeout", "connection", "503", "429"],
            ),
        )

    def needs_sync(self, now: Optional[datetime] = None) -> bool:
        """Check whether the stored checkpoint is stale."""
        return is_stale(self.db.get_checkpoint(), self.config.staleness_threshold_hours, now)

    def recover(self) -> bool:
        """
        Reset a checkpoint left in_progress by a process that died mid-sync.

        Only safe at startup, before any sync of this process has begun.

        Returns:
            True if a checkpoint was reset
        """
        return self.db.reset_stale_in_progress("Sync interrupted (process restarted)")

    async def sync(self, force: bool = False) -> SyncResult:
        """
        Run a sync if one is due.

        Args:
            force: Sync even when data is fresh

        Returns:
            SyncResult; failures are reported here, not raised
        """
        start = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - start) * 1000)

        if not force and not self.needs_sync():
            logger.debug("Data is fresh, skipping sync")
            checkpoint = self.db.get_checkpoint()
            return SyncResult(
                success=True,
                skipped=True,
                checkpoint=checkpoint.last_sync if checkpoint else None,
            )

        if not self.db.try_start_sync():
            logger.warning("Sync already in progress, skipping")
            return SyncResult(success=False, skipped=True, error="Sync already in progress")

        logger.info(f"Starting sync (force={force})")

        previous = self.db.get_checkpoint()
        initial = previous is None or previous.never_synced
        count_before = self.db.get_update_count()

        retention = self.config.retention_start_date
        if initial:
            modified_since = f"{retention}T00:00:00.000Z" if retention else None
        else:
            modified_since = previous.high_watermark or previous.last_sync

        processed = inserted = updated = 0
        newest: Optional[str] = None if initial else previous.high_watermark
        finished = False

        try:
            async with self.client_factory() as client:
                async for page in client.iter_pages(modified_since=modified_since):
                    page = filter_by_retention(page, retention)

                    for i in range(0, len(page), self.config.batch_size):
                        batch = page[i:i + self.config.batch_size]
                        batch_inserted, batch_updated = self.db.upsert_batch(batch)
                        processed += len(batch)
                        inserted += batch_inserted
                        updated += batch_updated
                        logger.debug(
                            f"Batch stored: {len(batch)} records "
                            f"({batch_inserted} new, {batch_updated} changed), {processed} so far"
                        )

                        for update in batch:
                            if newest is None or update.modified_at > parse_timestamp(newest):
                                newest = update.modified

                        # Let searches run between write transactions
                        await asyncio.sleep(0)

            last_sync = utc_now_iso()
            total = self.db.get_update_count()
            duration_ms = elapsed_ms()
            self.db.complete_sync_success(last_sync, total, duration_ms, high_watermark=newest)
            finished = True

            logger.info(
                f"Sync completed: {processed} processed, {inserted} inserted, "
                f"{updated} updated, {total} total records in {duration_ms}ms"
                f" (initial={initial}, records before={count_before}, high watermark={newest})"
            )
            return SyncResult(
                success=True,
                records_processed=processed,
                records_inserted=inserted,
                records_updated=updated,
                duration_ms=duration_ms,
                checkpoint=last_sync,
            )

        except Exception as e:
            duration_ms = elapsed_ms()
            self.db.complete_sync_failure(str(e), self.db.get_update_count(), duration_ms)
            finished = True

            logger.error(
                f"Sync failed after {processed} records ({duration_ms}ms): {e}",
                exc_info=True
            )
            return SyncResult(
                success=False,
                records_processed=processed,
                records_inserted=inserted,
                records_updated=updated,
                duration_ms=duration_ms,
                error=str(e),
            )

        finally:
            if not finished:
                # Cancelled or interrupted; never leave the checkpoint in_progress
                self.db.complete_sync_failure(
                    "Sync interrupted", self.db.get_update_count(), elapsed_ms()
                )
                logger.warning("Sync interrupted before completion")

    def status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Get sync status for display.

        Returns:
            Dict with checkpoint, freshness and record counts
        """
        checkpoint = self.db.get_checkpoint()
        threshold = self.config.staleness_threshold_hours
        next_time = next_sync_time(checkpoint, threshold)

        return {
            "checkpoint": checkpoint.to_dict() if checkpoint else None,
            "last_sync": None if checkpoint is None or checkpoint.never_synced else checkpoint.last_sync,
            "sync_status": checkpoint.sync_status.value if checkpoint else None,
            "in_progress": bool(checkpoint and checkpoint.sync_status == SyncStatus.IN_PROGRESS),
            "hours_since_sync": hours_since_sync(checkpoint, now),
            "freshness": freshness_message(checkpoint, now),
            "is_stale": is_stale(checkpoint, threshold, now),
            "next_sync": next_time.isoformat() if next_time else None,
            "total_records": self.db.get_update_count(),
        }
