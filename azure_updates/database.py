"""
Database operations for the Azure Updates service.
Manages the SQLite index (updates, labels, FTS5) and the sync checkpoint.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import IndexUnavailableError
from .logger import get_logger
from .models import (
    Availability,
    AzureUpdate,
    FilterOptions,
    SyncCheckpoint,
    SyncStatus,
)

logger = get_logger(__name__)

SCHEMA_VERSION = 1
SCHEMA_PATH = Path(__file__).parent / "schema.sql"

REQUIRED_TABLES = (
    "azure_updates",
    "update_tags",
    "update_categories",
    "update_products",
    "update_availabilities",
    "updates_fts",
    "sync_checkpoints",
    "schema_version",
)

# Label tables: (table, value column, model attribute)
LABEL_TABLES = (
    ("update_tags", "tag", "tags"),
    ("update_categories", "category", "product_categories"),
    ("update_products", "product", "products"),
)

UPDATE_COLUMNS = "id, title, description_html, description_md, status, locale, created, modified"


def utc_now_iso() -> str:
    """Current UTC time as ISO 8601 with a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Database:
    """SQLite database manager for the Azure Updates index."""

    def __init__(self, db_path: str = "~/.azure-updates/azure-updates.db"):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self):
        """Get database connection context manager.

        Commits on success, rolls back on error.

        Yields:
            sqlite3.Connection
        """
        conn = sqlite3.connect(
            self.db_path,
            timeout=5.0,
            check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA busy_timeout = 5000")
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            conn.close()

    def init(self, schema_path: Optional[Path] = None) -> None:
        """Initialize database schema.

        Args:
            schema_path: Optional path to schema.sql file

        Raises:
            IndexUnavailableError: If the file is not a usable database or
                carries an unsupported schema version
        """
        schema_path = schema_path or SCHEMA_PATH
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        logger.info(f"Initializing database at: {self.db_path}")

        schema_sql = schema_path.read_text(encoding="utf-8")

        try:
            with self.get_connection() as conn:
                # WAL lets searches read a consistent snapshot while sync writes
                conn.execute("PRAGMA journal_mode = WAL")
                conn.executescript(schema_sql)
                row = conn.execute(
                    "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
                ).fetchone()
        except sqlite3.DatabaseError as e:
            raise IndexUnavailableError(f"Cannot initialize index at {self.db_path}: {e}") from e

        version = row["version"] if row else 0
        if version != SCHEMA_VERSION:
            raise IndexUnavailableError(
                f"Unsupported schema version: {version}. Expected version {SCHEMA_VERSION}."
            )

        logger.info("Database initialized successfully")

    def ensure_available(self) -> None:
        """Check that every index table exists.

        Raises:
            IndexUnavailableError: If the index is missing or unreadable
        """
        try:
            with self.get_connection() as conn:
                rows = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type IN ('table', 'view')"
                ).fetchall()
        except sqlite3.DatabaseError as e:
            raise IndexUnavailableError(f"Index unreadable: {e}") from e

        present = {row["name"] for row in rows}
        missing = [name for name in REQUIRED_TABLES if name not in present]
        if missing:
            raise IndexUnavailableError(f"Index missing tables: {', '.join(missing)}")

    # ========================================
    # Updates
    # ========================================

    def upsert_batch(self, updates: List[AzureUpdate]) -> Tuple[int, int]:
        """Insert or update a batch of updates in one transaction.

        Existing ids are overwritten in place; labels, availabilities and
        the FTS row are replaced.

        Args:
            updates: Updates to write

        Returns:
            (inserted, updated) counts
        """
        if not updates:
            return 0, 0

        with self.get_connection() as conn:
            ids = [u.id for u in updates]
            existing = self._existing_ids(conn, ids)

            inserted = 0
            for update in updates:
                self._upsert_update(conn, update)
                if update.id not in existing:
                    inserted += 1
                    existing.add(update.id)

        updated = len(updates) - inserted
        logger.debug(f"Upserted batch: {inserted} inserted, {updated} updated")
        return inserted, updated

    def _existing_ids(self, conn: sqlite3.Connection, ids: List[str]) -> set:
        placeholders = ",".join("?" * len(ids))
        rows = conn.execute(
            f"SELECT id FROM azure_updates WHERE id IN ({placeholders})", ids
        ).fetchall()
        return {row["id"] for row in rows}

    def _upsert_update(self, conn: sqlite3.Connection, update: AzureUpdate) -> None:
        conn.execute("""
            INSERT INTO azure_updates (
                id, title, description_html, description_md,
                status, locale, created, modified
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                description_html = excluded.description_html,
                description_md = excluded.description_md,
                status = excluded.status,
                locale = excluded.locale,
                created = excluded.created,
                modified = excluded.modified
        """, (
            update.id, update.title, update.description, update.description_markdown,
            update.status, update.locale, update.created, update.modified
        ))

        for table, column, attr in LABEL_TABLES:
            conn.execute(f"DELETE FROM {table} WHERE update_id = ?", (update.id,))
            conn.executemany(
                f"INSERT OR IGNORE INTO {table} (update_id, {column}) VALUES (?, ?)",
                [(update.id, value) for value in getattr(update, attr)]
            )

        conn.execute("DELETE FROM update_availabilities WHERE update_id = ?", (update.id,))
        conn.executemany(
            "INSERT INTO update_availabilities (update_id, position, ring, date) VALUES (?, ?, ?, ?)",
            [(update.id, i, a.ring, a.date) for i, a in enumerate(update.availabilities)]
        )

        rowid = conn.execute(
            "SELECT rowid FROM azure_updates WHERE id = ?", (update.id,)
        ).fetchone()[0]
        conn.execute("DELETE FROM updates_fts WHERE rowid = ?", (rowid,))
        conn.execute("""
            INSERT INTO updates_fts (rowid, id, title, description_md, tags, categories, products)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            rowid, update.id, update.title, update.description_markdown or "",
            " ".join(update.tags), " ".join(update.product_categories), " ".join(update.products)
        ))

    def get_update(self, update_id: str) -> Optional[AzureUpdate]:
        """Get a single update by id.

        Args:
            update_id: Update id

        Returns:
            AzureUpdate or None
        """
        with self.get_connection() as conn:
            row = conn.execute(
                f"SELECT {UPDATE_COLUMNS} FROM azure_updates WHERE id = ?", (update_id,)
            ).fetchone()
            if row is None:
                return None
            return self.load_updates(conn, [row])[0]

    def load_updates(self, conn: sqlite3.Connection, rows: Iterable[sqlite3.Row]) -> List[AzureUpdate]:
        """Hydrate update rows with their labels and availabilities.

        Args:
            conn: Open connection (same snapshot as the rows)
            rows: Rows selected with UPDATE_COLUMNS

        Returns:
            AzureUpdate list in row order
        """
        rows = list(rows)
        if not rows:
            return []

        ids = [row["id"] for row in rows]
        placeholders = ",".join("?" * len(ids))

        labels: Dict[str, Dict[str, List[str]]] = {i: {} for i in ids}
        for table, column, attr in LABEL_TABLES:
            for label_row in conn.execute(
                f"SELECT update_id, {column} AS value FROM {table} "
                f"WHERE update_id IN ({placeholders}) ORDER BY {column}",
                ids
            ):
                labels[label_row["update_id"]].setdefault(attr, []).append(label_row["value"])

        availabilities: Dict[str, List[Availability]] = {i: [] for i in ids}
        for avail_row in conn.execute(
            f"SELECT update_id, ring, date FROM update_availabilities "
            f"WHERE update_id IN ({placeholders}) ORDER BY update_id, position",
            ids
        ):
            availabilities[avail_row["update_id"]].append(
                Availability(ring=avail_row["ring"], date=avail_row["date"])
            )

        return [
            AzureUpdate(
                id=row["id"],
                title=row["title"],
                description=row["description_html"] or "",
                description_markdown=row["description_md"],
                status=row["status"],
                locale=row["locale"],
                created=row["created"],
                modified=row["modified"],
                tags=labels[row["id"]].get("tags", []),
                product_categories=labels[row["id"]].get("product_categories", []),
                products=labels[row["id"]].get("products", []),
                availabilities=availabilities[row["id"]],
            )
            for row in rows
        ]

    def delete_update(self, update_id: str) -> None:
        """Delete an update and its dependent rows.

        Args:
            update_id: Update id
        """
        with self.get_connection() as conn:
            row = conn.execute("SELECT rowid FROM azure_updates WHERE id = ?", (update_id,)).fetchone()
            if row is None:
                return
            conn.execute("DELETE FROM updates_fts WHERE rowid = ?", (row[0],))
            conn.execute("DELETE FROM azure_updates WHERE id = ?", (update_id,))

    def get_update_count(self) -> int:
        """Get total number of stored updates."""
        with self.get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM azure_updates").fetchone()[0]

    def get_filter_options(self) -> FilterOptions:
        """Get distinct filter values present in the index.

        Returns:
            FilterOptions
        """
        with self.get_connection() as conn:
            def distinct(sql: str) -> List[str]:
                return [row[0] for row in conn.execute(sql).fetchall()]

            return FilterOptions(
                tags=distinct("SELECT DISTINCT tag FROM update_tags ORDER BY tag"),
                product_categories=distinct(
                    "SELECT DISTINCT category FROM update_categories ORDER BY category"
                ),
                products=distinct("SELECT DISTINCT product FROM update_products ORDER BY product"),
                availability_rings=distinct(
                    "SELECT DISTINCT ring FROM update_availabilities ORDER BY ring"
                ),
                statuses=distinct(
                    "SELECT DISTINCT status FROM azure_updates WHERE status IS NOT NULL ORDER BY status"
                ),
            )

    def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics.

        Returns:
            Dict with record/label counts and database size
        """
        with self.get_connection() as conn:
            page_count = conn.execute("PRAGMA page_count").fetchone()[0]
            page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            return {
                "update_count": conn.execute("SELECT COUNT(*) FROM azure_updates").fetchone()[0],
                "tag_count": conn.execute("SELECT COUNT(DISTINCT tag) FROM update_tags").fetchone()[0],
                "category_count": conn.execute(
                    "SELECT COUNT(DISTINCT category) FROM update_categories"
                ).fetchone()[0],
                "product_count": conn.execute(
                    "SELECT COUNT(DISTINCT product) FROM update_products"
                ).fetchone()[0],
                "database_size_kb": round(page_count * page_size / 1024),
            }

    # ========================================
    # Sync Checkpoint
    # ========================================

    def get_checkpoint(self) -> Optional[SyncCheckpoint]:
        """Get the singleton sync checkpoint.

        Returns:
            SyncCheckpoint or None if the row is missing
        """
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM sync_checkpoints WHERE id = 1").fetchone()
            return SyncCheckpoint.from_row(dict(row)) if row else None

    def try_start_sync(self) -> bool:
        """Move the checkpoint to in_progress unless a sync already holds it.

        Single conditional UPDATE, so two racing callers cannot both win.

        Returns:
            True if this caller acquired the sync
        """
        with self.get_connection() as conn:
            cursor = conn.execute("""
                UPDATE sync_checkpoints
                SET sync_status = ?, updated_at = ?
                WHERE id = 1 AND sync_status != ?
            """, (SyncStatus.IN_PROGRESS.value, utc_now_iso(), SyncStatus.IN_PROGRESS.value))
            return cursor.rowcount > 0

    def complete_sync_success(
        self,
        last_sync: str,
        record_count: int,
        duration_ms: int,
        high_watermark: Optional[str] = None
    ) -> None:
        """Record a successful sync.

        Args:
            last_sync: When the sync finished; staleness is measured from here
            record_count: Total records in the index
            duration_ms: Sync duration
            high_watermark: Newest upstream modified timestamp stored.
                None keeps the previous value.
        """
        with self.get_connection() as conn:
            conn.execute("""
                UPDATE sync_checkpoints SET
                    last_sync = ?,
                    high_watermark = COALESCE(?, high_watermark),
                    sync_status = ?,
                    record_count = ?,
                    duration_ms = ?,
                    error_message = NULL,
                    updated_at = ?
                WHERE id = 1
            """, (
                last_sync, high_watermark, SyncStatus.SUCCESS.value,
                record_count, duration_ms, utc_now_iso()
            ))

    def complete_sync_failure(self, error_message: str, record_count: int, duration_ms: int) -> None:
        """Record a failed sync. last_sync is left untouched.

        Args:
            error_message: Failure reason
            record_count: Total records in the index (includes committed batches)
            duration_ms: Time spent on the attempt
        """
        with self.get_connection() as conn:
            conn.execute("""
                UPDATE sync_checkpoints SET
                    sync_status = ?,
                    record_count = ?,
                    duration_ms = ?,
                    error_message = ?,
                    updated_at = ?
                WHERE id = 1
            """, (SyncStatus.FAILED.value, record_count, duration_ms, error_message, utc_now_iso()))

    def reset_stale_in_progress(self, reason: str = "Interrupted before completion") -> bool:
        """Mark an in_progress checkpoint left by a dead process as failed.

        Args:
            reason: Error message to record

        Returns:
            True if a checkpoint was reset
        """
        with self.get_connection() as conn:
            cursor = conn.execute("""
                UPDATE sync_checkpoints
                SET sync_status = ?, error_message = ?, updated_at = ?
                WHERE id = 1 AND sync_status = ?
            """, (SyncStatus.FAILED.value, reason, utc_now_iso(), SyncStatus.IN_PROGRESS.value))
            reset = cursor.rowcount > 0

        if reset:
            logger.warning(f"Reset interrupted sync checkpoint: {reason}")
        return reset

    def set_checkpoint(self, checkpoint: SyncCheckpoint) -> None:
        """Overwrite the checkpoint row (used for restores and tests).

        Args:
            checkpoint: Checkpoint values to store
        """
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO sync_checkpoints (
                    id, last_sync, high_watermark, sync_status,
                    record_count, duration_ms, error_message, updated_at
                ) VALUES (1, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    last_sync = excluded.last_sync,
                    high_watermark = excluded.high_watermark,
                    sync_status = excluded.sync_status,
                    record_count = excluded.record_count,
                    duration_ms = excluded.duration_ms,
                    error_message = excluded.error_message,
                    updated_at = excluded.updated_at
            """, (
                checkpoint.last_sync, checkpoint.high_watermark, checkpoint.sync_status.value,
                checkpoint.record_count, checkpoint.duration_ms, checkpoint.error_message, utc_now_iso()
            ))

