"""
Sync checkpoint and sync result models
"""
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

# Seed value written into a fresh database; means "never synced"
INITIAL_SYNC_CHECKPOINT = "1970-01-01T00:00:00.0000000Z"


class SyncStatus(str, Enum):
    """Outcome of the most recent sync attempt."""
    SUCCESS = "success"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


@dataclass
class SyncCheckpoint:
    """Singleton record of the last sync attempt."""
    last_sync: str  # ISO 8601
    sync_status: SyncStatus
    record_count: int = 0
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    high_watermark: Optional[str] = None  # newest upstream modified stored
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def never_synced(self) -> bool:
        return self.last_sync == INITIAL_SYNC_CHECKPOINT

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SyncCheckpoint":
        return cls(
            last_sync=row["last_sync"],
            sync_status=SyncStatus(row["sync_status"]),
            record_count=row["record_count"],
            duration_ms=row["duration_ms"],
            error_message=row["error_message"],
            high_watermark=row["high_watermark"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["sync_status"] = self.sync_status.value
        return d


@dataclass
class SyncResult:
    """Outcome of one SyncController.sync() call."""
    success: bool
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    checkpoint: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
