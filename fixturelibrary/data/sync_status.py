"""
Track the outcome of the last catalog synchronization.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

STATUS_FILE_NAME = "sync_status.json"


class SyncStatus(BaseModel):
    """Status information for the last sync run."""
    mode: Optional[str] = Field(default=None, description="'refresh' (references only) or 'download' (full sync)")
    revision: Optional[str] = Field(default=None, description="Pinned catalog revision the run was based on")
    last_synced: Optional[datetime] = Field(default=None, description="When the run finished")
    changed_count: int = Field(default=0, description="Number of keys the run changed")
    failed_keys: List[str] = Field(default_factory=list, description="Keys that could not be downloaded")


class SyncStatusStore:
    """Manages storage of the sync status next to the manifest."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.status_file = Path(data_dir) / STATUS_FILE_NAME if data_dir is not None else None
        self._status: Optional[SyncStatus] = None
        self._load()

    def _load(self):
        """Load sync status from disk."""
        if self.status_file is not None and self.status_file.exists():
            try:
                data = json.loads(self.status_file.read_text(encoding="utf-8"))
                self._status = SyncStatus(**data)
            except Exception as e:
                logger.warning(f"Ignoring unreadable sync status {self.status_file}: {e}")
                self._status = SyncStatus()
        else:
            self._status = SyncStatus()

    def _save(self):
        """Save sync status to disk. Kept in memory only when no data dir is set."""
        if self.status_file is None:
            return
        try:
            self.status_file.parent.mkdir(parents=True, exist_ok=True)
            self.status_file.write_text(
                self._status.model_dump_json(indent=2, exclude_none=True),
                encoding="utf-8"
            )
        except OSError as e:
            logger.error(f"Failed to write sync status {self.status_file}: {e}")

    def get_status(self) -> SyncStatus:
        """Get the last recorded status."""
        if self._status is None:
            self._load()
        return self._status

    def record(self, mode: str, revision: Optional[str], changed_count: int, failed_keys: Optional[List[str]] = None):
        """Record a finished sync run."""
        self._status = SyncStatus(
            mode=mode,
            revision=revision,
            last_synced=datetime.now(timezone.utc),
            changed_count=changed_count,
            failed_keys=sorted(failed_keys or []),
        )
        self._save()
