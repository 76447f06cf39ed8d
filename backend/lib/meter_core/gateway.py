# backend/lib/meter_core/gateway.py
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from .errors import ImportDocumentError, SyncError
from .io import records_from_rows
from .models import Record

logger = logging.getLogger(__name__)


@runtime_checkable
class PersistenceGateway(Protocol):
    """Durable storage for the full record set."""

    name: str

    def load(self) -> List[Record]:
        """Fetch every record. Raises SyncError when the store is unreachable."""
        ...

    def save(self, records: Sequence[Record]) -> None:
        """Replace the stored set with records. Raises SyncError on failure."""
        ...


class InMemoryGateway:
    name = "memory"

    def __init__(self, records: Optional[Sequence[Record]] = None):
        self.records = list(records or [])
        self.saves = 0

    def load(self) -> List[Record]:
        return list(self.records)

    def save(self, records: Sequence[Record]) -> None:
        self.records = list(records)
        self.saves += 1


class LocalFileGateway:
    """
    JSON Lines snapshot on local disk, one record per line.

    Used as the last-known-good cache behind a remote store, or as the
    only store when no remote is configured.
    """
    name = "local"

    def __init__(self, path):
        self.path = Path(path)
        # Set while an existing snapshot could not be read or moved aside
        self.blocked = False

    def load(self) -> List[Record]:
        if not self.path.exists():
            self.blocked = False
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                lines = f.readlines()
        except (OSError, ValueError) as e:
            self.blocked = True
            raise SyncError(self.name, f"cannot read {self.path}: {e}") from e
        try:
            records = records_from_rows(json.loads(line) for line in lines if line.strip())
        except (ValueError, ImportDocumentError) as e:
            moved = self._quarantine()
            raise SyncError(self.name, f"{self.path} is corrupt ({e}), kept as {moved}") from e
        self.blocked = False
        return records

    def _quarantine(self) -> Path:
        """Move an unreadable snapshot aside so the next save cannot overwrite it."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.path.with_name(f"{self.path.name}.{stamp}.corrupt")
        try:
            os.replace(self.path, target)
        except OSError as e:
            self.blocked = True
            raise SyncError(self.name, f"{self.path} is corrupt and cannot be moved aside: {e}") from e
        logger.warning("Moved corrupt snapshot %s to %s", self.path, target)
        return target

    def save(self, records: Sequence[Record]) -> None:
        if self.blocked:
            raise SyncError(
                self.name, f"{self.path} could not be read, not overwriting it; fix or import to continue"
            )
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                for r in records:
                    f.write(json.dumps(r.to_dict(), ensure_ascii=False) + "\n")
            # Swap in the complete file so readers never see half a snapshot
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise SyncError(self.name, f"cannot write {self.path}: {e}") from e
        logger.debug("Wrote %d records to %s", len(records), self.path)
