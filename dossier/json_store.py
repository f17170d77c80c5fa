"""
JSON Snapshot Store - shared persistence for the mutable dossier stores

Records are kept in one JSON document per store:

    {"version": "1.0", "updated_at": "...", "records": {id: {...}}}

Writes are atomic (temp file + fsync + rename). Every failure surfaces as
DossierStoreError naming the operation, never as a silent empty result.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Any, Optional, TypeVar

from .dossier_model import DossierStoreError

logger = logging.getLogger("json_store")

STORE_VERSION = "1.0"

T = TypeVar("T")


class JsonSnapshotStore:
    """Base class: a lock-guarded dict of records persisted as one file."""

    def __init__(self, store_file: Path):
        self._store_file = Path(store_file)
        self._lock = threading.RLock()

    def _read_records(self, operation: str, requirement_id: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        if not self._store_file.exists():
            return {}

        try:
            with open(self._store_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Read of {self._store_file.name} failed: {e}")
            raise DossierStoreError(
                operation,
                f"Failed to read {self._store_file.name}: {e}",
                requirement_id=requirement_id,
            ) from e

        return data.get("records", {})

    def _parse_record(
        self,
        parser: Callable[[Dict[str, Any]], T],
        record: Any,
        operation: str,
    ) -> T:
        """Parse one stored record. A malformed record is a store failure."""
        requirement_id = record.get("requirement_id") if isinstance(record, dict) else None
        try:
            return parser(record)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed record in {self._store_file.name}: {e!r}")
            raise DossierStoreError(
                operation,
                f"Malformed record in {self._store_file.name}: {e}",
                requirement_id=requirement_id,
            ) from e

    def _write_records(
        self,
        records: Dict[str, Dict[str, Any]],
        operation: str,
        requirement_id: Optional[str] = None,
    ) -> None:
        try:
            self._store_file.parent.mkdir(parents=True, exist_ok=True)

            data = {
                "version": STORE_VERSION,
                "updated_at": datetime.now(timezone.utc).isoformat(),
                "records": records,
            }

            # Atomic write
            temp_file = self._store_file.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            temp_file.replace(self._store_file)

            logger.debug(f"Saved {len(records)} records to {self._store_file.name}")
        except OSError as e:
            logger.error(f"Write of {self._store_file.name} failed: {e}")
            raise DossierStoreError(
                operation,
                f"Failed to write {self._store_file.name}: {e}",
                requirement_id=requirement_id,
            ) from e
