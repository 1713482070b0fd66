"""Durable local store: key-indexed JSON tables, one file per collection.

Rows are plain dicts as produced by SyncableRecord.to_row(). Reads and writes
are synchronous and never touch the network. Passing no data_dir keeps every
table in memory only.
"""
import copy
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional, Any

from mealsync.infra.paths import TOMBSTONES, table_file, quarantine_file
from mealsync.utilities.timestamps import utcnow, to_iso

logger = logging.getLogger(__name__)


def _order_key(row: Dict[str, Any]):
    return (row.get("created_at") or "", row.get("updated_at") or "", row.get("id") or "")


class LocalStore:
    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else None
        if self.data_dir is not None:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._quarantine: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = RLock()

    # ---------------- persistence ----------------
    def _table(self, collection: str) -> Dict[str, Dict[str, Any]]:
        table = self._tables.get(collection)
        if table is None:
            table = self._load(collection)
            self._tables[collection] = table
        return table

    def _load(self, collection: str) -> Dict[str, Dict[str, Any]]:
        if self.data_dir is None:
            return {}
        path = table_file(self.data_dir, collection)
        if not path.exists():
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                rows = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            # Keep the unreadable file for inspection; the table starts empty.
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            aside = path.with_name(f"{path.stem}.corrupt-{stamp}{path.suffix}")
            os.replace(path, aside)
            logger.error(f"Local table {collection} is not valid JSON ({e}); moved to {aside.name}")
            return {}
        if not isinstance(rows, list):
            logger.error(f"Local table {collection} has unexpected shape {type(rows).__name__}; ignoring it")
            return {}
        table = {}
        for row in rows:
            if isinstance(row, dict) and isinstance(row.get("id"), str) and isinstance(row.get("payload", {}), dict):
                table[row["id"]] = row
            else:
                self._quarantine_row(collection, row, "malformed row")
        return table

    def _flush(self, collection: str):
        if self.data_dir is None:
            return
        path = table_file(self.data_dir, collection)
        rows = sorted(self._tables.get(collection, {}).values(), key=_order_key)
        fd, tmp = tempfile.mkstemp(dir=str(self.data_dir), prefix=f".{collection}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(rows, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # ---------------- rows ----------------
    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._table(collection).get(record_id)
            return copy.deepcopy(row) if row is not None else None

    def put(self, collection: str, row: Dict[str, Any]) -> None:
        with self._lock:
            self._table(collection)[row["id"]] = copy.deepcopy(row)
            self._flush(collection)

    def delete(self, collection: str, record_id: str) -> bool:
        with self._lock:
            removed = self._table(collection).pop(record_id, None) is not None
            if removed:
                self._flush(collection)
            return removed

    def all(self, collection: str) -> List[Dict[str, Any]]:
        """All rows, oldest first."""
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._table(collection).values()]
        return sorted(rows, key=_order_key)

    def unsynced(self, collection: str) -> List[Dict[str, Any]]:
        """Rows not yet accepted by the server, in creation order."""
        return [r for r in self.all(collection) if not r.get("synced_to_server")]

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._table(collection))

    # ---------------- quarantine ----------------
    def _quarantine_row(self, collection: str, row: Any, reason: str):
        entry = {"reason": reason, "quarantined_at": to_iso(utcnow()), "row": row}
        self._quarantine.setdefault(collection, []).append(entry)
        if self.data_dir is not None:
            path = quarantine_file(self.data_dir, collection)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(self._quarantine[collection], f, indent=2, ensure_ascii=False, default=str)
        logger.error(f"Quarantined row in {collection}: {reason}")

    def quarantine(self, collection: str, record_id: str, reason: str) -> None:
        """Move an undecodable row out of its table; it is kept, never silently dropped."""
        with self._lock:
            row = self._table(collection).pop(record_id, None)
            if row is None:
                return
            self._flush(collection)
            self._quarantine_row(collection, row, reason)

    def quarantined(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._quarantine.get(collection, []))

    # ---------------- tombstones ----------------
    def add_tombstone(self, collection: str, record_id: str) -> None:
        """Remember a local delete whose remote delete is still pending."""
        with self._lock:
            key = f"{collection}/{record_id}"
            self._table(TOMBSTONES)[key] = {
                "id": key,
                "collection": collection,
                "record_id": record_id,
                "created_at": to_iso(utcnow()),
            }
            self._flush(TOMBSTONES)

    def remove_tombstone(self, collection: str, record_id: str) -> None:
        with self._lock:
            if self._table(TOMBSTONES).pop(f"{collection}/{record_id}", None) is not None:
                self._flush(TOMBSTONES)

    def has_tombstone(self, collection: str, record_id: str) -> bool:
        with self._lock:
            return f"{collection}/{record_id}" in self._table(TOMBSTONES)

    def tombstones(self, collection: str) -> List[str]:
        """Record ids deleted locally but not yet remotely, oldest first."""
        with self._lock:
            rows = [r for r in self._table(TOMBSTONES).values() if r["collection"] == collection]
        return [r["record_id"] for r in sorted(rows, key=_order_key)]


__all__ = ['LocalStore']
