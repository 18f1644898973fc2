"""In-memory record store backing the provenance storages."""

from __future__ import annotations

import copy
import threading
from typing import Any

RecordKey = tuple[str, ...]


class RecordStore:
    """Thread-safe dict-based store of JSON-compatible records.

    Records live in namespaces and are addressed by a tuple key. The first key
    element groups records, so all records of one package can be listed.
    Stored and returned records are deep copies; the last write for a key wins.
    """

    def __init__(self) -> None:
        self._store: dict[tuple[str, RecordKey], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def put(self, namespace: str, key: RecordKey, data: dict[str, Any]) -> None:
        """Replace whatever is stored under *key* with a copy of *data*."""
        record = copy.deepcopy(data)
        with self._lock:
            self._store[(namespace, key)] = record

    def get(self, namespace: str, key: RecordKey) -> dict[str, Any] | None:
        """Return a copy of the record under *key*, or None."""
        with self._lock:
            record = self._store.get((namespace, key))
        return copy.deepcopy(record) if record is not None else None

    def list_by_group(self, namespace: str, group: str) -> list[dict[str, Any]]:
        """Return all records of a namespace whose key starts with *group*."""
        with self._lock:
            records = [
                v for (ns, key), v in self._store.items()
                if ns == namespace and key and key[0] == group
            ]
        return copy.deepcopy(records)

    def count(self, namespace: str | None = None) -> int:
        """Count records, optionally filtered by namespace."""
        with self._lock:
            if namespace is None:
                return len(self._store)
            return sum(1 for (ns, _) in self._store if ns == namespace)

    def clear(self, namespace: str | None = None) -> None:
        """Remove all records, optionally only those of one namespace."""
        with self._lock:
            if namespace is None:
                self._store.clear()
                return
            for k in [k for k in self._store if k[0] == namespace]:
                del self._store[k]
