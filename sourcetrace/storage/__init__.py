"""Provenance storage contracts and in-memory implementations.

Core components:
    PackageProvenanceStorage          - (package id, origin) -> resolution result
    NestedProvenanceStorage           - root repository -> nested resolution result
    InMemoryPackageProvenanceStorage  - dict-backed package provenance storage
    InMemoryNestedProvenanceStorage   - dict-backed nested provenance storage
    RecordStore                       - thread-safe record store shared by both
"""

from sourcetrace.storage.base import NestedProvenanceStorage, PackageProvenanceStorage
from sourcetrace.storage.memory import (
    InMemoryNestedProvenanceStorage,
    InMemoryPackageProvenanceStorage,
)
from sourcetrace.storage.records import RecordStore
from sourcetrace.utils import StorageError

__all__ = [
    "NestedProvenanceStorage",
    "PackageProvenanceStorage",
    "InMemoryNestedProvenanceStorage",
    "InMemoryPackageProvenanceStorage",
    "RecordStore",
    "StorageError",
]
