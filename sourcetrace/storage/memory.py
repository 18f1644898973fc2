"""In-memory provenance storages.

Results are serialized to JSON-compatible dicts on write and validated back
into model objects on read, so a stored entry behaves like one loaded from a
persistent backend.
"""

from __future__ import annotations

import logging

from pydantic import TypeAdapter

from sourcetrace.model.package import Identifier, RemoteArtifact, VcsInfo
from sourcetrace.model.provenance import (
    NestedProvenanceResolutionResult,
    PackageProvenanceResolutionResult,
    RepositoryProvenance,
)
from sourcetrace.storage.base import NestedProvenanceStorage, PackageProvenanceStorage
from sourcetrace.storage.records import RecordKey, RecordStore

logger = logging.getLogger(__name__)

_PACKAGE_NAMESPACE = "package_provenance"
_NESTED_NAMESPACE = "nested_provenance"

_package_result_adapter: TypeAdapter[PackageProvenanceResolutionResult] = TypeAdapter(
    PackageProvenanceResolutionResult
)


def _origin_key(package_id: Identifier, origin: RemoteArtifact | VcsInfo) -> RecordKey:
    coordinates = package_id.to_coordinates()
    if isinstance(origin, RemoteArtifact):
        return (coordinates, "artifact", origin.url, origin.hash.algorithm, origin.hash.value)
    return (coordinates, "vcs", origin.type.value, origin.url, origin.revision, origin.path)


def _root_key(root: RepositoryProvenance) -> RecordKey:
    vcs = root.vcs_info
    return (vcs.type.value, vcs.url, vcs.revision, vcs.path, root.resolved_revision)


class InMemoryPackageProvenanceStorage(PackageProvenanceStorage):
    """Package provenance storage backed by a RecordStore."""

    def __init__(self, store: RecordStore | None = None) -> None:
        self._store = store or RecordStore()

    def read_provenance(
        self, package_id: Identifier, origin: RemoteArtifact | VcsInfo
    ) -> PackageProvenanceResolutionResult | None:
        record = self._store.get(_PACKAGE_NAMESPACE, _origin_key(package_id, origin))
        if record is None:
            return None
        return _package_result_adapter.validate_python(record)

    def read_provenances(self, package_id: Identifier) -> list[PackageProvenanceResolutionResult]:
        records = self._store.list_by_group(_PACKAGE_NAMESPACE, package_id.to_coordinates())
        return [_package_result_adapter.validate_python(r) for r in records]

    def put_provenance(
        self,
        package_id: Identifier,
        origin: RemoteArtifact | VcsInfo,
        result: PackageProvenanceResolutionResult,
    ) -> None:
        data = _package_result_adapter.dump_python(result, mode="json")
        self._store.put(_PACKAGE_NAMESPACE, _origin_key(package_id, origin), data)
        logger.debug("Stored %s for %s", result.result_type, package_id)

    def count(self) -> int:
        return self._store.count(_PACKAGE_NAMESPACE)

    def clear(self) -> None:
        self._store.clear(_PACKAGE_NAMESPACE)


class InMemoryNestedProvenanceStorage(NestedProvenanceStorage):
    """Nested provenance storage backed by a RecordStore."""

    def __init__(self, store: RecordStore | None = None) -> None:
        self._store = store or RecordStore()

    def read_nested_provenance(
        self, root: RepositoryProvenance
    ) -> NestedProvenanceResolutionResult | None:
        record = self._store.get(_NESTED_NAMESPACE, _root_key(root))
        if record is None:
            return None
        return NestedProvenanceResolutionResult.model_validate(record)

    def put_nested_provenance(
        self, root: RepositoryProvenance, result: NestedProvenanceResolutionResult
    ) -> None:
        self._store.put(_NESTED_NAMESPACE, _root_key(root), result.model_dump(mode="json"))
        logger.debug(
            "Stored nested provenance for %s (fixed revisions only: %s)",
            root.vcs_info.url, result.has_only_fixed_revisions,
        )

    def count(self) -> int:
        return self._store.count(_NESTED_NAMESPACE)

    def clear(self) -> None:
        self._store.clear(_NESTED_NAMESPACE)
