"""Storage contracts consumed by the provenance resolvers.

Reads return None for absent entries and never raise for absence. Writes are
last-write-wins per key. A backend that is unavailable raises StorageError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from sourcetrace.model.package import Identifier, RemoteArtifact, VcsInfo
from sourcetrace.model.provenance import (
    NestedProvenanceResolutionResult,
    PackageProvenanceResolutionResult,
    RepositoryProvenance,
)


class PackageProvenanceStorage(ABC):
    """Stores package provenance resolution results.

    Results are keyed by the package identifier and the exact origin
    descriptor (source artifact or VCS info) that was attempted.
    """

    @abstractmethod
    def read_provenance(
        self, package_id: Identifier, origin: RemoteArtifact | VcsInfo
    ) -> PackageProvenanceResolutionResult | None:
        """Return the stored result for the package and origin, or None."""

    @abstractmethod
    def read_provenances(self, package_id: Identifier) -> list[PackageProvenanceResolutionResult]:
        """Return all stored results for a package."""

    @abstractmethod
    def put_provenance(
        self,
        package_id: Identifier,
        origin: RemoteArtifact | VcsInfo,
        result: PackageProvenanceResolutionResult,
    ) -> None:
        """Store a result, replacing any previous one for the same key."""


class NestedProvenanceStorage(ABC):
    """Stores nested provenance resolution results keyed by root repository."""

    @abstractmethod
    def read_nested_provenance(
        self, root: RepositoryProvenance
    ) -> NestedProvenanceResolutionResult | None:
        """Return the stored result for the root, or None."""

    @abstractmethod
    def put_nested_provenance(
        self, root: RepositoryProvenance, result: NestedProvenanceResolutionResult
    ) -> None:
        """Store a result, replacing any previous one for the same root."""
