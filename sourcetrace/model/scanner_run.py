"""Aggregate record of a scan run.

The run keeps parallel collections of package provenances, their nested
provenance trees, per-provenance file listings and per-provenance scan
results. The collections are correlated by provenance identity, never by
position.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sourcetrace.model.package import Identifier
from sourcetrace.model.provenance import (
    ArtifactProvenance,
    KnownProvenance,
    NestedProvenance,
    RepositoryProvenance,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clear_vcs_path(
    provenance: ArtifactProvenance | RepositoryProvenance,
) -> ArtifactProvenance | RepositoryProvenance:
    """Return the provenance of the whole repository a provenance points into."""
    if isinstance(provenance, RepositoryProvenance) and provenance.vcs_info.path:
        return provenance.model_copy(
            update={"vcs_info": provenance.vcs_info.model_copy(update={"path": ""})}
        )
    return provenance


def _require_empty_vcs_path(provenance: ArtifactProvenance | RepositoryProvenance) -> None:
    if isinstance(provenance, RepositoryProvenance) and provenance.vcs_info.path:
        raise ValueError(f"The VCS path must be empty: {provenance.vcs_info.path}")


class Issue(BaseModel):
    """A problem that occurred while producing a result."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utc_now)
    source: str
    message: str
    severity: Literal["ERROR", "WARNING", "HINT"] = "ERROR"


class ScannerDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    configuration: str = ""


class LicenseFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    license: str


class CopyrightFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    statement: str


class ProvenanceScanResult(BaseModel):
    """Findings of one scanner for the source code of one provenance."""

    provenance: KnownProvenance
    start_time: datetime
    end_time: datetime
    scanner: ScannerDetails
    license_findings: list[LicenseFinding] = Field(default_factory=list)
    copyright_findings: list[CopyrightFinding] = Field(default_factory=list)
    additional_data: dict[str, str] = Field(default_factory=dict)
    issues: list[Issue] = Field(default_factory=list)


class FileEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    sha1: str


class FileListing(BaseModel):
    """The files contained in the source code of a provenance."""

    provenance: KnownProvenance
    files: list[FileEntry] = Field(default_factory=list)


class ProvenanceResolutionResult(BaseModel):
    """Outcome of resolving the package and nested provenance of one package."""

    id: Identifier
    package_provenance: KnownProvenance | None = None
    sub_repositories: dict[str, RepositoryProvenance] = Field(default_factory=dict)
    package_provenance_resolution_issue: Issue | None = None
    nested_provenance_resolution_issue: Issue | None = None

    @property
    def is_resolved(self) -> bool:
        return (
            self.package_provenance is not None
            and self.package_provenance_resolution_issue is None
            and self.nested_provenance_resolution_issue is None
        )

    def get_nested_provenance(self) -> NestedProvenance | None:
        if self.package_provenance is None or self.nested_provenance_resolution_issue is not None:
            return None
        return NestedProvenance(root=self.package_provenance, sub_repositories=self.sub_repositories)


class ScannerRun(BaseModel):
    """Everything a scan run produced, correlated by provenance."""

    start_time: datetime
    end_time: datetime
    scanner: ScannerDetails | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    provenances: list[ProvenanceResolutionResult] = Field(default_factory=list)
    nested_provenances: list[NestedProvenance] = Field(default_factory=list)
    provenance_files: list[FileListing] = Field(default_factory=list)
    provenance_scan_results: list[ProvenanceScanResult] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_correlation(self) -> ScannerRun:
        seen_ids: set[Identifier] = set()
        for result in self.provenances:
            if result.id in seen_ids:
                raise ValueError(f"Found multiple provenances for package '{result.id}'")
            seen_ids.add(result.id)

        package_provenances = {
            r.package_provenance for r in self.provenances if r.package_provenance is not None
        }
        for nested in self.nested_provenances:
            if nested.root not in package_provenances:
                raise ValueError(f"Nested provenance root {nested.root} has no package provenance")

        scannable = self._scannable_provenances()
        for listing in self.provenance_files:
            _require_empty_vcs_path(listing.provenance)
            if listing.provenance not in scannable:
                raise ValueError(f"File listing for unknown provenance {listing.provenance}")

        for scan_result in self.provenance_scan_results:
            _require_empty_vcs_path(scan_result.provenance)
            if scan_result.provenance not in scannable:
                raise ValueError(f"Scan result for unknown provenance {scan_result.provenance}")

        return self

    def _scannable_provenances(self) -> set[ArtifactProvenance | RepositoryProvenance]:
        scannable: set[ArtifactProvenance | RepositoryProvenance] = set()
        for nested in self.nested_provenances:
            scannable.add(clear_vcs_path(nested.root))
            scannable.update(nested.sub_repositories.values())
        return scannable

    # -- Lookups --------------------------------------------------------------

    def get_package_provenance(self, package_id: Identifier) -> ProvenanceResolutionResult | None:
        return next((r for r in self.provenances if r.id == package_id), None)

    def get_nested_provenance(
        self, root: ArtifactProvenance | RepositoryProvenance
    ) -> NestedProvenance | None:
        return next((n for n in self.nested_provenances if n.root == root), None)

    def get_file_listing(
        self, provenance: ArtifactProvenance | RepositoryProvenance
    ) -> FileListing | None:
        key = clear_vcs_path(provenance)
        return next((f for f in self.provenance_files if f.provenance == key), None)

    def get_scan_results(
        self, provenance: ArtifactProvenance | RepositoryProvenance
    ) -> list[ProvenanceScanResult]:
        key = clear_vcs_path(provenance)
        return [r for r in self.provenance_scan_results if r.provenance == key]

    def get_all_scan_results(self, package_id: Identifier) -> list[ProvenanceScanResult]:
        """Return the scan results of a package's root and nested repositories."""
        result = self.get_package_provenance(package_id)
        if result is None or result.package_provenance is None:
            return []
        nested = self.get_nested_provenance(result.package_provenance)
        if nested is None:
            return []

        scan_results: list[ProvenanceScanResult] = []
        for provenance in nested.get_provenances():
            scan_results.extend(self.get_scan_results(provenance))
        return scan_results
