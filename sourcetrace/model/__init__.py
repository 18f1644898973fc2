"""sourcetrace data model.

Core components:
    Package, Identifier, RemoteArtifact, VcsInfo - resolution inputs
    ArtifactProvenance, RepositoryProvenance     - resolved provenances
    NestedProvenance                             - a root plus nested repositories
    ScannerRun                                   - aggregate record of a scan run
"""

from sourcetrace.model.package import (
    EMPTY_ARTIFACT,
    EMPTY_VCS_INFO,
    Hash,
    Identifier,
    Package,
    RemoteArtifact,
    SourceCodeOrigin,
    VcsInfo,
    VcsType,
    normalize_vcs_url,
)
from sourcetrace.model.provenance import (
    ArtifactProvenance,
    KnownProvenance,
    NestedProvenance,
    NestedProvenanceResolutionResult,
    PackageProvenanceResolutionResult,
    RepositoryProvenance,
    ResolvedArtifactProvenance,
    ResolvedRepositoryProvenance,
    UnresolvedPackageProvenance,
)
from sourcetrace.model.scanner_run import (
    CopyrightFinding,
    FileEntry,
    FileListing,
    Issue,
    LicenseFinding,
    ProvenanceResolutionResult,
    ProvenanceScanResult,
    ScannerDetails,
    ScannerRun,
    clear_vcs_path,
)

__all__ = [
    "EMPTY_ARTIFACT",
    "EMPTY_VCS_INFO",
    "Hash",
    "Identifier",
    "Package",
    "RemoteArtifact",
    "SourceCodeOrigin",
    "VcsInfo",
    "VcsType",
    "normalize_vcs_url",
    "ArtifactProvenance",
    "KnownProvenance",
    "NestedProvenance",
    "NestedProvenanceResolutionResult",
    "PackageProvenanceResolutionResult",
    "RepositoryProvenance",
    "ResolvedArtifactProvenance",
    "ResolvedRepositoryProvenance",
    "UnresolvedPackageProvenance",
    "CopyrightFinding",
    "FileEntry",
    "FileListing",
    "Issue",
    "LicenseFinding",
    "ProvenanceResolutionResult",
    "ProvenanceScanResult",
    "ScannerDetails",
    "ScannerRun",
    "clear_vcs_path",
]
