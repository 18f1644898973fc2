"""sourcetrace provenance resolution.

Core components:
    DefaultWorkingTreeCache           - exclusive, scoped access to shared working trees
    DefaultPackageProvenanceResolver  - package -> one verified provenance
    DefaultNestedProvenanceResolver   - provenance -> nested repository tree
    ProvenanceResolutionPipeline      - concurrent resolution of many packages
"""

from sourcetrace.provenance.working_tree_cache import DefaultWorkingTreeCache, WorkingTreeCache
from sourcetrace.provenance.package_resolver import (
    DefaultPackageProvenanceResolver,
    PackageProvenanceResolver,
)
from sourcetrace.provenance.nested_resolver import (
    DefaultNestedProvenanceResolver,
    NestedProvenanceResolver,
)
from sourcetrace.provenance.pipeline import ProvenanceResolutionPipeline, create_scanner_run

__all__ = [
    "DefaultWorkingTreeCache",
    "WorkingTreeCache",
    "DefaultPackageProvenanceResolver",
    "PackageProvenanceResolver",
    "DefaultNestedProvenanceResolver",
    "NestedProvenanceResolver",
    "ProvenanceResolutionPipeline",
    "create_scanner_run",
]
