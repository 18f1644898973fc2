"""Concurrent provenance resolution for many packages.

Each package is resolved as an independent unit of work on a bounded
thread pool: first its package provenance, then its nested provenance.
A failure is recorded as an issue on that package's result and never
aborts the resolution of other packages.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Iterable, Sequence

from sourcetrace.model.package import Package, SourceCodeOrigin
from sourcetrace.model.provenance import NestedProvenance
from sourcetrace.model.scanner_run import (
    FileListing,
    Issue,
    ProvenanceResolutionResult,
    ProvenanceScanResult,
    ScannerDetails,
    ScannerRun,
)
from sourcetrace.provenance.nested_resolver import NestedProvenanceResolver
from sourcetrace.provenance.package_resolver import PackageProvenanceResolver
from sourcetrace.settings import settings
from sourcetrace.utils import SourceTraceError

logger = logging.getLogger(__name__)


def _issue_from(source: str, exc: Exception) -> Issue:
    return Issue(source=source, message=str(exc) or type(exc).__name__)


class ProvenanceResolutionPipeline:
    """Resolve package and nested provenances for a set of packages."""

    def __init__(
        self,
        package_resolver: PackageProvenanceResolver,
        nested_resolver: NestedProvenanceResolver,
        max_workers: int | None = None,
    ) -> None:
        self._package_resolver = package_resolver
        self._nested_resolver = nested_resolver
        self._max_workers = max_workers or settings.resolution_workers

    def resolve(
        self,
        packages: Iterable[Package],
        source_code_origin_priority: Sequence[SourceCodeOrigin] | None = None,
    ) -> list[ProvenanceResolutionResult]:
        """Resolve all packages concurrently; results keep the input order."""
        unique: dict[str, Package] = {}
        for package in packages:
            coordinates = package.id.to_coordinates()
            if coordinates in unique:
                logger.warning("Ignoring duplicate package %s", coordinates)
                continue
            unique[coordinates] = package

        if not unique:
            return []

        logger.info("Resolving provenance of %d packages with %d workers", len(unique), self._max_workers)
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="provenance") as executor:
            futures = [
                executor.submit(self.resolve_package, package, source_code_origin_priority)
                for package in unique.values()
            ]
            results = [future.result() for future in futures]

        resolved = sum(1 for r in results if r.is_resolved)
        logger.info("Resolved provenance of %d of %d packages", resolved, len(results))
        return results

    def resolve_package(
        self,
        package: Package,
        source_code_origin_priority: Sequence[SourceCodeOrigin] | None = None,
    ) -> ProvenanceResolutionResult:
        """Resolve a single package, converting failures into issues."""
        try:
            provenance = self._package_resolver.resolve_provenance(package, source_code_origin_priority)
        except Exception as exc:
            self._log_failure("package", package, exc)
            return ProvenanceResolutionResult(
                id=package.id,
                package_provenance_resolution_issue=_issue_from("PackageProvenanceResolver", exc),
            )

        try:
            nested = self._nested_resolver.resolve_nested_provenance(provenance)
        except Exception as exc:
            self._log_failure("nested", package, exc)
            return ProvenanceResolutionResult(
                id=package.id,
                package_provenance=provenance,
                nested_provenance_resolution_issue=_issue_from("NestedProvenanceResolver", exc),
            )

        return ProvenanceResolutionResult(
            id=package.id,
            package_provenance=provenance,
            sub_repositories=nested.sub_repositories,
        )

    @staticmethod
    def _log_failure(kind: str, package: Package, exc: Exception) -> None:
        if isinstance(exc, SourceTraceError):
            logger.warning("Could not resolve %s provenance of %s: %s", kind, package.id, exc)
        else:
            logger.error(
                "Unexpected error resolving %s provenance of %s", kind, package.id, exc_info=exc
            )


def create_scanner_run(
    results: Sequence[ProvenanceResolutionResult],
    start_time: datetime,
    end_time: datetime,
    scanner: ScannerDetails | None = None,
    provenance_files: Sequence[FileListing] = (),
    provenance_scan_results: Sequence[ProvenanceScanResult] = (),
) -> ScannerRun:
    """Fold resolution results and per-provenance outputs into a ScannerRun.

    Packages sharing a provenance contribute one nested provenance.
    """
    nested_by_root: dict[object, NestedProvenance] = {}
    for result in results:
        nested = result.get_nested_provenance()
        if nested is not None and nested.root not in nested_by_root:
            nested_by_root[nested.root] = nested

    return ScannerRun(
        start_time=start_time,
        end_time=end_time,
        scanner=scanner,
        provenances=list(results),
        nested_provenances=list(nested_by_root.values()),
        provenance_files=list(provenance_files),
        provenance_scan_results=list(provenance_scan_results),
    )
