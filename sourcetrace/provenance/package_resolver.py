"""Resolution of a package to one concrete, verified provenance.

Origins are tried in the caller's priority order and the first one that
resolves wins. Every newly computed result, success or failure, is written
back to the package provenance storage.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

import httpx

from sourcetrace.model.package import Package, RemoteArtifact, SourceCodeOrigin, VcsInfo
from sourcetrace.model.provenance import (
    ArtifactProvenance,
    PackageProvenanceResolutionResult,
    RepositoryProvenance,
    ResolvedArtifactProvenance,
    ResolvedRepositoryProvenance,
    UnresolvedPackageProvenance,
)
from sourcetrace.provenance.working_tree_cache import WorkingTreeCache
from sourcetrace.settings import settings
from sourcetrace.storage.base import PackageProvenanceStorage
from sourcetrace.utils import (
    ProvenanceResolutionError,
    SourceTraceError,
    StorageError,
    UnresolvableOriginError,
    UnsupportedVcsError,
    VcsOperationError,
)

logger = logging.getLogger(__name__)


class PackageProvenanceResolver(ABC):
    @abstractmethod
    def resolve_provenance(
        self,
        package: Package,
        source_code_origin_priority: Sequence[SourceCodeOrigin] | None = None,
    ) -> ArtifactProvenance | RepositoryProvenance:
        """Resolve the provenance of *package* from the first origin that works.

        Raises UnresolvableOriginError if no origin can be resolved.
        """


class DefaultPackageProvenanceResolver(PackageProvenanceResolver):
    """Verifies source artifacts over HTTP and VCS revisions in working trees."""

    def __init__(
        self,
        storage: PackageProvenanceStorage,
        working_tree_cache: WorkingTreeCache,
        *,
        http_timeout: float | None = None,
        allow_moving_revisions: bool | None = None,
        recheck_moving_revisions: bool | None = None,
    ) -> None:
        self._storage = storage
        self._working_tree_cache = working_tree_cache
        self._http_timeout = http_timeout if http_timeout is not None else settings.http_timeout
        self._allow_moving_revisions = (
            allow_moving_revisions if allow_moving_revisions is not None
            else settings.allow_moving_revisions
        )
        self._recheck_moving_revisions = (
            recheck_moving_revisions if recheck_moving_revisions is not None
            else settings.recheck_moving_revisions
        )

    def resolve_provenance(
        self,
        package: Package,
        source_code_origin_priority: Sequence[SourceCodeOrigin] | None = None,
    ) -> ArtifactProvenance | RepositoryProvenance:
        priority = list(source_code_origin_priority or settings.source_code_origins)
        errors: dict[SourceCodeOrigin, str] = {}

        for origin in priority:
            try:
                if origin == SourceCodeOrigin.ARTIFACT:
                    if package.source_artifact.is_empty:
                        errors[origin] = "No source artifact information available"
                        continue
                    return self._resolve_source_artifact(package)

                if origin == SourceCodeOrigin.VCS:
                    try:
                        vcs_info = package.vcs_processed
                    except ValueError as exc:
                        errors[origin] = f"Invalid VCS information: {exc}"
                        continue
                    if vcs_info.is_empty:
                        errors[origin] = "No VCS information available"
                        continue
                    return self._resolve_vcs(package, vcs_info)
            except SourceTraceError as exc:
                logger.info(
                    "Could not resolve %s origin of %s: %s",
                    origin.value, package.id.to_coordinates(), exc,
                )
                errors[origin] = str(exc)

        raise UnresolvableOriginError(package.id.to_coordinates(), priority, errors)

    # -- Storage access -------------------------------------------------------

    def _read_stored(
        self, package: Package, origin: RemoteArtifact | VcsInfo
    ) -> PackageProvenanceResolutionResult | None:
        try:
            return self._storage.read_provenance(package.id, origin)
        except StorageError as exc:
            logger.warning(
                "Could not read stored provenance of %s, resolving it: %s",
                package.id.to_coordinates(), exc,
            )
            return None

    def _store(
        self,
        package: Package,
        origin: RemoteArtifact | VcsInfo,
        result: PackageProvenanceResolutionResult,
    ) -> None:
        try:
            self._storage.put_provenance(package.id, origin, result)
        except StorageError as exc:
            logger.warning(
                "Could not store provenance result of %s: %s", package.id.to_coordinates(), exc
            )

    # -- Source artifacts -----------------------------------------------------

    def _resolve_source_artifact(self, package: Package) -> ArtifactProvenance:
        artifact = package.source_artifact
        coordinates = package.id.to_coordinates()

        stored = self._read_stored(package, artifact)
        if isinstance(stored, ResolvedArtifactProvenance):
            logger.info("Found a stored source artifact resolution for %s, skipping resolution.", coordinates)
            return stored.provenance
        if isinstance(stored, UnresolvedPackageProvenance):
            logger.info(
                "A previous source artifact resolution for %s failed (%s), restarting resolution.",
                coordinates, stored.message,
            )

        try:
            response = httpx.head(artifact.url, timeout=self._http_timeout, follow_redirects=True)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            message = f"Could not verify existence of source artifact at {artifact.url}: {exc}"
        else:
            if response.is_success:
                provenance = ArtifactProvenance(source_artifact=artifact)
                self._store(package, artifact, ResolvedArtifactProvenance(provenance=provenance))
                return provenance
            message = (
                f"Could not verify existence of source artifact at {artifact.url}. "
                f"HTTP request got response {response.status_code}."
            )

        self._store(package, artifact, UnresolvedPackageProvenance(message=message))
        raise ProvenanceResolutionError(message)

    # -- Version control ------------------------------------------------------

    def _resolve_vcs(self, package: Package, vcs_info: VcsInfo) -> RepositoryProvenance:
        coordinates = package.id.to_coordinates()

        stored = self._read_stored(package, vcs_info)
        if isinstance(stored, ResolvedRepositoryProvenance):
            if stored.is_fixed_revision or not self._recheck_moving_revisions:
                logger.info("Found a stored repository resolution for %s, skipping resolution.", coordinates)
                return stored.provenance
            logger.info(
                "Found a stored repository resolution for %s with the non-fixed revision '%s', "
                "restarting resolution.",
                coordinates, stored.clone_revision,
            )
        elif isinstance(stored, UnresolvedPackageProvenance):
            logger.info(
                "A previous repository resolution for %s failed (%s), restarting resolution.",
                coordinates, stored.message,
            )

        try:
            result = self._resolve_revision(package, vcs_info)
        except (VcsOperationError, UnsupportedVcsError) as exc:
            self._store(package, vcs_info, UnresolvedPackageProvenance(message=str(exc)))
            raise

        self._store(package, vcs_info, result)
        return result.provenance

    def _resolve_revision(self, package: Package, vcs_info: VcsInfo) -> ResolvedRepositoryProvenance:
        coordinates = package.id.to_coordinates()

        with self._working_tree_cache.use(vcs_info) as (vcs, working_tree):
            candidates = vcs.get_revision_candidates(
                working_tree, package, allow_moving_revisions=self._allow_moving_revisions
            )
            if not candidates:
                raise VcsOperationError(f"Could not find any revision candidates for {coordinates}")

            messages: list[str] = []
            for index, revision in enumerate(candidates, start=1):
                logger.info(
                    "Trying revision candidate '%s' (%d of %d) for %s.",
                    revision, index, len(candidates), coordinates,
                )
                try:
                    vcs.update_working_tree(working_tree, revision)
                    resolved_revision = working_tree.get_revision()
                    is_fixed_revision = vcs.is_fixed_revision(working_tree, revision)
                except VcsOperationError as exc:
                    messages.append(f"Could not resolve revision candidate '{revision}': {exc}")
                    continue

                provenance = RepositoryProvenance(
                    vcs_info=vcs_info.model_copy(update={"revision": revision}),
                    resolved_revision=resolved_revision,
                )
                return ResolvedRepositoryProvenance(
                    provenance=provenance,
                    clone_revision=revision,
                    is_fixed_revision=is_fixed_revision,
                )

        raise VcsOperationError(
            f"Could not resolve revision for package '{coordinates}': {'; '.join(messages)}"
        )
