"""Resolution of the repositories nested inside a provenance.

An artifact never has nested repositories. For a repository, a stored
result is trusted only if it was recorded with fixed revisions only;
otherwise the working tree is updated and the nested repositories are
checked out level by level, enumerated and stored. Descending into a
repository that is already an ancestor in the current chain is an error.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque

from sourcetrace.model.provenance import (
    ArtifactProvenance,
    NestedProvenance,
    NestedProvenanceResolutionResult,
    RepositoryProvenance,
)
from sourcetrace.provenance.working_tree_cache import WorkingTreeCache
from sourcetrace.settings import settings
from sourcetrace.storage.base import NestedProvenanceStorage
from sourcetrace.utils import CyclicRepositoryError, StorageError, normalize_relative_path
from sourcetrace.vcs.base import VersionControlSystem, WorkingTree

logger = logging.getLogger(__name__)


class NestedProvenanceResolver(ABC):
    @abstractmethod
    def resolve_nested_provenance(
        self, provenance: ArtifactProvenance | RepositoryProvenance
    ) -> NestedProvenance:
        """Resolve the nested provenances of *provenance*.

        For an ArtifactProvenance the result only contains the artifact. For a
        RepositoryProvenance it also contains nested repositories such as Git
        submodules.
        """


class DefaultNestedProvenanceResolver(NestedProvenanceResolver):
    """Nested provenance resolver backed by storage and a working tree cache.

    Nested repositories pinned by the parent repository are assumed to be
    fixed, so new results are stored with ``has_only_fixed_revisions=True``.
    Pass ``assume_fixed_nested_revisions=False`` to ask the VCS driver instead.
    """

    def __init__(
        self,
        storage: NestedProvenanceStorage,
        working_tree_cache: WorkingTreeCache,
        assume_fixed_nested_revisions: bool | None = None,
    ) -> None:
        self._storage = storage
        self._working_tree_cache = working_tree_cache
        self._assume_fixed_nested_revisions = (
            assume_fixed_nested_revisions if assume_fixed_nested_revisions is not None
            else settings.assume_fixed_nested_revisions
        )

    def resolve_nested_provenance(
        self, provenance: ArtifactProvenance | RepositoryProvenance
    ) -> NestedProvenance:
        if isinstance(provenance, ArtifactProvenance):
            return NestedProvenance(root=provenance)
        return self._resolve_nested_repository(provenance)

    def _resolve_nested_repository(self, provenance: RepositoryProvenance) -> NestedProvenance:
        url = provenance.vcs_info.url

        stored = self._read_stored(provenance)
        if stored is not None:
            if stored.has_only_fixed_revisions:
                logger.info(
                    "Found a stored nested provenance for %s with only fixed revisions, "
                    "skipping resolution.", url,
                )
                return stored.nested_provenance
            logger.info(
                "Found a stored nested provenance for %s with at least one non-fixed revision, "
                "restarting resolution.", url,
            )
        else:
            logger.info("Could not find a stored nested provenance for %s, attempting resolution.", url)

        with self._working_tree_cache.use(provenance.vcs_info) as (vcs, working_tree):
            vcs.update_working_tree(working_tree, provenance.resolved_revision)
            sub_repositories = self._check_out_nested(vcs, working_tree, provenance)

            has_only_fixed_revisions = self._has_only_fixed_revisions(
                vcs, working_tree, provenance, sub_repositories
            )

        nested_provenance = NestedProvenance(root=provenance, sub_repositories=sub_repositories)
        self._store(
            provenance,
            NestedProvenanceResolutionResult(
                nested_provenance=nested_provenance,
                has_only_fixed_revisions=has_only_fixed_revisions,
            ),
        )
        return nested_provenance

    def _check_out_nested(
        self,
        vcs: VersionControlSystem,
        working_tree: WorkingTree,
        provenance: RepositoryProvenance,
    ) -> dict[str, RepositoryProvenance]:
        """Check out nested repositories one level at a time, breadth first.

        Each nested repository carries the identities of its ancestors. One
        that repeats an ancestor raises CyclicRepositoryError before its own
        nested repositories are checked out.
        """
        sub_repositories: dict[str, RepositoryProvenance] = {}
        pending: deque[tuple[str, tuple[str, ...]]] = deque([("", (provenance.vcs_info.identity(),))])

        while pending:
            parent, ancestors = pending.popleft()
            vcs.update_nested(working_tree, parent)

            for raw_path, nested_vcs in working_tree.get_nested(parent).items():
                path = normalize_relative_path(raw_path)
                identity = nested_vcs.identity()
                if identity in ancestors:
                    raise CyclicRepositoryError(
                        f"The nested repository at '{path}' references its ancestor {nested_vcs.url}"
                    )

                sub_repositories[path] = RepositoryProvenance(
                    vcs_info=nested_vcs, resolved_revision=nested_vcs.revision
                )
                pending.append((path, ancestors + (identity,)))

        return sub_repositories

    def _has_only_fixed_revisions(
        self,
        vcs: VersionControlSystem,
        working_tree: WorkingTree,
        provenance: RepositoryProvenance,
        sub_repositories: dict[str, RepositoryProvenance],
    ) -> bool:
        if self._assume_fixed_nested_revisions:
            return True

        revisions = [provenance.requested_revision or provenance.resolved_revision]
        revisions.extend(p.resolved_revision for p in sub_repositories.values())
        return all(vcs.is_fixed_revision(working_tree, revision) for revision in revisions)

    # -- Storage access -------------------------------------------------------

    def _read_stored(self, provenance: RepositoryProvenance) -> NestedProvenanceResolutionResult | None:
        try:
            return self._storage.read_nested_provenance(provenance)
        except StorageError as exc:
            logger.warning("Could not read stored nested provenance for %s: %s", provenance.vcs_info.url, exc)
            return None

    def _store(self, provenance: RepositoryProvenance, result: NestedProvenanceResolutionResult) -> None:
        try:
            self._storage.put_nested_provenance(provenance, result)
        except StorageError as exc:
            logger.warning("Could not store nested provenance for %s: %s", provenance.vcs_info.url, exc)
