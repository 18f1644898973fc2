"""VCS driver abstraction.

A driver initializes working trees for a repository, moves them to a
revision, answers whether a revision is fixed and lists the repositories
nested inside a working tree.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from sourcetrace.model.package import Package, VcsInfo, VcsType
from sourcetrace.utils import VcsOperationError

logger = logging.getLogger(__name__)


class WorkingTree(ABC):
    """A local checkout of a repository, reusable across operations."""

    def __init__(self, directory: Path, vcs_info: VcsInfo) -> None:
        self.directory = Path(directory)
        self.vcs_info = vcs_info

    @property
    def vcs_type(self) -> VcsType:
        return self.vcs_info.type

    def is_valid(self) -> bool:
        return self.directory.is_dir()

    @abstractmethod
    def get_revision(self) -> str:
        """Return the resolved revision currently checked out."""

    @abstractmethod
    def get_nested(self, path: str = "") -> dict[str, VcsInfo]:
        """Return the repositories nested directly inside *path*.

        Only repositories already checked out are reported. Keys are paths
        relative to the working tree root; each VcsInfo carries the nested
        repository's resolved revision.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.directory}, {self.vcs_info.url})"


class VersionControlSystem(ABC):
    """Driver for one VCS type."""

    type: VcsType = VcsType.UNKNOWN
    command: str = ""
    default_branch_revision: str = "HEAD"

    def is_available(self) -> bool:
        return bool(self.command) and shutil.which(self.command) is not None

    @abstractmethod
    def init_working_tree(self, directory: Path, vcs_info: VcsInfo) -> WorkingTree:
        """Prepare *directory* as an empty working tree for *vcs_info*."""

    @abstractmethod
    def resolve_revision(self, working_tree: WorkingTree, revision: str) -> str:
        """Resolve a possibly moving revision to a fixed one without checking it out."""

    @abstractmethod
    def update_working_tree(self, working_tree: WorkingTree, revision: str) -> None:
        """Check out *revision* without any nested repositories.

        Raises VcsOperationError on failure.
        """

    @abstractmethod
    def update_nested(self, working_tree: WorkingTree, path: str = "") -> None:
        """Check out the repositories nested directly inside *path*.

        Each one is moved to the revision pinned by its parent. Deeper levels
        are not touched.
        """

    @abstractmethod
    def is_fixed_revision(self, working_tree: WorkingTree, revision: str) -> bool:
        """Return whether *revision* will always point to the same snapshot."""

    @abstractmethod
    def list_remote_tags(self, working_tree: WorkingTree) -> list[str]:
        """Return the tag names available in the remote repository."""

    # -- Revision candidates --------------------------------------------------

    def get_revision_candidates(
        self,
        working_tree: WorkingTree,
        package: Package,
        allow_moving_revisions: bool = True,
    ) -> list[str]:
        """Return revisions to try for a package, most specific first.

        The requested revision comes first, then tags matching the package
        version, then the default branch if nothing else was found and moving
        revisions are allowed.
        """
        candidates: list[str] = []

        revision = package.vcs_processed.revision
        if revision:
            if allow_moving_revisions or self.is_fixed_revision(working_tree, revision):
                candidates.append(revision)
            else:
                logger.info(
                    "Ignoring moving revision '%s' of %s", revision, package.id.to_coordinates()
                )

        version = package.id.version
        if version:
            try:
                tags = self.list_remote_tags(working_tree)
            except VcsOperationError as exc:
                logger.warning("Could not list tags of %s: %s", working_tree.vcs_info.url, exc)
                tags = []

            for tag in find_version_tags(tags, package.id.name, version):
                if tag not in candidates:
                    candidates.append(tag)

        if not candidates and allow_moving_revisions:
            candidates.append(self.default_branch_revision)

        return candidates


def find_version_tags(tags: list[str], name: str, version: str) -> list[str]:
    """Return the tags naming *version*, ordered by how conventional the pattern is."""
    patterns = [
        version,
        f"v{version}",
        f"{name}-{version}",
        f"{name}-v{version}",
        f"{name}_{version}",
        f"release-{version}",
        f"rel-{version}",
    ]
    by_name = {tag.lower(): tag for tag in tags}

    matches: list[str] = []
    for pattern in patterns:
        tag = by_name.get(pattern.lower())
        if tag is not None and tag not in matches:
            matches.append(tag)
    return matches
