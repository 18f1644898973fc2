"""Shared working trees with exclusive, scoped access per repository.

Working trees are expensive to create, so one working tree per repository
identity (VCS type + normalized URL) is kept and reused. Access to a working
tree is serialized: a caller holds it exclusively for the duration of a
``use()`` block and it is released however the block exits.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, ContextManager, Iterator

from sourcetrace.model.package import VcsInfo, VcsType
from sourcetrace.settings import settings
from sourcetrace.utils import compute_string_hash, ensure_dir
from sourcetrace.vcs import get_vcs
from sourcetrace.vcs.base import VersionControlSystem, WorkingTree

logger = logging.getLogger(__name__)


class WorkingTreeCache(ABC):
    """Hands out exclusive access to working trees."""

    @abstractmethod
    def use(self, vcs_info: VcsInfo) -> ContextManager[tuple[VersionControlSystem, WorkingTree]]:
        """Exclusively use the working tree of the repository *vcs_info* points into.

        Usage::

            with cache.use(vcs_info) as (vcs, working_tree):
                vcs.update_working_tree(working_tree, revision)
        """

    @abstractmethod
    def shutdown(self) -> None:
        """Release all working trees and their local storage."""


class DefaultWorkingTreeCache(WorkingTreeCache):
    """Working tree cache backed by directories on the local disk.

    At most one scope per repository identity is active at any time; other
    callers for the same identity block until it exits. Distinct identities
    proceed in parallel. When more than ``max_working_trees`` trees exist, the
    least recently used idle tree is evicted.
    """

    def __init__(
        self,
        root_dir: Path | str | None = None,
        max_working_trees: int | None = None,
        vcs_provider: Callable[[VcsType], VersionControlSystem] = get_vcs,
    ) -> None:
        root = root_dir if root_dir is not None else settings.working_tree_root
        self._root_dir = Path(root) if root is not None else None
        self._owns_root_dir = self._root_dir is None
        self._max_working_trees = max_working_trees or settings.max_working_trees
        self._vcs_provider = vcs_provider

        self._lock = threading.Lock()
        self._tree_locks: dict[str, threading.Lock] = {}
        # Callers holding or waiting for a tree lock, per identity.
        self._users: dict[str, int] = {}
        self._trees: OrderedDict[str, WorkingTree] = OrderedDict()
        self._terminated = False

    # -- Scoped access --------------------------------------------------------

    @contextmanager
    def use(self, vcs_info: VcsInfo) -> Iterator[tuple[VersionControlSystem, WorkingTree]]:
        normalized = vcs_info.normalize()
        key = normalized.identity()
        vcs = self._vcs_provider(normalized.type)

        tree_lock = self._enter(key)
        try:
            with tree_lock:
                self._check_running()
                working_tree = self._get_working_tree(key, normalized, vcs)
                yield vcs, working_tree
        finally:
            self._leave(key)

    def _check_running(self) -> None:
        if self._terminated:
            raise RuntimeError("The working tree cache has been shut down")

    def _enter(self, key: str) -> threading.Lock:
        with self._lock:
            self._check_running()
            self._users[key] = self._users.get(key, 0) + 1
            return self._tree_locks.setdefault(key, threading.Lock())

    def _leave(self, key: str) -> None:
        with self._lock:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                if key not in self._trees:
                    self._tree_locks.pop(key, None)

    def _get_working_tree(
        self, key: str, vcs_info: VcsInfo, vcs: VersionControlSystem
    ) -> WorkingTree:
        # The caller holds the tree lock for *key*, so nobody else creates this tree.
        with self._lock:
            working_tree = self._trees.get(key)

        if working_tree is not None:
            if working_tree.is_valid():
                with self._lock:
                    self._trees.move_to_end(key)
                return working_tree
            logger.warning(
                "Working tree for %s in %s is no longer valid, recreating it",
                vcs_info.url, working_tree.directory,
            )

        with self._lock:
            stale = [self._trees.pop(key)] if working_tree is not None else []
            stale.extend(self._evict_idle_trees())
            root_dir = self._get_root_dir()
        self._delete(stale)

        directory = Path(tempfile.mkdtemp(prefix=f"{compute_string_hash(key)[:24]}-", dir=root_dir))
        logger.info("Creating working tree for %s in %s", vcs_info.url, directory)
        root_info = vcs_info.model_copy(update={"revision": "", "path": ""})
        try:
            working_tree = vcs.init_working_tree(directory, root_info)
        except BaseException:
            shutil.rmtree(directory, ignore_errors=True)
            raise

        with self._lock:
            self._trees[key] = working_tree
        return working_tree

    def _get_root_dir(self) -> Path:
        if self._root_dir is None:
            self._root_dir = Path(tempfile.mkdtemp(prefix="sourcetrace-worktrees-"))
        return ensure_dir(self._root_dir)

    # -- Eviction -------------------------------------------------------------

    def _evict_idle_trees(self) -> list[WorkingTree]:
        """Unregister idle trees to make room for one more and return them.

        Must be called with ``self._lock`` held. The returned trees are no
        longer reachable, so their directories can be deleted after releasing
        the lock.
        """
        evicted: list[WorkingTree] = []
        for key in list(self._trees):
            if len(self._trees) < self._max_working_trees:
                break
            if self._users.get(key):
                continue
            working_tree = self._trees.pop(key)
            self._tree_locks.pop(key, None)
            logger.info("Evicting working tree for %s", working_tree.vcs_info.url)
            evicted.append(working_tree)

        if len(self._trees) >= self._max_working_trees:
            logger.warning(
                "All %d working trees are in use, exceeding the limit of %d",
                len(self._trees), self._max_working_trees,
            )
        return evicted

    @staticmethod
    def _delete(working_trees: list[WorkingTree]) -> None:
        for working_tree in working_trees:
            shutil.rmtree(working_tree.directory, ignore_errors=True)

    # -- Housekeeping ---------------------------------------------------------

    def working_tree_count(self) -> int:
        with self._lock:
            return len(self._trees)

    def shutdown(self) -> None:
        """Wait for active scopes, then delete all working trees.

        Must not be called from inside a ``use()`` block.
        """
        with self._lock:
            self._terminated = True
            keys = list(self._trees)

        for key in keys:
            with self._lock:
                tree_lock = self._tree_locks.get(key)
            if tree_lock is None:
                continue
            with tree_lock:
                with self._lock:
                    working_tree = self._trees.pop(key, None)
                    self._tree_locks.pop(key, None)
                if working_tree is not None:
                    self._delete([working_tree])

        if self._owns_root_dir and self._root_dir is not None:
            shutil.rmtree(self._root_dir, ignore_errors=True)
        logger.info("Working tree cache shut down, removed %d working trees", len(keys))
