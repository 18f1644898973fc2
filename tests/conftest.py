"""Shared test fixtures for the sourcetrace test suite."""

import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

import pytest

# Ensure test environment variables are set before any settings import
os.environ.setdefault("SOURCETRACE_MAX_WORKING_TREES", "8")

from sourcetrace.model.package import Identifier, Package, RemoteArtifact, VcsInfo, VcsType  # noqa: E402
from sourcetrace.provenance.working_tree_cache import DefaultWorkingTreeCache  # noqa: E402
from sourcetrace.storage.memory import (  # noqa: E402
    InMemoryNestedProvenanceStorage,
    InMemoryPackageProvenanceStorage,
)
from sourcetrace.utils import VcsOperationError, normalize_relative_path  # noqa: E402
from sourcetrace.vcs.base import VersionControlSystem, WorkingTree  # noqa: E402

REPO_URL = "https://example.com/repo.git"
LIB_URL = "https://example.com/lib.git"


# ---------------------------------------------------------------------------
# Fake VCS driver
# ---------------------------------------------------------------------------

@dataclass
class FakeRemote:
    """A remote repository: refs map names to commits, nested maps commits to submodules."""

    refs: dict[str, str] = field(default_factory=dict)
    tags: set[str] = field(default_factory=set)
    nested: dict[str, dict[str, VcsInfo]] = field(default_factory=dict)

    def commits(self) -> set[str]:
        return set(self.refs.values()) | set(self.nested)


class FakeWorkingTree(WorkingTree):
    def __init__(self, directory: Path, vcs_info: VcsInfo, remote: FakeRemote) -> None:
        super().__init__(directory, vcs_info)
        self.remote = remote
        self.revision = ""
        # normalized path -> (parent path, reported path, nested repository)
        self.checked_out: dict[str, tuple[str, str, VcsInfo]] = {}

    def get_revision(self) -> str:
        return self.revision

    def get_nested(self, path: str = "") -> dict[str, VcsInfo]:
        return {
            reported: nested
            for parent, reported, nested in self.checked_out.values()
            if parent == path
        }


class FakeVcs(VersionControlSystem):
    """In-memory VCS driver that records every operation."""

    type = VcsType.GIT
    command = "fake"

    def __init__(self, remotes: dict[str, FakeRemote], delay: float = 0.0) -> None:
        self.remotes = remotes
        self.delay = delay
        self.updates: list[tuple[str, str]] = []
        self.nested_updates: list[tuple[str, str]] = []
        self.initialized: list[str] = []
        self.active: dict[str, int] = {}
        self.max_active: dict[str, int] = {}
        self.on_update = None
        self._lock = threading.Lock()

    def _remote(self, working_tree: WorkingTree) -> FakeRemote:
        return self._remote_for(working_tree.vcs_info.url)

    def _remote_for(self, url: str) -> FakeRemote:
        try:
            return self.remotes[url]
        except KeyError:
            raise VcsOperationError(f"Repository {url} not found") from None

    def init_working_tree(self, directory: Path, vcs_info: VcsInfo) -> FakeWorkingTree:
        directory.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self.initialized.append(vcs_info.url)
        return FakeWorkingTree(directory, vcs_info, self.remotes.get(vcs_info.url, FakeRemote()))

    def resolve_revision(self, working_tree: WorkingTree, revision: str) -> str:
        remote = self._remote(working_tree)
        if revision in remote.commits():
            return revision
        if revision in remote.refs:
            return remote.refs[revision]
        raise VcsOperationError(f"Unknown revision '{revision}'")

    def update_working_tree(self, working_tree, revision) -> None:
        url = working_tree.vcs_info.url
        with self._lock:
            self.updates.append((url, revision))
            self.active[url] = self.active.get(url, 0) + 1
            self.max_active[url] = max(self.max_active.get(url, 0), self.active[url])
        try:
            if self.on_update is not None:
                self.on_update(url, revision)
            if self.delay:
                time.sleep(self.delay)
            working_tree.revision = self.resolve_revision(working_tree, revision)
            working_tree.checked_out.clear()
        finally:
            with self._lock:
                self.active[url] -= 1

    def update_nested(self, working_tree, path="") -> None:
        if path:
            _, _, parent = working_tree.checked_out[path]
            remote, revision = self._remote_for(parent.url), parent.revision
        else:
            remote, revision = self._remote(working_tree), working_tree.revision
        with self._lock:
            self.nested_updates.append((working_tree.vcs_info.url, path))

        for nested_path, nested in remote.nested.get(revision, {}).items():
            reported = f"{path}/{nested_path}" if path else nested_path
            working_tree.checked_out[normalize_relative_path(reported)] = (path, reported, nested)

    def is_fixed_revision(self, working_tree: WorkingTree, revision: str) -> bool:
        # Commit ids are fixed wherever they come from, tags only in their own remote.
        if any(revision in remote.commits() for remote in self.remotes.values()):
            return True
        return revision in self._remote(working_tree).tags

    def list_remote_tags(self, working_tree: WorkingTree) -> list[str]:
        return sorted(self._remote(working_tree).tags)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def remotes():
    """A repository whose ``main`` branch points to abc123 with one submodule."""
    return {
        REPO_URL: FakeRemote(
            refs={"main": "abc123", "v1.0.0": "abc123"},
            tags={"v1.0.0"},
            nested={
                "abc123": {
                    "vendor/lib": VcsInfo(type=VcsType.GIT, url=LIB_URL, revision="def456"),
                },
            },
        ),
        LIB_URL: FakeRemote(refs={"main": "def456"}),
    }


@pytest.fixture
def fake_vcs(remotes):
    return FakeVcs(remotes)


@pytest.fixture
def working_tree_cache(tmp_path, fake_vcs):
    cache = DefaultWorkingTreeCache(root_dir=tmp_path / "trees", vcs_provider=lambda _type: fake_vcs)
    yield cache
    cache.shutdown()


@pytest.fixture
def package_storage():
    return InMemoryPackageProvenanceStorage()


@pytest.fixture
def nested_storage():
    return InMemoryNestedProvenanceStorage()


@pytest.fixture
def vcs_package():
    return Package(
        id=Identifier(type="Maven", namespace="com.example", name="repo", version="1.0.0"),
        vcs=VcsInfo(type=VcsType.GIT, url=REPO_URL, revision="main"),
    )


@pytest.fixture
def artifact_package():
    return Package(
        id=Identifier(type="NPM", namespace="", name="left-pad", version="1.3.0"),
        source_artifact=RemoteArtifact(url="https://registry.example.com/left-pad-1.3.0.tgz"),
        vcs=VcsInfo(type=VcsType.GIT, url=REPO_URL, revision="main"),
    )
