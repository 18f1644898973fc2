"""VCS drivers and the registry mapping VCS types to drivers."""

from __future__ import annotations

import threading
from typing import Callable

from sourcetrace.model.package import VcsType
from sourcetrace.utils import UnsupportedVcsError
from sourcetrace.vcs.base import VersionControlSystem, WorkingTree, find_version_tags
from sourcetrace.vcs.git import GitVcs, GitWorkingTree

VcsFactory = Callable[[], VersionControlSystem]

_factories: dict[VcsType, VcsFactory] = {VcsType.GIT: GitVcs}
_factories_lock = threading.Lock()


def register_vcs(vcs_type: VcsType, factory: VcsFactory) -> None:
    """Register (or replace) the driver factory for a VCS type."""
    with _factories_lock:
        _factories[vcs_type] = factory


def unregister_vcs(vcs_type: VcsType) -> None:
    with _factories_lock:
        _factories.pop(vcs_type, None)


def get_vcs(vcs_type: VcsType) -> VersionControlSystem:
    """Return a driver instance for *vcs_type*.

    Raises UnsupportedVcsError if no driver is registered for the type or its
    command line client is not installed.
    """
    with _factories_lock:
        factory = _factories.get(vcs_type)
    if factory is None:
        raise UnsupportedVcsError(f"No VCS driver available for type '{vcs_type.value}'")

    vcs = factory()
    if not vcs.is_available():
        raise UnsupportedVcsError(
            f"The '{vcs.command}' command required for {vcs_type.value} repositories is not available"
        )
    return vcs


__all__ = [
    "GitVcs",
    "GitWorkingTree",
    "VersionControlSystem",
    "WorkingTree",
    "find_version_tags",
    "get_vcs",
    "register_vcs",
    "unregister_vcs",
]
