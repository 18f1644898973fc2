"""Git driver built on the ``git`` command line client."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path

from sourcetrace.model.package import VcsInfo, VcsType, normalize_vcs_url
from sourcetrace.settings import settings
from sourcetrace.utils import VcsOperationError
from sourcetrace.vcs.base import VersionControlSystem, WorkingTree

logger = logging.getLogger(__name__)

_COMMIT_ID = re.compile(r"^[0-9a-f]{40}$", re.IGNORECASE)

# Printed once per nested repository by ``git submodule foreach``.
_NESTED_FORMAT = 'echo "$displaypath|$(git rev-parse HEAD)|$(git remote get-url origin 2>/dev/null)"'


def is_commit_id(revision: str) -> bool:
    return bool(_COMMIT_ID.match(revision))


def _git_env() -> dict[str, str]:
    env = os.environ.copy()
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    env.setdefault("GIT_ASKPASS", "true")
    return env


def run_git(args: list[str], cwd: Path, timeout: float) -> str:
    """Run a git command and return its stdout.

    Raises VcsOperationError if git fails, times out or is missing.
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=True,
            env=_git_env(),
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise VcsOperationError(f"'git {' '.join(args)}' timed out after {timeout}s") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise VcsOperationError(f"'git {' '.join(args)}' failed: {stderr}") from exc
    except FileNotFoundError as exc:
        raise VcsOperationError("The git command is not available") from exc
    return result.stdout


class GitWorkingTree(WorkingTree):
    def __init__(self, directory: Path, vcs_info: VcsInfo, timeout: float) -> None:
        super().__init__(directory, vcs_info)
        self._timeout = timeout

    def _git(self, *args: str) -> str:
        return run_git(list(args), self.directory, self._timeout)

    def is_valid(self) -> bool:
        return (self.directory / ".git").exists()

    def get_revision(self) -> str:
        return self._git("rev-parse", "HEAD").strip()

    def get_nested(self, path: str = "") -> dict[str, VcsInfo]:
        directory = self.directory / path if path else self.directory
        if not (directory / ".gitmodules").is_file():
            return {}

        output = run_git(["submodule", "foreach", "--quiet", _NESTED_FORMAT], directory, self._timeout)

        nested: dict[str, VcsInfo] = {}
        for line in output.splitlines():
            parts = line.strip().split("|", 2)
            if len(parts) != 3 or not parts[0]:
                continue
            nested_path, revision, url = parts
            nested[f"{path}/{nested_path}" if path else nested_path] = VcsInfo(
                type=VcsType.GIT,
                url=normalize_vcs_url(url),
                revision=revision.strip(),
            )
        return nested


class GitVcs(VersionControlSystem):
    """Git implementation of the VCS driver."""

    type = VcsType.GIT
    command = "git"

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else settings.git_command_timeout

    def init_working_tree(self, directory: Path, vcs_info: VcsInfo) -> GitWorkingTree:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        if not (directory / ".git").exists():
            run_git(["init", "--quiet"], directory, self.timeout)
            run_git(["remote", "add", "origin", vcs_info.url], directory, self.timeout)
        else:
            run_git(["remote", "set-url", "origin", vcs_info.url], directory, self.timeout)

        root_info = vcs_info.model_copy(update={"revision": "", "path": ""})
        return GitWorkingTree(directory, root_info, self.timeout)

    def _ls_remote(
        self, working_tree: WorkingTree, *patterns: str, options: tuple[str, ...] = ()
    ) -> list[tuple[str, str]]:
        args = ["ls-remote", *options, "origin", *patterns]
        output = run_git(args, working_tree.directory, self.timeout)
        refs: list[tuple[str, str]] = []
        for line in output.splitlines():
            parts = line.split()
            if len(parts) >= 2:
                refs.append((parts[0], parts[1]))
        return refs

    def resolve_revision(self, working_tree: WorkingTree, revision: str) -> str:
        if is_commit_id(revision):
            return revision.lower()

        refs = self._ls_remote(working_tree, revision, f"refs/tags/{revision}^{{}}")
        if not refs:
            raise VcsOperationError(
                f"Revision '{revision}' does not exist in {working_tree.vcs_info.url}"
            )

        # A dereferenced annotated tag points to the commit, not the tag object.
        for commit, ref in refs:
            if ref.endswith("^{}"):
                return commit
        return refs[0][0]

    def update_working_tree(self, working_tree: WorkingTree, revision: str) -> None:
        directory = working_tree.directory
        logger.info("Updating %s to revision '%s'", working_tree.vcs_info.url, revision)

        try:
            run_git(["fetch", "--quiet", "--depth", "1", "origin", revision], directory, self.timeout)
            target = "FETCH_HEAD"
        except VcsOperationError as exc:
            logger.info("Shallow fetch of '%s' failed, fetching all refs: %s", revision, exc)
            run_git(
                ["fetch", "--quiet", "--tags", "origin", "+refs/heads/*:refs/remotes/origin/*"],
                directory,
                self.timeout,
            )
            target = self._find_local_commit(working_tree, revision)

        run_git(["checkout", "--quiet", "--force", "--detach", target], directory, self.timeout)
        run_git(["clean", "-ffdx", "--quiet"], directory, self.timeout)

    def update_nested(self, working_tree: WorkingTree, path: str = "") -> None:
        directory = working_tree.directory / path if path else working_tree.directory
        if not (directory / ".gitmodules").is_file():
            return

        logger.debug("Updating submodules of %s in '%s'", working_tree.vcs_info.url, path or ".")
        run_git(["submodule", "update", "--init", "--force", "--quiet"], directory, self.timeout)

    def _find_local_commit(self, working_tree: WorkingTree, revision: str) -> str:
        for ref in (revision, f"origin/{revision}", f"refs/tags/{revision}"):
            try:
                output = run_git(
                    ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"],
                    working_tree.directory,
                    self.timeout,
                )
            except VcsOperationError:
                continue
            if output.strip():
                return output.strip()
        raise VcsOperationError(
            f"Revision '{revision}' does not exist in {working_tree.vcs_info.url}"
        )

    def is_fixed_revision(self, working_tree: WorkingTree, revision: str) -> bool:
        if is_commit_id(revision):
            return True
        return revision in self.list_remote_tags(working_tree)

    def list_remote_tags(self, working_tree: WorkingTree) -> list[str]:
        return [
            ref.removeprefix("refs/tags/")
            for _, ref in self._ls_remote(working_tree, options=("--tags", "--refs"))
        ]
