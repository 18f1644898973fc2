"""Tests for the Git driver with a mocked git command."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from sourcetrace.model import Identifier, Package, VcsInfo, VcsType
from sourcetrace.utils import UnsupportedVcsError, VcsOperationError
from sourcetrace.vcs import GitVcs, GitWorkingTree, find_version_tags, get_vcs, register_vcs, unregister_vcs
from sourcetrace.vcs.git import is_commit_id, run_git

COMMIT = "a" * 40
TAG_OBJECT = "b" * 40
TAGGED_COMMIT = "c" * 40
URL = "https://example.com/repo.git"
RUN = "sourcetrace.vcs.git.subprocess.run"
WHICH = "sourcetrace.vcs.base.shutil.which"


def _completed(stdout=""):
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout, stderr="")


def _failed(cmd, stderr="fatal: error"):
    return subprocess.CalledProcessError(128, cmd, output="", stderr=stderr)


@pytest.fixture
def working_tree(tmp_path):
    return GitWorkingTree(tmp_path, VcsInfo(type=VcsType.GIT, url=URL), timeout=5)


def _git_args(mock_run):
    return [call.args[0][1:] for call in mock_run.call_args_list]


class TestRunGit:
    def test_returns_stdout(self, tmp_path):
        with patch(RUN, return_value=_completed("ok\n")) as mock_run:
            assert run_git(["status"], tmp_path, 5) == "ok\n"

        kwargs = mock_run.call_args.kwargs
        assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"
        assert kwargs["timeout"] == 5
        assert kwargs["check"] is True

    def test_failure_raises_vcs_error(self, tmp_path):
        with patch(RUN, side_effect=_failed(["git", "fetch"], "fatal: repository not found")):
            with pytest.raises(VcsOperationError, match="repository not found"):
                run_git(["fetch"], tmp_path, 5)

    def test_timeout_raises_vcs_error(self, tmp_path):
        with patch(RUN, side_effect=subprocess.TimeoutExpired(["git", "fetch"], 5)):
            with pytest.raises(VcsOperationError, match="timed out"):
                run_git(["fetch"], tmp_path, 5)

    def test_missing_git_raises_vcs_error(self, tmp_path):
        with patch(RUN, side_effect=FileNotFoundError("git")):
            with pytest.raises(VcsOperationError, match="not available"):
                run_git(["status"], tmp_path, 5)


class TestWorkingTreeSetup:
    def test_init_new_working_tree(self, tmp_path):
        with patch(RUN, return_value=_completed()) as mock_run:
            tree = GitVcs(timeout=5).init_working_tree(tmp_path / "wt", VcsInfo(type=VcsType.GIT, url=URL, revision="main"))

        assert _git_args(mock_run) == [["init", "--quiet"], ["remote", "add", "origin", URL]]
        assert tree.vcs_info.revision == ""
        assert tree.directory == tmp_path / "wt"

    def test_init_existing_working_tree_resets_remote(self, tmp_path):
        (tmp_path / ".git").mkdir()
        with patch(RUN, return_value=_completed()) as mock_run:
            GitVcs(timeout=5).init_working_tree(tmp_path, VcsInfo(type=VcsType.GIT, url=URL))

        assert _git_args(mock_run) == [["remote", "set-url", "origin", URL]]

    def test_registry_returns_git_driver(self):
        with patch(WHICH, return_value="/usr/bin/git"):
            assert isinstance(get_vcs(VcsType.GIT), GitVcs)

    def test_registry_rejects_driver_without_client(self):
        with patch(WHICH, return_value=None):
            with pytest.raises(UnsupportedVcsError, match="'git' command"):
                get_vcs(VcsType.GIT)


class TestRevisions:
    def test_commit_id_detection(self):
        assert is_commit_id(COMMIT)
        assert is_commit_id(COMMIT.upper())
        assert not is_commit_id("main")
        assert not is_commit_id(COMMIT[:12])

    def test_resolve_commit_without_network(self, working_tree):
        with patch(RUN) as mock_run:
            assert GitVcs(timeout=5).resolve_revision(working_tree, COMMIT.upper()) == COMMIT
        mock_run.assert_not_called()

    def test_resolve_annotated_tag_to_commit(self, working_tree):
        output = f"{TAG_OBJECT}\trefs/tags/v1.0\n{TAGGED_COMMIT}\trefs/tags/v1.0^{{}}\n"
        with patch(RUN, return_value=_completed(output)) as mock_run:
            assert GitVcs(timeout=5).resolve_revision(working_tree, "v1.0") == TAGGED_COMMIT
        assert _git_args(mock_run) == [["ls-remote", "origin", "v1.0", "refs/tags/v1.0^{}"]]

    def test_resolve_branch(self, working_tree):
        with patch(RUN, return_value=_completed(f"{COMMIT}\trefs/heads/main\n")):
            assert GitVcs(timeout=5).resolve_revision(working_tree, "main") == COMMIT

    def test_resolve_unknown_revision(self, working_tree):
        with patch(RUN, return_value=_completed("")):
            with pytest.raises(VcsOperationError, match="does not exist"):
                GitVcs(timeout=5).resolve_revision(working_tree, "nope")

    def test_list_remote_tags(self, working_tree):
        output = f"{COMMIT}\trefs/tags/v1.0\n{COMMIT}\trefs/tags/v1.1\n"
        with patch(RUN, return_value=_completed(output)) as mock_run:
            assert GitVcs(timeout=5).list_remote_tags(working_tree) == ["v1.0", "v1.1"]
        assert _git_args(mock_run) == [["ls-remote", "--tags", "--refs", "origin"]]

    def test_fixed_revisions(self, working_tree):
        vcs = GitVcs(timeout=5)
        with patch(RUN, return_value=_completed(f"{COMMIT}\trefs/tags/v1.0\n")):
            assert vcs.is_fixed_revision(working_tree, COMMIT)
            assert vcs.is_fixed_revision(working_tree, "v1.0")
            assert not vcs.is_fixed_revision(working_tree, "main")


class TestUpdate:
    def test_shallow_fetch_and_checkout(self, working_tree):
        with patch(RUN, return_value=_completed()) as mock_run:
            GitVcs(timeout=5).update_working_tree(working_tree, "main")

        assert _git_args(mock_run) == [
            ["fetch", "--quiet", "--depth", "1", "origin", "main"],
            ["checkout", "--quiet", "--force", "--detach", "FETCH_HEAD"],
            ["clean", "-ffdx", "--quiet"],
        ]

    def test_falls_back_to_full_fetch(self, working_tree):
        def fake_run(cmd, **kwargs):
            if cmd[1:3] == ["fetch", "--quiet"] and "--depth" in cmd:
                raise _failed(cmd, "fatal: couldn't find remote ref")
            if cmd[1] == "rev-parse":
                if cmd[-1] == "origin/dev^{commit}":
                    return _completed(f"{COMMIT}\n")
                raise _failed(cmd, "")
            return _completed()

        with patch(RUN, side_effect=fake_run) as mock_run:
            GitVcs(timeout=5).update_working_tree(working_tree, "dev")

        args = _git_args(mock_run)
        assert ["checkout", "--quiet", "--force", "--detach", COMMIT] in args
        assert not any(a[0] == "submodule" for a in args)

    def test_update_fails_for_unknown_revision(self, working_tree):
        def fake_run(cmd, **kwargs):
            if cmd[1] in ("rev-parse",) or "--depth" in cmd:
                raise _failed(cmd)
            return _completed()

        with patch(RUN, side_effect=fake_run):
            with pytest.raises(VcsOperationError, match="does not exist"):
                GitVcs(timeout=5).update_working_tree(working_tree, "gone")


class TestNested:
    def test_no_gitmodules_means_no_nested(self, working_tree):
        with patch(RUN) as mock_run:
            assert working_tree.get_nested() == {}
        mock_run.assert_not_called()

    def test_parses_submodules(self, working_tree):
        (working_tree.directory / ".gitmodules").write_text("[submodule]\n")
        output = (
            f"vendor/lib|{COMMIT}|git@github.com:owner/lib.git\n"
            f"vendor/lib/deps/x|{TAGGED_COMMIT}|https://example.com/x.git/\n"
            "garbage line\n"
        )
        with patch(RUN, return_value=_completed(output)):
            nested = working_tree.get_nested()

        assert nested == {
            "vendor/lib": VcsInfo(type=VcsType.GIT, url="https://github.com/owner/lib.git", revision=COMMIT),
            "vendor/lib/deps/x": VcsInfo(type=VcsType.GIT, url="https://example.com/x.git", revision=TAGGED_COMMIT),
        }

    def test_nested_listing_is_not_recursive(self, working_tree):
        (working_tree.directory / ".gitmodules").write_text("[submodule]\n")
        with patch(RUN, return_value=_completed("")) as mock_run:
            working_tree.get_nested()
        assert "--recursive" not in mock_run.call_args.args[0]

    def test_nested_paths_below_a_submodule_are_prefixed(self, working_tree):
        submodule = working_tree.directory / "vendor" / "lib"
        submodule.mkdir(parents=True)
        (submodule / ".gitmodules").write_text("[submodule]\n")
        with patch(RUN, return_value=_completed(f"deps/x|{COMMIT}|{URL}\n")) as mock_run:
            nested = working_tree.get_nested("vendor/lib")

        assert nested == {"vendor/lib/deps/x": VcsInfo(type=VcsType.GIT, url=URL, revision=COMMIT)}
        assert mock_run.call_args.kwargs["cwd"] == str(submodule)

    def test_update_nested_checks_out_one_level(self, working_tree):
        (working_tree.directory / ".gitmodules").write_text("[submodule]\n")
        with patch(RUN, return_value=_completed()) as mock_run:
            GitVcs(timeout=5).update_nested(working_tree)

        assert _git_args(mock_run) == [["submodule", "update", "--init", "--force", "--quiet"]]

    def test_update_nested_below_a_submodule(self, working_tree):
        submodule = working_tree.directory / "vendor" / "lib"
        submodule.mkdir(parents=True)
        (submodule / ".gitmodules").write_text("[submodule]\n")
        with patch(RUN, return_value=_completed()) as mock_run:
            GitVcs(timeout=5).update_nested(working_tree, "vendor/lib")

        assert mock_run.call_args.kwargs["cwd"] == str(submodule)

    def test_update_nested_without_gitmodules_does_nothing(self, working_tree):
        with patch(RUN) as mock_run:
            GitVcs(timeout=5).update_nested(working_tree, "vendor/lib")
        mock_run.assert_not_called()


class TestRevisionCandidates:
    def _package(self, revision):
        return Package(
            id=Identifier(type="NPM", name="widget", version="2.1.0"),
            vcs=VcsInfo(type=VcsType.GIT, url=URL, revision=revision),
        )

    def test_requested_revision_then_tags(self, working_tree):
        tags = f"{COMMIT}\trefs/tags/widget-2.1.0\n{COMMIT}\trefs/tags/v2.1.0\n"
        with patch(RUN, return_value=_completed(tags)):
            candidates = GitVcs(timeout=5).get_revision_candidates(working_tree, self._package("main"))
        assert candidates == ["main", "v2.1.0", "widget-2.1.0"]

    def test_default_branch_as_last_resort(self, working_tree):
        with patch(RUN, return_value=_completed("")):
            candidates = GitVcs(timeout=5).get_revision_candidates(working_tree, self._package(""))
        assert candidates == ["HEAD"]

    def test_no_candidates_without_moving_revisions(self, working_tree):
        with patch(RUN, return_value=_completed("")):
            candidates = GitVcs(timeout=5).get_revision_candidates(
                working_tree, self._package("main"), allow_moving_revisions=False
            )
        assert candidates == []

    def test_tag_listing_failure_is_tolerated(self, working_tree):
        with patch(RUN, side_effect=_failed(["git", "ls-remote"])):
            candidates = GitVcs(timeout=5).get_revision_candidates(working_tree, self._package("main"))
        assert candidates == ["main"]


def test_find_version_tags_is_case_insensitive():
    tags = ["Widget-2.1.0", "release-2.1.0", "v2.1.0", "v2.1.01"]
    assert find_version_tags(tags, "widget", "2.1.0") == ["v2.1.0", "Widget-2.1.0", "release-2.1.0"]


def test_registered_driver_is_returned():
    driver = MagicMock()
    driver.is_available.return_value = True
    register_vcs(VcsType.MERCURIAL, MagicMock(return_value=driver))
    try:
        assert get_vcs(VcsType.MERCURIAL) is driver
    finally:
        unregister_vcs(VcsType.MERCURIAL)

    with pytest.raises(UnsupportedVcsError):
        get_vcs(VcsType.MERCURIAL)
