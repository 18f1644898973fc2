"""Tests for configuration, logging setup and shared helpers."""

import logging

import pytest
from pydantic import ValidationError

from sourcetrace.model import SourceCodeOrigin
from sourcetrace.settings import SourceTraceSettings
from sourcetrace.utils import (
    CyclicRepositoryError,
    ProvenanceResolutionError,
    SourceTraceError,
    StorageError,
    UnresolvableOriginError,
    UnsupportedVcsError,
    VcsOperationError,
    compute_string_hash,
    ensure_dir,
    setup_logging,
)


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SOURCETRACE_MAX_WORKING_TREES", raising=False)
        config = SourceTraceSettings(_env_file=None)
        assert config.max_working_trees == 32
        assert config.source_code_origins == [SourceCodeOrigin.VCS, SourceCodeOrigin.ARTIFACT]
        assert config.assume_fixed_nested_revisions is True
        assert config.recheck_moving_revisions is False
        assert "log_level" not in SourceTraceSettings.model_fields

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SOURCETRACE_MAX_WORKING_TREES", "4")
        monkeypatch.setenv("SOURCETRACE_SOURCE_CODE_ORIGINS", '["artifact", "vcs"]')
        monkeypatch.setenv("SOURCETRACE_ALLOW_MOVING_REVISIONS", "false")

        config = SourceTraceSettings(_env_file=None)

        assert config.max_working_trees == 4
        assert config.source_code_origins == [SourceCodeOrigin.ARTIFACT, SourceCodeOrigin.VCS]
        assert config.allow_moving_revisions is False

    def test_empty_origins_rejected(self):
        with pytest.raises(ValidationError):
            SourceTraceSettings(_env_file=None, source_code_origins=[])

    def test_repeated_origins_rejected(self):
        with pytest.raises(ValidationError):
            SourceTraceSettings(_env_file=None, source_code_origins=["vcs", "vcs"])

    def test_working_tree_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            SourceTraceSettings(_env_file=None, max_working_trees=0)


class TestUtils:
    def test_string_hash_is_stable(self):
        assert compute_string_hash("Git|https://example.com/r.git") == compute_string_hash(
            "Git|https://example.com/r.git"
        )
        assert len(compute_string_hash("x")) == 64

    def test_ensure_dir(self, tmp_path):
        path = ensure_dir(tmp_path / "a" / "b")
        assert path.is_dir()

    def test_setup_logging_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        root = logging.getLogger()
        setup_logging("debug", str(log_file))
        try:
            logging.getLogger("sourcetrace.test").debug("hello")
            for handler in root.handlers:
                handler.flush()
            assert "hello" in log_file.read_text()
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
                handler.close()
            root.setLevel(logging.WARNING)


class TestExceptions:
    def test_hierarchy(self):
        assert issubclass(CyclicRepositoryError, VcsOperationError)
        assert issubclass(VcsOperationError, ProvenanceResolutionError)
        assert issubclass(UnresolvableOriginError, ProvenanceResolutionError)
        assert issubclass(UnsupportedVcsError, SourceTraceError)
        assert issubclass(StorageError, SourceTraceError)

    def test_unresolvable_origin_message(self):
        error = UnresolvableOriginError(
            "NPM::x:1", [SourceCodeOrigin.ARTIFACT], {SourceCodeOrigin.ARTIFACT: "HTTP 404"}
        )
        assert str(error) == (
            "Could not resolve provenance for package 'NPM::x:1' for source code origins "
            "[artifact]. artifact: HTTP 404"
        )
