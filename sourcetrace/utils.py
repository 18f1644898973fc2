"""
Utility functions for sourcetrace

Provides logging setup, path helpers, and the exception hierarchy
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional


# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging for sourcetrace"""
    level = getattr(logging, log_level.upper())

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


# ═══════════════════════════════════════════════════════════════════
# HASHING / PATHS
# ═══════════════════════════════════════════════════════════════════

def compute_string_hash(content: str) -> str:
    """Compute SHA-256 hash of string"""
    return hashlib.sha256(content.encode()).hexdigest()


def normalize_relative_path(path: str) -> str:
    """Canonicalize a repository-relative path.

    Backslashes become slashes, ``.`` segments and empty segments are dropped
    and ``..`` is collapsed. Raises ValueError for paths that are absolute or
    escape the repository root.
    """
    raw = path.strip().replace("\\", "/")
    if raw.startswith("/"):
        raise ValueError(f"Path must be relative: '{path}'")

    parts: list[str] = []
    for segment in raw.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                raise ValueError(f"Path escapes the repository root: '{path}'")
            parts.pop()
            continue
        parts.append(segment)

    return "/".join(parts)


def ensure_dir(path: str | Path) -> Path:
    """Ensure directory exists"""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


# ═══════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════

class SourceTraceError(Exception):
    """Base exception for sourcetrace"""
    pass


class ProvenanceResolutionError(SourceTraceError):
    """A provenance could not be resolved"""
    pass


class UnresolvableOriginError(ProvenanceResolutionError):
    """None of the requested source code origins of a package could be resolved"""

    def __init__(self, package_id: str, origins: list, errors: dict) -> None:
        self.package_id = package_id
        self.origins = list(origins)
        self.errors = dict(errors)

        origin_names = ", ".join(str(getattr(o, "value", o)) for o in self.origins)
        details = "; ".join(
            f"{getattr(origin, 'value', origin)}: {reason}" for origin, reason in self.errors.items()
        )
        message = (
            f"Could not resolve provenance for package '{package_id}' "
            f"for source code origins [{origin_names}]."
        )
        if details:
            message += f" {details}"
        super().__init__(message)


class VcsOperationError(ProvenanceResolutionError):
    """A fetch, checkout or update of a working tree failed"""
    pass


class CyclicRepositoryError(VcsOperationError):
    """A nested repository references one of its ancestors"""
    pass


class UnsupportedVcsError(SourceTraceError):
    """No driver is available for a VCS type"""
    pass


class StorageError(SourceTraceError):
    """A provenance storage backend is unavailable or failed"""
    pass
