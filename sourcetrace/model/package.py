"""Package metadata and source code origin descriptors.

These are the inputs of provenance resolution: a package identifier plus
the candidate origins a package manager reported for it.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sourcetrace.utils import normalize_relative_path

# Hosts whose ssh and git:// URLs are rewritten to https for a stable identity.
_PUBLIC_HOSTS = ("github.com", "gitlab.com", "bitbucket.org")

_SCP_LIKE_URL = re.compile(r"^(?:ssh://)?git@(?P<host>[^:/]+)[:/](?P<path>.+)$")


class SourceCodeOrigin(str, Enum):
    """Kind of source code origin a package can be resolved from."""
    ARTIFACT = "artifact"
    VCS = "vcs"


class VcsType(str, Enum):
    """Supported version control system types."""
    GIT = "Git"
    GIT_REPO = "GitRepo"
    MERCURIAL = "Mercurial"
    SUBVERSION = "Subversion"
    UNKNOWN = ""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
            return {"hg": cls.MERCURIAL, "svn": cls.SUBVERSION}.get(lowered)
        return None


class Identifier(BaseModel):
    """Unique package identifier rendered as ``Type:namespace:name:version``."""

    model_config = ConfigDict(frozen=True)

    type: str
    namespace: str = ""
    name: str
    version: str = ""

    @classmethod
    def from_coordinates(cls, coordinates: str) -> Identifier:
        parts = coordinates.split(":")
        if len(parts) != 4:
            raise ValueError(
                f"Expected 'Type:namespace:name:version' coordinates, got '{coordinates}'"
            )
        type_, namespace, name, version = (p.strip() for p in parts)
        return cls(type=type_, namespace=namespace, name=name, version=version)

    def to_coordinates(self) -> str:
        return f"{self.type}:{self.namespace}:{self.name}:{self.version}"

    def __str__(self) -> str:
        return self.to_coordinates()


class Hash(BaseModel):
    """Checksum of a remote artifact."""

    model_config = ConfigDict(frozen=True)

    value: str = ""
    algorithm: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.value


class RemoteArtifact(BaseModel):
    """A downloadable source artifact."""

    model_config = ConfigDict(frozen=True)

    url: str = ""
    hash: Hash = Field(default_factory=Hash)

    @field_validator("url")
    @classmethod
    def strip_url(cls, v: str) -> str:
        return v.strip()

    @property
    def is_empty(self) -> bool:
        return not self.url


def normalize_vcs_url(url: str) -> str:
    """Canonicalize a repository URL so equal repositories share one identity."""
    value = url.strip()
    if not value:
        return ""

    value = value.removeprefix("git+")

    match = _SCP_LIKE_URL.match(value)
    if match and match.group("host") in _PUBLIC_HOSTS:
        value = f"https://{match.group('host')}/{match.group('path')}"

    for host in _PUBLIC_HOSTS:
        for scheme in ("git://", "http://"):
            if value.startswith(f"{scheme}{host}/"):
                value = "https://" + value[len(scheme):]

    return value.rstrip("/")


class VcsInfo(BaseModel):
    """A location in a version control system.

    ``revision`` is the requested revision and may name a moving reference
    such as a branch. ``path`` points to a directory inside the repository.
    """

    model_config = ConfigDict(frozen=True)

    type: VcsType = VcsType.UNKNOWN
    url: str = ""
    revision: str = ""
    path: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.url

    def normalize(self) -> VcsInfo:
        return VcsInfo(
            type=self.type,
            url=normalize_vcs_url(self.url),
            revision=self.revision.strip(),
            path=normalize_relative_path(self.path),
        )

    def identity(self) -> str:
        """Key of the physical repository, independent of revision and path."""
        return f"{self.type.value}|{normalize_vcs_url(self.url)}"


EMPTY_ARTIFACT = RemoteArtifact()
EMPTY_VCS_INFO = VcsInfo()


class Package(BaseModel):
    """Package metadata as reported by a package manager."""

    model_config = ConfigDict(frozen=True)

    id: Identifier
    source_artifact: RemoteArtifact = EMPTY_ARTIFACT
    vcs: VcsInfo = EMPTY_VCS_INFO

    @property
    def vcs_processed(self) -> VcsInfo:
        return self.vcs.normalize()
