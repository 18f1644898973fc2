"""Provenance value types: where a unit of source code came from.

KnownProvenance is either an ArtifactProvenance or a RepositoryProvenance.
A NestedProvenance adds the repositories found inside a repository
(e.g. Git submodules), keyed by their path relative to the root.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sourcetrace.model.package import RemoteArtifact, VcsInfo
from sourcetrace.utils import normalize_relative_path


class ArtifactProvenance(BaseModel):
    """Provenance of source code taken from a downloadable artifact."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["artifact"] = "artifact"
    source_artifact: RemoteArtifact


class RepositoryProvenance(BaseModel):
    """Provenance of source code taken from a VCS repository.

    ``vcs_info.revision`` keeps the requested revision (possibly a branch);
    ``resolved_revision`` always pins a fixed snapshot.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["repository"] = "repository"
    vcs_info: VcsInfo
    resolved_revision: str

    @field_validator("resolved_revision")
    @classmethod
    def validate_resolved_revision(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("A repository provenance requires a resolved revision")
        return v

    @property
    def requested_revision(self) -> str:
        return self.vcs_info.revision


KnownProvenance = Annotated[
    Union[ArtifactProvenance, RepositoryProvenance],
    Field(discriminator="kind"),
]


class NestedProvenance(BaseModel):
    """A root provenance plus every repository nested inside it."""

    model_config = ConfigDict(frozen=True)

    root: KnownProvenance
    sub_repositories: dict[str, RepositoryProvenance] = Field(default_factory=dict)

    @field_validator("sub_repositories")
    @classmethod
    def canonicalize_paths(
        cls, v: dict[str, RepositoryProvenance]
    ) -> dict[str, RepositoryProvenance]:
        canonical: dict[str, RepositoryProvenance] = {}
        for path, provenance in v.items():
            key = normalize_relative_path(path)
            if not key:
                raise ValueError("A nested repository cannot live at the root path")
            if key in canonical:
                raise ValueError(f"Duplicate nested repository path: '{key}'")
            canonical[key] = provenance
        return canonical

    @model_validator(mode="after")
    def artifacts_have_no_nested_repositories(self) -> NestedProvenance:
        if isinstance(self.root, ArtifactProvenance) and self.sub_repositories:
            raise ValueError("An artifact provenance cannot have nested repositories")
        return self

    def get_provenances(self) -> list[ArtifactProvenance | RepositoryProvenance]:
        """Return the root followed by all nested repositories ordered by path."""
        return [self.root] + [self.sub_repositories[p] for p in sorted(self.sub_repositories)]


class NestedProvenanceResolutionResult(BaseModel):
    """A resolved nested provenance and whether it may be trusted as cached."""

    model_config = ConfigDict(frozen=True)

    nested_provenance: NestedProvenance
    has_only_fixed_revisions: bool


# -- Package provenance resolution results -------------------------------------

class ResolvedArtifactProvenance(BaseModel):
    model_config = ConfigDict(frozen=True)

    result_type: Literal["resolved_artifact"] = "resolved_artifact"
    provenance: ArtifactProvenance


class ResolvedRepositoryProvenance(BaseModel):
    """A repository resolution; ``clone_revision`` is the candidate that worked."""

    model_config = ConfigDict(frozen=True)

    result_type: Literal["resolved_repository"] = "resolved_repository"
    provenance: RepositoryProvenance
    clone_revision: str
    is_fixed_revision: bool


class UnresolvedPackageProvenance(BaseModel):
    model_config = ConfigDict(frozen=True)

    result_type: Literal["unresolved"] = "unresolved"
    message: str


PackageProvenanceResolutionResult = Annotated[
    Union[ResolvedArtifactProvenance, ResolvedRepositoryProvenance, UnresolvedPackageProvenance],
    Field(discriminator="result_type"),
]
