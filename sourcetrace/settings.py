"""sourcetrace configuration settings using Pydantic.

Every component accepts explicit arguments and falls back to the values here.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sourcetrace.model.package import SourceCodeOrigin


class SourceTraceSettings(BaseSettings):
    """Central configuration for provenance resolution."""

    model_config = SettingsConfigDict(
        env_prefix="SOURCETRACE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # --- Working Trees ---
    working_tree_root: Path | None = None
    max_working_trees: int = Field(default=32, ge=1)

    # --- Network ---
    git_command_timeout: float = Field(default=300.0, gt=0)
    http_timeout: float = Field(default=10.0, gt=0)

    # --- Resolution Policy ---
    # From the environment this is a JSON list, e.g. '["artifact", "vcs"]'.
    source_code_origins: list[SourceCodeOrigin] = Field(
        default_factory=lambda: [SourceCodeOrigin.VCS, SourceCodeOrigin.ARTIFACT]
    )
    allow_moving_revisions: bool = True
    recheck_moving_revisions: bool = False
    assume_fixed_nested_revisions: bool = True
    resolution_workers: int = Field(default=8, ge=1)

    @field_validator("source_code_origins")
    @classmethod
    def validate_origins(cls, v: list[SourceCodeOrigin]) -> list[SourceCodeOrigin]:
        if not v:
            raise ValueError("At least one source code origin is required")
        if len(set(v)) != len(v):
            raise ValueError("Source code origins must not repeat")
        return v


# Singleton instance
settings = SourceTraceSettings()
