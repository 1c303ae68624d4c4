"""Provisioner configuration using pydantic-settings.

Settings are read from environment variables with the PROVISION_
prefix. Command-line options are passed as init arguments and take
precedence over the environment. The workspace root is resolved once
here, so nothing downstream reads $HOME.
"""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.provisioning.provisioner.models import ProvisionSpec
from src.provisioning.runner.installer import DEFAULT_INSTALLER_COMMAND


def default_workspace_root() -> Path:
    """The invoking user's home directory, or the system temp dir."""
    home = os.environ.get("HOME")
    if home and Path(home).is_absolute():
        return Path(home)
    return Path(tempfile.gettempdir())


def clone_name_from_url(source_url: str) -> str:
    """Derive a clone directory name the way ``git clone`` does.

    >>> clone_name_from_url("https://example.test/fuzz-scripts.git")
    'fuzz-scripts'
    """
    tail = source_url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail


class ProvisionerSettings(BaseSettings):
    """Provisioner configuration from environment variables.

    All environment variables are prefixed with PROVISION_
    (e.g., PROVISION_SOURCE_URL). List values are JSON encoded
    (e.g., PROVISION_SUB_TOOLS='["a", "b"]').

    Required fields:
    - source_url: Git URL of the toolset repository
    """

    model_config = SettingsConfigDict(
        env_prefix="PROVISION_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Source
    # -------------------------------------------------------------------------
    source_url: str

    # Commit, tag or branch; unset means the default branch tip
    revision: Optional[str] = None

    # Directory name of the clone; derived from source_url when unset
    clone_name: Optional[str] = None

    # Sub-tool paths relative to the clone root, installed in order
    sub_tools: List[str] = Field(default_factory=list)

    # -------------------------------------------------------------------------
    # Workspace
    # -------------------------------------------------------------------------
    workspace_root: Path = Field(default_factory=default_workspace_root)

    # -------------------------------------------------------------------------
    # External tools
    # -------------------------------------------------------------------------
    git_path: str = "git"

    installer_command: List[str] = Field(
        default_factory=lambda: list(DEFAULT_INSTALLER_COMMAND)
    )

    # Per-step timeout; unset means no timeout
    step_timeout_seconds: Optional[float] = None

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------
    metrics_gateway_url: Optional[str] = None

    log_level: str = "INFO"

    json_logs: bool = False

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("source_url")
    @classmethod
    def validate_source_url(cls, v: str) -> str:
        """Validate that the source URL is not empty."""
        if not v or not v.strip():
            raise ValueError("source_url cannot be empty")
        return v.strip()

    @field_validator("workspace_root")
    @classmethod
    def validate_workspace_root(cls, v: Path) -> Path:
        """Validate that the workspace root is an absolute path."""
        if not v.is_absolute():
            raise ValueError("workspace_root must be an absolute path")
        return v

    @field_validator("installer_command")
    @classmethod
    def validate_installer_command(cls, v: List[str]) -> List[str]:
        """Validate that the installer command names an executable."""
        if not v or not v[0].strip():
            raise ValueError("installer_command cannot be empty")
        return v

    @field_validator("step_timeout_seconds")
    @classmethod
    def validate_step_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Validate that a configured timeout is positive."""
        if v is not None and v <= 0:
            raise ValueError("step_timeout_seconds must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError("log_level must be DEBUG, INFO, WARNING or ERROR")
        return level

    def to_spec(self) -> ProvisionSpec:
        """Build the immutable run specification.

        Raises:
            pydantic.ValidationError: If the resulting spec is invalid.
        """
        return ProvisionSpec(
            source_url=self.source_url,
            local_clone_name=self.clone_name or clone_name_from_url(self.source_url),
            sub_tool_paths=tuple(self.sub_tools),
            workspace_root=self.workspace_root,
            revision=self.revision,
        )


def get_settings(**overrides) -> ProvisionerSettings:
    """Create ProvisionerSettings, applying non-None overrides.

    Args:
        **overrides: Field values (typically from the command line) that
            take precedence over environment variables.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    return ProvisionerSettings(**values)
