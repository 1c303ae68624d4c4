"""Data models for provisioning runs.

This module defines the immutable run specification and the values
produced while a run executes:
- ProvisionSpec: What to fetch and which sub-tools to install
- WorkspaceHandle: The scoped directory owned by one run
- ProvisionReport: Summary of a successful run

ProvisionSpec uses Pydantic for validation, consistent with the event
models in events/models.py.
"""

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.provisioning.provisioner.errors import CleanupWarning


class ProvisionSpec(BaseModel):
    """Immutable description of one provisioning run.

    Attributes:
        source_url: Git URL of the toolset repository.
        local_clone_name: Directory name of the clone inside workspace_root.
        sub_tool_paths: Ordered sub-tool paths, relative to the clone root.
        workspace_root: Absolute directory that holds the workspace.
        revision: Optional commit, tag or branch to pin the fetch to.

    Example:
        >>> spec = ProvisionSpec(
        ...     source_url="https://example.test/tools.git",
        ...     local_clone_name="tools",
        ...     sub_tool_paths=["a", "b"],
        ...     workspace_root="/tmp/prov",
        ... )
        >>> spec.clone_path
        PosixPath('/tmp/prov/tools')
    """

    model_config = ConfigDict(frozen=True)

    source_url: str = Field(..., min_length=1)
    local_clone_name: str = Field(..., min_length=1)
    sub_tool_paths: Tuple[str, ...] = Field(default_factory=tuple)
    workspace_root: Path
    revision: Optional[str] = None

    @field_validator("source_url")
    @classmethod
    def validate_source_url(cls, v: str) -> str:
        """Validate that the source URL is not blank."""
        if not v.strip():
            raise ValueError("source_url cannot be empty")
        return v.strip()

    @field_validator("local_clone_name")
    @classmethod
    def validate_clone_name(cls, v: str) -> str:
        """Validate that the clone name is a single, non-blank path component."""
        v = v.strip()
        if not v:
            raise ValueError("local_clone_name cannot be empty")
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(
                "local_clone_name must be a single directory name"
            )
        return v

    @field_validator("sub_tool_paths")
    @classmethod
    def validate_sub_tool_paths(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Validate that every sub-tool path stays inside the clone."""
        for tool_path in v:
            pure = PurePosixPath(tool_path)
            if not tool_path.strip() or pure.is_absolute() or ".." in pure.parts:
                raise ValueError(
                    f"sub-tool path must be relative to the clone: {tool_path!r}"
                )
        return v

    @field_validator("workspace_root")
    @classmethod
    def validate_workspace_root(cls, v: Path) -> Path:
        """Validate that the workspace root is absolute."""
        if not v.is_absolute():
            raise ValueError("workspace_root must be an absolute path")
        return v

    @field_validator("revision")
    @classmethod
    def validate_revision(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank revision as unpinned."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def clone_path(self) -> Path:
        """Path the source is cloned into."""
        return self.workspace_root / self.local_clone_name

    @property
    def is_pinned(self) -> bool:
        return self.revision is not None


@dataclass
class WorkspaceHandle:
    """The scoped directory owned by a single provisioning run.

    Attributes:
        path: Absolute path to the workspace directory.
        preexisting: True when the directory existed before the run.
        released: True once removal has been attempted.
        cleanup_warning: Set when removal failed.
    """

    path: Path
    preexisting: bool = False
    released: bool = False
    cleanup_warning: Optional[CleanupWarning] = None


@dataclass
class ProvisionReport:
    """Summary of a successful provisioning run.

    Attributes:
        fetched: False when an existing clone was reused.
        installed: Sub-tool paths installed, in order.
        cleanup_warning: Set when the workspace could not be removed.
        duration_seconds: Wall-clock time of the run.
    """

    fetched: bool
    installed: List[str] = field(default_factory=list)
    cleanup_warning: Optional[CleanupWarning] = None
    duration_seconds: float = 0.0

    @property
    def clean(self) -> bool:
        return self.cleanup_warning is None
