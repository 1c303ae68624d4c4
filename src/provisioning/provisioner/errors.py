"""Error taxonomy for provisioning runs.

FetchError and InstallError abort a run. CleanupWarning is never raised
on its own: it is logged and carried on the report or on the error that
ended the run, so it cannot mask an earlier failure.
"""

from pathlib import Path
from typing import Optional


class ProvisionError(Exception):
    """Base class for failures that end a provisioning run."""

    exit_code = 1
    step = "provision"

    def __init__(self, message: str):
        super().__init__(message)
        self.cleanup_warning: Optional["CleanupWarning"] = None


class WorkspaceError(ProvisionError):
    """Raised when the workspace root cannot be prepared."""

    exit_code = 2
    step = "workspace"


class FetchError(ProvisionError):
    """Raised when the source repository cannot be fetched."""

    exit_code = 2
    step = "fetch"

    def __init__(self, source_url: str, message: str):
        self.source_url = source_url
        super().__init__(f"Failed to fetch {source_url}: {message}")


class InstallError(ProvisionError):
    """Raised when the installer fails for a sub-tool path."""

    exit_code = 3
    step = "install"

    def __init__(self, path: str, underlying_cause: str):
        self.path = path
        self.underlying_cause = underlying_cause
        super().__init__(f"Failed to install {path}: {underlying_cause}")


class CleanupWarning(UserWarning):
    """Workspace removal failed after the run finished."""

    exit_code = 4

    def __init__(self, path: Path, cause: str):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to remove workspace {path}: {cause}")
