"""Scoped workspace lifecycle for provisioning runs.

A workspace is the directory ``workspace_root/local_clone_name`` that
holds the fetched source for exactly one run. It is acquired through an
async context manager whose exit path always removes it, whether the
run succeeds, fails, or is cancelled.
"""

import logging
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from src.provisioning.provisioner.errors import CleanupWarning, WorkspaceError
from src.provisioning.provisioner.models import ProvisionSpec, WorkspaceHandle

logger = logging.getLogger(__name__)

WORKSPACE_ROOT_PERMISSIONS = 0o755


class WorkspaceManager:
    """Creates and releases run workspaces.

    The manager never inspects the contents of a workspace beyond
    checking whether the clone directory already exists.
    """

    @asynccontextmanager
    async def scoped(self, spec: ProvisionSpec) -> AsyncIterator[WorkspaceHandle]:
        """Acquire the workspace for ``spec`` and remove it on exit.

        Args:
            spec: The run specification.

        Yields:
            WorkspaceHandle for the clone directory. After the block
            exits, ``handle.cleanup_warning`` is set if removal failed.

        Raises:
            WorkspaceError: If the workspace root cannot be created.
        """
        handle = self.acquire(spec)
        try:
            yield handle
        finally:
            handle.cleanup_warning = self.release(handle)

    def acquire(self, spec: ProvisionSpec) -> WorkspaceHandle:
        """Ensure the workspace root exists and describe the clone dir.

        Args:
            spec: The run specification.

        Returns:
            WorkspaceHandle pointing at the clone directory.

        Raises:
            WorkspaceError: If the workspace root cannot be created.
        """
        self._create_workspace_root(spec.workspace_root)
        clone_path = spec.clone_path
        preexisting = clone_path.exists()

        logger.info(
            "Acquired workspace",
            extra={"workspace": str(clone_path), "preexisting": preexisting},
        )
        return WorkspaceHandle(path=clone_path, preexisting=preexisting)

    def release(self, handle: WorkspaceHandle) -> Optional[CleanupWarning]:
        """Recursively remove the workspace directory.

        Args:
            handle: The workspace to remove.

        Returns:
            CleanupWarning if removal failed, otherwise None.
        """
        handle.released = True
        if not handle.path.exists():
            return None

        try:
            shutil.rmtree(handle.path)
        except OSError as exc:
            warning = CleanupWarning(handle.path, str(exc))
            logger.warning(
                "Failed to remove workspace",
                extra={"workspace": str(handle.path), "error": str(exc)},
            )
            return warning

        logger.info("Removed workspace", extra={"workspace": str(handle.path)})
        return None

    def _create_workspace_root(self, workspace_root: Path) -> None:
        """Create the workspace root and any missing parents.

        Raises:
            WorkspaceError: If directory creation fails.
        """
        if workspace_root.is_dir():
            return
        try:
            workspace_root.mkdir(parents=True, exist_ok=True)
            workspace_root.chmod(WORKSPACE_ROOT_PERMISSIONS)
        except OSError as exc:
            raise WorkspaceError(
                f"Failed to create workspace root at {workspace_root}: {exc}"
            ) from exc
