"""Provisioner driving one fetch-then-install-then-cleanup run.

A run is a strictly ordered sequence:
acquire workspace → ensure source present → install each sub-tool → release workspace.

The workspace release lives in the exit path of a scoped context
manager, so it runs on success, on failure and on cancellation. Fetch
and install failures abort the run; a failed release is reported as a
CleanupWarning alongside whatever result the run already had.

Source:
- src/provisioning/provisioner/workspace.py (WorkspaceManager)
- src/provisioning/provisioner/fetch.py (GitFetcher)
- src/provisioning/runner/installer.py (InstallerRunner)
- src/provisioning/events/emitter.py (EventEmitter)
"""

import logging
import time
from typing import List, Optional

from src.provisioning.events.emitter import EventEmitter, NullEventEmitter
from src.provisioning.events.models import EventType, ProvisionEvent
from src.provisioning.provisioner.errors import (
    CleanupWarning,
    InstallError,
    ProvisionError,
)
from src.provisioning.provisioner.fetch import GitFetcher
from src.provisioning.provisioner.models import (
    ProvisionReport,
    ProvisionSpec,
    WorkspaceHandle,
)
from src.provisioning.provisioner.workspace import WorkspaceManager
from src.provisioning.runner.installer import InstallerRunner

logger = logging.getLogger(__name__)


class Provisioner:
    """Fetches a toolset and installs its sub-tools in order.

    Accepts its collaborators via constructor injection. Runs against
    the same workspace root must be serialized by the caller.

    Attributes:
        fetcher: Clones the source repository.
        installer: Runs the installer for one sub-tool.
        workspace_manager: Acquires and releases the run workspace.
        event_emitter: Receives run events for observability.
    """

    def __init__(
        self,
        fetcher: GitFetcher,
        installer: InstallerRunner,
        workspace_manager: Optional[WorkspaceManager] = None,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.fetcher = fetcher
        self.installer = installer
        self.workspace_manager = workspace_manager or WorkspaceManager()
        self.event_emitter = event_emitter or NullEventEmitter()

    async def provision(self, spec: ProvisionSpec) -> ProvisionReport:
        """Run one provisioning run for ``spec``.

        Args:
            spec: What to fetch and which sub-tools to install.

        Returns:
            ProvisionReport describing the successful run.

        Raises:
            WorkspaceError: If the workspace root cannot be created.
            FetchError: If the source cannot be fetched.
            InstallError: If a sub-tool fails to install. Later sub-tools
                are not attempted.
        """
        start_time = time.monotonic()
        workspace: Optional[WorkspaceHandle] = None
        installed: List[str] = []

        logger.info(
            "Starting provisioning run",
            extra={
                "source_url": spec.source_url,
                "revision": spec.revision,
                "sub_tools": list(spec.sub_tool_paths),
            },
        )

        try:
            async with self.workspace_manager.scoped(spec) as workspace:
                fetched = await self._ensure_source(spec, workspace)
                await self._install_all(spec, workspace, installed)
        except ProvisionError as exc:
            if workspace is not None and workspace.cleanup_warning is not None:
                exc.cleanup_warning = workspace.cleanup_warning
                await self._emit_cleanup_warning(spec, workspace.cleanup_warning)
            await self._emit(
                spec,
                EventType.ERROR,
                step=exc.step,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            raise

        duration = time.monotonic() - start_time
        report = ProvisionReport(
            fetched=fetched,
            installed=installed,
            cleanup_warning=workspace.cleanup_warning,
            duration_seconds=duration,
        )
        if report.cleanup_warning is not None:
            await self._emit_cleanup_warning(spec, report.cleanup_warning)

        await self._emit(
            spec,
            EventType.COMPLETION,
            installed=installed,
            fetched=fetched,
            duration_seconds=duration,
        )
        return report

    async def _ensure_source(
        self, spec: ProvisionSpec, workspace: WorkspaceHandle
    ) -> bool:
        """Fetch the source unless the clone directory already exists.

        Returns:
            True when a fetch was performed.
        """
        if workspace.preexisting:
            logger.info(
                "Source already present, skipping fetch",
                extra={"workspace": str(workspace.path)},
            )
            await self._emit(spec, EventType.STEP_COMPLETED, step="fetch", skipped=True)
            return False

        await self._emit(spec, EventType.STEP_STARTED, step="fetch")
        await self.fetcher.fetch(spec.source_url, workspace.path, spec.revision)
        await self._emit(spec, EventType.STEP_COMPLETED, step="fetch", skipped=False)
        return True

    async def _install_all(
        self,
        spec: ProvisionSpec,
        workspace: WorkspaceHandle,
        installed: List[str],
    ) -> None:
        """Install each sub-tool in order, stopping at the first failure.

        Raises:
            InstallError: Naming the first sub-tool path that failed.
        """
        for tool_path in spec.sub_tool_paths:
            await self._emit(spec, EventType.STEP_STARTED, step="install", tool_path=tool_path)

            result = await self.installer.run(
                workspace.path / tool_path, cwd=workspace.path
            )
            if not result.success:
                raise InstallError(tool_path, result.failure_reason)

            installed.append(tool_path)
            await self._emit(spec, EventType.STEP_COMPLETED, step="install", tool_path=tool_path)

    async def _emit_cleanup_warning(
        self, spec: ProvisionSpec, warning: CleanupWarning
    ) -> None:
        await self._emit(
            spec,
            EventType.CLEANUP_WARNING,
            workspace=str(warning.path),
            error_message=warning.cause,
        )

    async def _emit(self, spec: ProvisionSpec, event_type: EventType, **details) -> None:
        """Emit a run event; emitter failures are logged, never raised."""
        event = ProvisionEvent(
            event_type=event_type,
            source_url=spec.source_url,
            details=details,
        )
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit event",
                extra={"event_type": event_type.value},
            )
