"""Installer subprocess management.

Runs the configured installer command (``cargo install --force --path``
by default) against one sub-tool directory, streaming its output to the
logs and enforcing an optional timeout.

- Exit code 0 → sub-tool installed
- Non-zero exit, timeout or launch failure → failed InstallResult
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

from src.provisioning.runner.process import kill_process_group

logger = logging.getLogger(__name__)

DEFAULT_INSTALLER_COMMAND = ("cargo", "install", "--force", "--path")


@dataclass
class InstallResult:
    """Result of one installer execution.

    Attributes:
        success: True when the installer exited with code 0.
        exit_code: Process exit code (-1 for timeout/OS errors).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
    """

    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float

    @property
    def failure_reason(self) -> str:
        """Last line of stderr, or the exit code when stderr is empty."""
        lines = [line for line in self.stderr.splitlines() if line.strip()]
        if lines:
            return lines[-1].strip()
        return f"installer exited with code {self.exit_code}"


class InstallerRunner:
    """Manages installer subprocess execution.

    The tool path is appended as the final argument of ``command``.

    Attributes:
        command: Installer argv prefix.
        timeout_seconds: Maximum execution time, or None for no limit.
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_INSTALLER_COMMAND,
        timeout_seconds: Optional[float] = None,
    ):
        if not command:
            raise ValueError("installer command cannot be empty")
        self.command: Tuple[str, ...] = tuple(command)
        self.timeout_seconds = timeout_seconds

    async def run(
        self,
        tool_path: Path,
        cwd: Optional[Path] = None,
    ) -> InstallResult:
        """Install the sub-tool at ``tool_path``.

        Args:
            tool_path: Directory of the sub-tool to install.
            cwd: Working directory for the installer.

        Returns:
            InstallResult with exit code, captured output, and duration.
        """
        start_time = time.monotonic()
        process = None

        try:
            process = await self._start_process(tool_path, cwd)
            stdout, stderr = await self._collect_output_with_timeout(process)
            exit_code = process.returncode or 0
        except asyncio.TimeoutError:
            return await self._handle_timeout(process, start_time)
        except asyncio.CancelledError:
            if process is not None:
                await kill_process_group(process)
            raise
        except OSError as exc:
            return self._handle_os_error(exc, start_time)

        duration = time.monotonic() - start_time
        return self._build_result(tool_path, exit_code, stdout, stderr, duration)

    async def _start_process(
        self, tool_path: Path, cwd: Optional[Path]
    ) -> asyncio.subprocess.Process:
        """Launch the installer subprocess.

        Raises:
            OSError: If the installer executable cannot be found or started.
        """
        logger.info(
            "Starting installer",
            extra={
                "tool_path": str(tool_path),
                "command": " ".join(self.command),
                "timeout": self.timeout_seconds,
            },
        )

        return await asyncio.create_subprocess_exec(
            *self.command,
            str(tool_path),
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )

    async def _collect_output_with_timeout(
        self,
        process: asyncio.subprocess.Process,
    ) -> tuple:
        """Stream and collect process output within the timeout window.

        Returns:
            Tuple of (stdout_text, stderr_text).

        Raises:
            asyncio.TimeoutError: If the process exceeds the timeout.
        """
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        async def stream_stdout():
            async for line in self._read_stream(process.stdout):
                stdout_lines.append(line)
                logger.debug("installer stdout: %s", line)

        async def stream_stderr():
            async for line in self._read_stream(process.stderr):
                stderr_lines.append(line)
                logger.debug("installer stderr: %s", line)

        async def gather_streams():
            await asyncio.gather(stream_stdout(), stream_stderr())
            await process.wait()

        await asyncio.wait_for(gather_streams(), timeout=self.timeout_seconds)

        return "\n".join(stdout_lines), "\n".join(stderr_lines)

    async def _read_stream(self, stream: Optional[asyncio.StreamReader]):
        """Yield decoded lines from an async stream."""
        if stream is None:
            return

        while True:
            raw_line = await stream.readline()
            if not raw_line:
                break
            yield raw_line.decode("utf-8", errors="replace").rstrip("\n")

    async def _handle_timeout(
        self,
        process: Optional[asyncio.subprocess.Process],
        start_time: float,
    ) -> InstallResult:
        """Kill the process and return a timeout failure result."""
        if process is not None:
            await kill_process_group(process)
        duration = time.monotonic() - start_time
        logger.error("Installer timed out after %ss", self.timeout_seconds)
        return InstallResult(
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Installer timed out after {self.timeout_seconds}s",
            duration_seconds=duration,
        )

    def _handle_os_error(self, exc: OSError, start_time: float) -> InstallResult:
        """Return a failure result for OS-level errors (e.g., missing binary)."""
        duration = time.monotonic() - start_time
        logger.error("Failed to start installer: %s", exc)
        return InstallResult(
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Failed to start installer: {exc}",
            duration_seconds=duration,
        )

    def _build_result(
        self,
        tool_path: Path,
        exit_code: int,
        stdout: str,
        stderr: str,
        duration: float,
    ) -> InstallResult:
        is_success = exit_code == 0

        if is_success:
            logger.info(
                "Installed %s in %.1fs",
                tool_path,
                duration,
            )
        else:
            logger.error(
                "Installer failed for %s with exit code %d in %.1fs",
                tool_path,
                exit_code,
                duration,
            )

        return InstallResult(
            success=is_success,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
        )
