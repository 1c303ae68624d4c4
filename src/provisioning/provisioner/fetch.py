"""Git fetch for the toolset source.

Clones the source repository into the workspace using asyncio
subprocesses. A pinned fetch clones without checkout, resolves the
requested revision to a commit and detaches there; an unpinned fetch
makes a shallow clone of the default branch.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple

from src.provisioning.provisioner.errors import FetchError
from src.provisioning.runner.process import kill_process_group

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"


class GitFetcher:
    """Fetches a Git repository into a target directory.

    Attributes:
        git_path: The git executable.
        timeout_seconds: Per-command timeout, or None for no limit.
    """

    def __init__(self, git_path: str = "git", timeout_seconds: Optional[float] = None):
        self.git_path = git_path
        self.timeout_seconds = timeout_seconds

    async def fetch(
        self,
        source_url: str,
        target_path: Path,
        revision: Optional[str] = None,
    ) -> None:
        """Clone ``source_url`` into ``target_path``.

        Args:
            source_url: Git URL to clone from.
            target_path: Directory to clone into; must not exist yet.
            revision: Optional commit, tag or branch to check out.

        Raises:
            FetchError: If git fails, cannot be started, times out, or the
                revision does not name a commit in the source.
        """
        if revision is None:
            logger.warning(
                "Fetching unpinned source; the default branch tip will be used",
                extra={"source_url": source_url},
            )
            await self._run_git(
                source_url,
                "clone", "--depth", "1", source_url, str(target_path),
            )
            commit = None
        else:
            await self._run_git(
                source_url,
                "clone", "--no-checkout", source_url, str(target_path),
            )
            commit = await self._resolve_revision(source_url, target_path, revision)
            await self._run_git(
                source_url,
                "-C", str(target_path), "checkout", "--detach", commit,
            )

        logger.info(
            "Fetched source",
            extra={
                "source_url": source_url,
                "target": str(target_path),
                "revision": revision,
                "commit": commit,
            },
        )

    async def _resolve_revision(
        self, source_url: str, target_path: Path, revision: str
    ) -> str:
        """Resolve ``revision`` to a commit id inside the fresh clone.

        A fresh clone only has a local branch for the default branch, so
        other branch names are looked up as remote-tracking refs.

        Raises:
            FetchError: If no candidate resolves to a commit.
        """
        candidates = (revision, f"{REMOTE_NAME}/{revision}")
        for candidate in candidates:
            returncode, stdout, _ = await self._exec_git(
                source_url,
                "-C", str(target_path),
                "rev-parse", "--verify", "--quiet", f"{candidate}^{{commit}}",
            )
            if returncode == 0 and stdout.strip():
                return stdout.strip()

        raise FetchError(source_url, f"revision {revision!r} not found")

    async def _run_git(self, source_url: str, *args: str) -> str:
        """Run a single git command and raise FetchError on failure.

        Args:
            source_url: Source URL, used for error reporting.
            *args: Arguments passed to git.

        Returns:
            The command's decoded standard output.

        Raises:
            FetchError: If the command fails, cannot start, or times out.
        """
        returncode, stdout, stderr = await self._exec_git(source_url, *args)
        if returncode != 0:
            raise FetchError(source_url, stderr.strip() or f"git exited with {returncode}")
        return stdout

    async def _exec_git(self, source_url: str, *args: str) -> Tuple[int, str, str]:
        """Run git and return ``(returncode, stdout, stderr)``.

        Git runs in its own session so a timeout or cancellation kills its
        helper processes along with it.

        Raises:
            FetchError: If git cannot start or times out.
        """
        command: Sequence[str] = (self.git_path, *args)
        logger.debug("Running %s", " ".join(command))

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise FetchError(source_url, f"Failed to execute git: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            await kill_process_group(process)
            raise FetchError(
                source_url,
                f"git {_subcommand(args)} timed out after {self.timeout_seconds}s",
            ) from exc
        except asyncio.CancelledError:
            await kill_process_group(process)
            raise

        return (
            process.returncode,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )


def _subcommand(args: Sequence[str]) -> str:
    if len(args) > 2 and args[0] == "-C":
        return args[2]
    return args[0]
