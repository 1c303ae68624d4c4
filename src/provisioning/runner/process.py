"""Process-group termination for external tool subprocesses.

Fetch and install steps start their subprocess in a new session, so the
process id doubles as the process group id. Killing the group stops
grandchildren (``rustc`` under ``cargo install``, ``git`` helpers) that
would otherwise keep writing into the workspace after it is removed.
"""

import asyncio
import logging
import os
import signal

logger = logging.getLogger(__name__)


async def kill_process_group(process: asyncio.subprocess.Process) -> None:
    """SIGKILL every process in ``process``'s group and reap the leader.

    The wait is shielded so a second cancellation cannot leave the
    subprocess transport unreaped.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError as exc:
        logger.warning("Failed to kill process group %s: %s", process.pid, exc)

    await asyncio.shield(process.wait())
