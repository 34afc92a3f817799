"""
Process supervisor.

Commands are spawned as argument vectors (never through a shell) in a new
session, which makes the child the leader of its own process group.
Compilers and interpreters routinely fork helpers, so limit violations
signal the whole group rather than the immediate child.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import threading
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger("coderunner.executor")

EXIT_POLL_SECONDS = 0.02


class ProcessHandle:
    """One spawned process group.

    The handle is owned by the phase that spawned it.  Once the group has
    been signaled it is never signaled again, so :meth:`terminate` may be
    called from any number of racing watchers.
    """

    def __init__(self, process: asyncio.subprocess.Process, command: Sequence[str]) -> None:
        self.process = process
        self.command = list(command)
        self.pid = process.pid
        self._signaled = False
        self._lock = threading.Lock()

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def terminate(self) -> bool:
        """Send ``SIGKILL`` to the whole group.

        Returns ``True`` only for the call that actually delivered the
        signal.  Later calls, and calls after the group is gone, are no-ops.
        """
        with self._lock:
            if self._signaled:
                return False
            self._signaled = True
        try:
            os.killpg(self.pid, signal.SIGKILL)
        except ProcessLookupError:
            return False
        except PermissionError as exc:
            logger.warning("Unable to signal process group %s: %s", self.pid, exc)
            return False
        logger.debug("Killed process group %s", self.pid)
        return True

    async def feed(self, payload: Optional[bytes]) -> None:
        """Write ``payload`` to stdin once, then close it.

        The child may exit or close its stdin before reading everything;
        that is not a failure of the phase.
        """
        stdin = self.process.stdin
        if stdin is None:
            return
        try:
            if payload:
                stdin.write(payload)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("stdin of %s closed before input was consumed", self.pid)
        finally:
            try:
                stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                pass

    async def wait(self) -> int:
        return await self.process.wait()

    async def exited(self) -> int:
        """Wait for the leader alone to exit.

        Unlike :meth:`wait` this does not wait for the pipes to close, which
        helpers left behind by the leader may keep open indefinitely.
        """
        while self.returncode is None:
            await asyncio.sleep(EXIT_POLL_SECONDS)
        return self.returncode


class ProcessSupervisor:
    """Spawn commands as new process groups."""

    async def spawn(self, command: Sequence[str], cwd: Path) -> ProcessHandle:
        """Start ``command`` in ``cwd`` with all three standard streams piped.

        Raises
        ------
        OSError
            If the program is missing or not executable.
        """
        if not command:
            raise ValueError("Cannot spawn an empty command")
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        logger.debug("Spawned %s as process group %s", command[0], process.pid)
        return ProcessHandle(process, command)
