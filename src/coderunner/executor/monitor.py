"""
Resource monitor for one phase.

A phase ends in exactly one outcome.  Up to four parties race to decide it:
the process exiting on its own, the wall-clock deadline, the memory sampler
and the output aggregator.  All of them go through a single
:class:`OutcomeGuard`; whoever resolves it first wins and kills the process
group, everyone else becomes a no-op.  Once the guard is set every watcher
task of the phase is cancelled, so no timer outlives its request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence

from .base import (
    ExitInfo,
    LimitExceeded,
    LimitKind,
    NonZeroExit,
    PhaseOutcome,
    ProcessError,
    Success,
)
from .memory import MemorySampler
from .output import OutputAggregator, Stream
from .supervisor import ProcessHandle, ProcessSupervisor

logger = logging.getLogger("coderunner.executor")

# Upper bound on reaping a group that has already been sent SIGKILL.
REAP_TIMEOUT_SECONDS = 5.0

# How long pipes may stay open after the leader has exited.
DRAIN_GRACE_SECONDS = 0.2


class OutcomeGuard:
    """One-shot holder for a phase outcome.

    Backed by an :class:`asyncio.Future`: the first :meth:`resolve` (or
    :meth:`fail`) sets it, every later call returns ``False``.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def resolve(self, outcome: PhaseOutcome) -> bool:
        if self._future.done():
            return False
        self._future.set_result(outcome)
        return True

    def fail(self, exc: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(exc)
        return True

    async def wait(self) -> PhaseOutcome:
        return await self._future


class ResourceMonitor:
    """Watch one running process group until its outcome is decided."""

    def __init__(
        self,
        handle: ProcessHandle,
        guard: OutcomeGuard,
        output: OutputAggregator,
        sampler: MemorySampler,
        *,
        timeout_ms: int,
        memory_kib: int,
        sample_interval_ms: int = 500,
    ) -> None:
        self.handle = handle
        self.guard = guard
        self.output = output
        self.sampler = sampler
        self.timeout_ms = timeout_ms
        self.memory_kib = memory_kib
        self.sample_interval_ms = sample_interval_ms
        self.peak_memory_kib = 0

    def trip(self, kind: LimitKind, output: Optional[str] = None) -> bool:
        """Report a limit violation; only the winning caller kills the group."""
        partial = self.output.partial() if output is None else output
        if not self.guard.resolve(LimitExceeded(kind, partial)):
            return False
        logger.info("[PID %s] %s limit exceeded", self.handle.pid, kind.value)
        self.handle.terminate()
        return True

    async def watch_deadline(self) -> None:
        await asyncio.sleep(self.timeout_ms / 1000)
        self.trip(LimitKind.TIME)

    async def watch_memory(self) -> None:
        interval = self.sample_interval_ms / 1000
        while not self.guard.resolved:
            await asyncio.sleep(interval)
            if self.guard.resolved:
                return
            current = await asyncio.to_thread(self.sampler.sample_kib, self.handle.pid)
            if current is None:
                continue
            if current > self.peak_memory_kib:
                self.peak_memory_kib = current
            logger.debug("[PID %s] Memory: %s KB", self.handle.pid, current)
            if current > self.memory_kib:
                self.trip(LimitKind.MEMORY)
                return


class PhaseRunner:
    """Run a single command under the full set of limits.

    The runner owns the process group for the duration of :meth:`run` and
    guarantees it has been killed (or has exited) and been reaped before
    returning.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        sampler: MemorySampler,
        *,
        memory_kib: int,
        max_output_bytes: int,
        sample_interval_ms: int = 500,
    ) -> None:
        self.supervisor = supervisor
        self.sampler = sampler
        self.memory_kib = memory_kib
        self.max_output_bytes = max_output_bytes
        self.sample_interval_ms = sample_interval_ms

    async def run(
        self,
        command: Sequence[str],
        cwd: Path,
        *,
        timeout_ms: int,
        stdin: Optional[bytes] = None,
    ) -> PhaseOutcome:
        try:
            handle = await self.supervisor.spawn(command, cwd)
        except OSError as exc:
            logger.warning("Failed to spawn %s: %s", command[0], exc)
            return ProcessError(str(exc))

        started = time.perf_counter()
        guard = OutcomeGuard()
        output = OutputAggregator(self.max_output_bytes)
        monitor = ResourceMonitor(
            handle,
            guard,
            output,
            self.sampler,
            timeout_ms=timeout_ms,
            memory_kib=self.memory_kib,
            sample_interval_ms=self.sample_interval_ms,
        )

        def supervised(coro) -> asyncio.Task:
            task = asyncio.ensure_future(coro)
            task.add_done_callback(_report_crash(guard))
            return task

        pumps = [
            supervised(output.pump(Stream.STDOUT, handle.process.stdout, monitor.trip)),
            supervised(output.pump(Stream.STDERR, handle.process.stderr, monitor.trip)),
        ]
        watchers: List[asyncio.Task] = [
            supervised(handle.feed(stdin)),
            supervised(self._await_exit(handle, guard, output, monitor, pumps, started)),
            supervised(monitor.watch_deadline()),
            supervised(monitor.watch_memory()),
        ]
        try:
            return await guard.wait()
        finally:
            for task in watchers:
                task.cancel()
            await asyncio.gather(*watchers, return_exceptions=True)
            await self._reap(handle, pumps)

    async def _await_exit(
        self,
        handle: ProcessHandle,
        guard: OutcomeGuard,
        output: OutputAggregator,
        monitor: ResourceMonitor,
        pumps: Sequence[asyncio.Task],
        started: float,
    ) -> None:
        returncode = await handle.exited()
        # Output written just before exit is still in the pipes.
        _, pending = await asyncio.wait(pumps, timeout=DRAIN_GRACE_SECONDS)
        if pending:
            # Helpers left behind hold the pipes open; closing them ends the phase.
            handle.terminate()
            await asyncio.wait(pending, timeout=REAP_TIMEOUT_SECONDS)
        duration_ms = int((time.perf_counter() - started) * 1000)
        if returncode == 0:
            outcome: PhaseOutcome = Success(
                stdout=output.stdout,
                stderr=output.stderr,
                duration_ms=duration_ms,
                peak_memory_kib=monitor.peak_memory_kib,
            )
        else:
            outcome = NonZeroExit(
                ExitInfo.from_returncode(returncode), output.stdout, output.stderr
            )
        if guard.resolve(outcome):
            logger.info(
                "[PID %s] Finished. Peak memory: %s KB, Time: %s ms",
                handle.pid,
                monitor.peak_memory_kib,
                duration_ms,
            )

    async def _reap(self, handle: ProcessHandle, pumps: Sequence[asyncio.Task]) -> None:
        # Sweeps helpers the leader left behind, then collects the leader.
        handle.terminate()
        try:
            await asyncio.wait_for(
                asyncio.gather(*pumps, return_exceptions=True), timeout=REAP_TIMEOUT_SECONDS
            )
            await asyncio.wait_for(handle.wait(), timeout=REAP_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Process group %s did not exit after SIGKILL", handle.pid)
        finally:
            for task in pumps:
                task.cancel()


def _report_crash(guard: OutcomeGuard):
    def callback(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            guard.fail(exc)

    return callback
