"""
Unit tests for the execution engine: supervisor, guard, monitor, samplers.
"""

from __future__ import annotations

import asyncio
import os
import signal
import threading

import psutil
import pytest

from coderunner.executor import (
    ExitInfo,
    LimitExceeded,
    LimitKind,
    NonZeroExit,
    OutcomeGuard,
    PhaseRunner,
    ProcessError,
    ProcessSupervisor,
    ProcStatusMemorySampler,
    PsutilMemorySampler,
    Success,
    sampler_for_backend,
)
from helpers import PYTHON, FixedSampler, wait_until_gone


def _runner(sampler=None, memory_kib=256 * 1024, max_output_bytes=1024 * 1024):
    return PhaseRunner(
        ProcessSupervisor(),
        sampler or FixedSampler(None),
        memory_kib=memory_kib,
        max_output_bytes=max_output_bytes,
        sample_interval_ms=50,
    )


def test_guard_resolves_once():
    async def scenario():
        guard = OutcomeGuard()
        first = LimitExceeded(LimitKind.MEMORY, "")
        assert guard.resolve(first)
        assert not guard.resolve(LimitExceeded(LimitKind.TIME, ""))
        assert not guard.fail(RuntimeError("late"))
        assert guard.resolved
        return await guard.wait()

    outcome = asyncio.run(scenario())
    assert outcome.kind is LimitKind.MEMORY


def test_guard_propagates_failure():
    async def scenario():
        guard = OutcomeGuard()
        guard.fail(RuntimeError("boom"))
        await guard.wait()

    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(scenario())


def test_terminate_is_idempotent(tmp_path):
    async def scenario():
        handle = await ProcessSupervisor().spawn([PYTHON, "-c", "import time; time.sleep(60)"], tmp_path)
        assert handle.pid == os.getpgid(handle.pid)
        first = handle.terminate()
        second = handle.terminate()
        await handle.feed(None)
        returncode = await handle.wait()
        return first, second, returncode

    first, second, returncode = asyncio.run(scenario())
    assert first is True
    assert second is False
    assert returncode == -signal.SIGKILL


def test_terminate_after_exit_is_noop(tmp_path):
    async def scenario():
        handle = await ProcessSupervisor().spawn([PYTHON, "-c", "pass"], tmp_path)
        await handle.feed(None)
        await handle.wait()
        return handle.terminate()

    assert asyncio.run(scenario()) is False


def test_concurrent_terminate_signals_once(tmp_path):
    async def scenario():
        handle = await ProcessSupervisor().spawn([PYTHON, "-c", "import time; time.sleep(60)"], tmp_path)
        results = await asyncio.gather(*(asyncio.to_thread(handle.terminate) for _ in range(8)))
        await handle.feed(None)
        await handle.wait()
        return results

    assert asyncio.run(scenario()).count(True) <= 1


def test_exited_does_not_wait_for_inherited_pipes(tmp_path):
    code = (
        "import subprocess, sys; "
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)']); "
        "sys.exit(3)"
    )

    async def scenario():
        handle = await ProcessSupervisor().spawn([PYTHON, "-c", code], tmp_path)
        await handle.feed(None)
        try:
            returncode = await asyncio.wait_for(handle.exited(), timeout=5)
            return returncode, handle.returncode
        finally:
            handle.terminate()
            await handle.wait()

    assert asyncio.run(scenario()) == (3, 3)


def test_spawn_failure_is_process_error(tmp_path):
    outcome = asyncio.run(
        _runner().run([str(tmp_path / "missing")], tmp_path, timeout_ms=1000)
    )
    assert isinstance(outcome, ProcessError)
    assert "missing" in outcome.message


def test_broken_stdin_pipe_does_not_fail_phase(tmp_path):
    payload = b"z" * (8 * 1024 * 1024)
    outcome = asyncio.run(
        _runner().run([PYTHON, "-c", "import sys; sys.exit(0)"], tmp_path, timeout_ms=5000, stdin=payload)
    )
    assert isinstance(outcome, Success)
    assert outcome.output == ""


def test_success_records_duration_and_peak(tmp_path):
    sampler = FixedSampler(2048)
    outcome = asyncio.run(
        _runner(sampler=sampler).run(
            [PYTHON, "-c", "import time; time.sleep(0.3); print('ok')"], tmp_path, timeout_ms=5000
        )
    )
    assert isinstance(outcome, Success)
    assert outcome.stdout == "ok\n"
    assert outcome.peak_memory_kib == 2048
    assert outcome.duration_ms >= 250


def test_non_zero_exit_outcome(tmp_path):
    outcome = asyncio.run(
        _runner().run([PYTHON, "-c", "import sys; sys.exit(7)"], tmp_path, timeout_ms=5000)
    )
    assert isinstance(outcome, NonZeroExit)
    assert outcome.exit_info == ExitInfo(code=7)
    assert outcome.diagnostic == "Process exited with code 7"


class ThreadRecordingSampler:
    def __init__(self):
        self.threads = set()

    def sample_kib(self, pid):
        self.threads.add(threading.get_ident())
        return 1024


def test_memory_is_sampled_off_the_event_loop(tmp_path):
    sampler = ThreadRecordingSampler()
    outcome = asyncio.run(
        _runner(sampler=sampler).run(
            [PYTHON, "-c", "import time; time.sleep(0.3)"], tmp_path, timeout_ms=5000
        )
    )
    assert isinstance(outcome, Success)
    assert outcome.peak_memory_kib == 1024
    assert sampler.threads
    assert threading.get_ident() not in sampler.threads


def test_deadline_and_memory_race_resolves_once(tmp_path):
    # Both watchers are armed to fire almost together; only one outcome wins.
    sampler = FixedSampler(10**9)
    runner = _runner(sampler=sampler, memory_kib=1)
    outcome = asyncio.run(
        runner.run([PYTHON, "-c", "import time; time.sleep(60)"], tmp_path, timeout_ms=50)
    )
    assert isinstance(outcome, LimitExceeded)
    assert outcome.kind in (LimitKind.TIME, LimitKind.MEMORY)


def test_no_tasks_survive_a_phase(tmp_path):
    async def scenario():
        before = asyncio.all_tasks()
        await _runner().run([PYTHON, "-c", "import time; time.sleep(60)"], tmp_path, timeout_ms=200)
        await asyncio.sleep(0)
        return asyncio.all_tasks() - before

    assert asyncio.run(scenario()) == set()


def test_psutil_sampler_reads_live_group(tmp_path):
    async def scenario():
        handle = await ProcessSupervisor().spawn([PYTHON, "-c", "import time; time.sleep(60)"], tmp_path)
        try:
            return await asyncio.to_thread(PsutilMemorySampler().sample_kib, handle.pid)
        finally:
            handle.terminate()
            await handle.feed(None)
            await handle.wait()

    sample = asyncio.run(scenario())
    assert sample is not None and sample > 0


def test_psutil_sampler_skips_vanished_process(tmp_path):
    async def dead_pid():
        handle = await ProcessSupervisor().spawn([PYTHON, "-c", "pass"], tmp_path)
        await handle.feed(None)
        await handle.wait()
        return handle.pid

    pid = asyncio.run(dead_pid())
    assert wait_until_gone(pid)
    if psutil.pid_exists(pid):
        pytest.skip("pid was recycled")
    assert PsutilMemorySampler().sample_kib(pid) is None


def test_proc_status_sampler(tmp_path):
    (tmp_path / "42").mkdir()
    (tmp_path / "42" / "status").write_text("Name:\tprog\nVmPeak:\t  9999 kB\nVmRSS:\t    2048 kB\n")
    (tmp_path / "43").mkdir()
    (tmp_path / "43" / "status").write_text("Name:\tzombie\nState:\tZ (zombie)\n")
    sampler = ProcStatusMemorySampler(str(tmp_path))

    assert sampler.sample_kib(42) == 2048
    assert sampler.sample_kib(43) is None
    assert sampler.sample_kib(44) is None


def test_sampler_for_backend():
    assert isinstance(sampler_for_backend("psutil"), PsutilMemorySampler)
    assert isinstance(sampler_for_backend("procfs"), ProcStatusMemorySampler)
    with pytest.raises(ValueError):
        sampler_for_backend("cgroup")
