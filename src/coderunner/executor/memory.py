"""
Resident memory sampling.

The monitor only needs one capability: "how much resident memory does the
process group led by ``pid`` use right now?".  Backends answer in KiB, or
``None`` when the reading is unavailable (the process just exited, the
kernel refused access, ...).  A missing reading is never an error.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Optional, Protocol

import psutil

logger = logging.getLogger("coderunner.executor")

_VMRSS = re.compile(r"VmRSS:\s+(\d+)\s+kB")


class MemorySampler(Protocol):
    def sample_kib(self, pid: int) -> Optional[int]:
        ...


class PsutilMemorySampler:
    """Sum the RSS of every live member of the process group led by ``pid``.

    Members are matched by process group rather than by parentage, so helpers
    re-parented to init after their parent exited are still counted.
    """

    def sample_kib(self, pid: int) -> Optional[int]:
        total = 0
        found = False
        for proc in psutil.process_iter():
            try:
                if os.getpgid(proc.pid) != pid:
                    continue
                total += proc.memory_info().rss
            except (psutil.Error, ProcessLookupError, PermissionError):
                # Members come and go between listing and reading.
                continue
            found = True
        if not found:
            return None
        return total // 1024


class ProcStatusMemorySampler:
    """Read ``VmRSS`` of the leader from ``/proc/<pid>/status`` (Linux only)."""

    def __init__(self, proc_root: str = "/proc") -> None:
        self.proc_root = Path(proc_root)

    def sample_kib(self, pid: int) -> Optional[int]:
        try:
            status = (self.proc_root / str(pid) / "status").read_text(encoding="utf-8")
        except OSError:
            return None
        match = _VMRSS.search(status)
        if match is None:
            # Zombies have no VmRSS line.
            return None
        return int(match.group(1))


def sampler_for_backend(name: str) -> MemorySampler:
    if name == "psutil":
        return PsutilMemorySampler()
    if name == "procfs":
        return ProcStatusMemorySampler()
    raise ValueError(f"Unknown memory backend: {name}")
