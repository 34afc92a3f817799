"""
Base dataclasses shared by the execution engine.

A request is executed as one or two *phases* (an optional compile step
followed by a run step).  Each phase spawns a single process group and
resolves to exactly one :data:`PhaseOutcome`.  The orchestrator turns the
outcome of the last phase it ran into an ``ExecutionResult``.

Resource ceilings are described by :class:`Limits`.  They are fixed per
deployment and re-armed independently for every phase.
"""

from __future__ import annotations

import enum
import signal
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Limits:
    """Ceilings enforced on every phase.

    Attributes
    ----------
    run_timeout_ms: int
        Wall-clock budget of the run phase.
    compile_timeout_ms: int
        Wall-clock budget of the compile phase.
    memory_kib: int
        Resident memory ceiling, shared by both phases.
    max_output_bytes: int
        Capture ceiling applied to stdout and stderr separately.
    """

    run_timeout_ms: int = 60_000
    compile_timeout_ms: int = 60_000
    memory_kib: int = 256 * 1024
    max_output_bytes: int = 512 * 1024


class LimitKind(enum.Enum):
    TIME = "time"
    MEMORY = "memory"
    OUTPUT = "output"
    ERROR_OUTPUT = "error_output"


@dataclass(frozen=True)
class ExitInfo:
    """How a process ended on its own.

    ``code`` is ``None`` when the process was killed by a signal, in which
    case ``signal`` holds the signal number.
    """

    code: Optional[int]
    signal: Optional[int] = None

    @classmethod
    def from_returncode(cls, returncode: int) -> "ExitInfo":
        # asyncio reports death by signal N as -N
        if returncode < 0:
            return cls(code=None, signal=-returncode)
        return cls(code=returncode)

    def describe(self) -> str:
        message = f"Process exited with code {self.code}"
        if self.signal is not None:
            try:
                name = signal.Signals(self.signal).name
            except ValueError:
                name = str(self.signal)
            message += f" signal:{name}"
        return message


@dataclass(frozen=True)
class Success:
    """The phase exited with status zero and stayed within its limits."""

    stdout: str
    stderr: str
    duration_ms: int = 0
    peak_memory_kib: int = 0

    @property
    def output(self) -> str:
        # Programs that only write to stderr still produce output.
        return self.stdout or self.stderr


@dataclass(frozen=True)
class LimitExceeded:
    """A watcher terminated the phase; ``output`` is what was captured."""

    kind: LimitKind
    output: str


@dataclass(frozen=True)
class ProcessError:
    """The command could not be spawned at all."""

    message: str


@dataclass(frozen=True)
class NonZeroExit:
    """The process ended on its own with a failure status."""

    exit_info: ExitInfo
    stdout: str
    stderr: str

    @property
    def diagnostic(self) -> str:
        return self.stderr or self.stdout or self.exit_info.describe()


PhaseOutcome = Union[Success, LimitExceeded, ProcessError, NonZeroExit]
