"""
Resource-bounded execution engine.

A command runs as its own process group under three ceilings: wall clock,
resident memory and captured output.  :class:`PhaseRunner` combines the
supervisor, the resource monitor and the output aggregator and resolves
every run to exactly one outcome from :mod:`.base`.
"""

from .base import (
    ExitInfo,
    LimitExceeded,
    LimitKind,
    Limits,
    NonZeroExit,
    PhaseOutcome,
    ProcessError,
    Success,
)
from .memory import MemorySampler, ProcStatusMemorySampler, PsutilMemorySampler, sampler_for_backend
from .monitor import OutcomeGuard, PhaseRunner, ResourceMonitor
from .output import OutputAggregator, Stream
from .supervisor import ProcessHandle, ProcessSupervisor

__all__ = [
    "ExitInfo",
    "LimitExceeded",
    "LimitKind",
    "Limits",
    "NonZeroExit",
    "PhaseOutcome",
    "ProcessError",
    "Success",
    "MemorySampler",
    "ProcStatusMemorySampler",
    "PsutilMemorySampler",
    "sampler_for_backend",
    "OutcomeGuard",
    "PhaseRunner",
    "ResourceMonitor",
    "OutputAggregator",
    "Stream",
    "ProcessHandle",
    "ProcessSupervisor",
]
