"""
Execution orchestrator.

Sequences one request through its phases::

    Staging -> Compiling (optional) -> Running -> <terminal state> -> Cleaned

The orchestrator is the boundary of the engine: every failure, including
unexpected exceptions, is converted into an :class:`ExecutionResult` and
the workspace is released on every path.  Transport adapters only translate
requests in and results out.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import Config
from .executor import (
    LimitExceeded,
    LimitKind,
    Limits,
    MemorySampler,
    NonZeroExit,
    PhaseOutcome,
    PhaseRunner,
    ProcessError,
    ProcessSupervisor,
    Success,
    sampler_for_backend,
)
from .toolchains import ToolchainRegistry, ToolchainSpec, UnsupportedLanguageError
from .workspace import Workspace, WorkspaceManager

logger = logging.getLogger("coderunner.orchestrator")


class InvalidRequestError(ValueError):
    """Raised for requests that are malformed before any work starts."""


class ExecutionState(enum.Enum):
    STAGING = "staging"
    COMPILING = "compiling"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    COMPILE_FAILED = "compile_failed"
    RUNTIME_FAILED = "runtime_failed"
    TIMED_OUT = "timed_out"
    MEMORY_EXCEEDED = "memory_exceeded"
    OUTPUT_EXCEEDED = "output_exceeded"
    INTERNAL_ERROR = "internal_error"
    REJECTED = "rejected"


class FailureKind(str, enum.Enum):
    """User-facing ``errorType`` values."""

    TIME_LIMIT = "Time limit exceeded"
    MEMORY_LIMIT = "Memory limit exceeded"
    OUTPUT_LIMIT = "Output Limit Exceeded"
    ERROR_LIMIT = "Error Limit Exceeded"
    SYNTAX_ERROR = "Syntax Error"
    ERROR_OCCURRED = "Error occurred"
    SERVER_ERROR = "ServerError"
    INVALID_REQUEST = "Invalid request"
    UNSUPPORTED_LANGUAGE = "Unsupported language"


_LIMIT_FAILURES = {
    LimitKind.TIME: (ExecutionState.TIMED_OUT, FailureKind.TIME_LIMIT),
    LimitKind.MEMORY: (ExecutionState.MEMORY_EXCEEDED, FailureKind.MEMORY_LIMIT),
    LimitKind.OUTPUT: (ExecutionState.OUTPUT_EXCEEDED, FailureKind.OUTPUT_LIMIT),
    LimitKind.ERROR_OUTPUT: (ExecutionState.OUTPUT_EXCEEDED, FailureKind.ERROR_LIMIT),
}


@dataclass(frozen=True)
class ExecutionRequest:
    """One submission: source text, language identifier and stdin."""

    source_text: str
    language: Optional[str] = None
    stdin: Optional[str] = ""

    def validate(self) -> None:
        if not isinstance(self.source_text, str) or not self.source_text.strip():
            raise InvalidRequestError("Invalid or empty code provided")
        if self.language is not None and not isinstance(self.language, str):
            raise InvalidRequestError("Language must be a string")
        if self.stdin is not None and not isinstance(self.stdin, str):
            raise InvalidRequestError("Input must be a string")


@dataclass(frozen=True)
class ExecutionResult:
    """Request-level outcome: either output or a classified failure.

    ``error_type`` is ``None`` exactly when the request succeeded.
    """

    state: ExecutionState
    output: str
    error_type: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.error_type is None

    @classmethod
    def success(cls, output: str) -> "ExecutionResult":
        return cls(ExecutionState.SUCCEEDED, output)

    @classmethod
    def failure(cls, state: ExecutionState, kind: FailureKind, message: str) -> "ExecutionResult":
        return cls(state, message, kind)

    def to_dict(self) -> Dict[str, Any]:
        if self.error_type is None:
            return {"output": self.output}
        return {"errorType": self.error_type.value, "output": self.output}


class Orchestrator:
    """Run requests end to end.  One instance serves many concurrent requests."""

    def __init__(
        self,
        limits: Limits,
        workspaces: WorkspaceManager,
        registry: Optional[ToolchainRegistry] = None,
        *,
        sampler: Optional[MemorySampler] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        sample_interval_ms: int = 500,
        default_language: Optional[str] = None,
    ) -> None:
        self.limits = limits
        self.workspaces = workspaces
        self.registry = registry or ToolchainRegistry.default()
        self.default_language = default_language
        self.runner = PhaseRunner(
            supervisor or ProcessSupervisor(),
            sampler or sampler_for_backend("psutil"),
            memory_kib=limits.memory_kib,
            max_output_bytes=limits.max_output_bytes,
            sample_interval_ms=sample_interval_ms,
        )

    @classmethod
    def from_config(cls, config: Config) -> "Orchestrator":
        return cls(
            config.limits(),
            WorkspaceManager(config.workspace_root),
            ToolchainRegistry.default(config.allowed_langs),
            sampler=sampler_for_backend(config.memory_backend),
            sample_interval_ms=config.memory_sample_interval_ms,
            default_language=config.default_language,
        )

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Execute ``request``; never raises."""
        try:
            return await self._execute(request)
        except Exception as exc:
            logger.exception("Unhandled error during execution: %s", exc)
            return ExecutionResult.failure(
                ExecutionState.INTERNAL_ERROR, FailureKind.SERVER_ERROR, str(exc)
            )

    async def _execute(self, request: ExecutionRequest) -> ExecutionResult:
        try:
            request.validate()
            spec = self.registry.resolve(request.language or self.default_language)
        except InvalidRequestError as exc:
            return ExecutionResult.failure(
                ExecutionState.REJECTED, FailureKind.INVALID_REQUEST, str(exc)
            )
        except UnsupportedLanguageError as exc:
            logger.info("Rejected request: %s", exc)
            return ExecutionResult.failure(
                ExecutionState.REJECTED, FailureKind.UNSUPPORTED_LANGUAGE, str(exc)
            )

        logger.info("Processing %s request", spec.language_id)
        workspace = self.workspaces.stage(request.source_text, request.stdin or "", spec)
        try:
            result = await self._run_phases(spec, workspace)
        finally:
            self.workspaces.release(workspace)
        logger.info("Request %s finished in state %s", workspace.id, result.state.value)
        return result

    async def _run_phases(self, spec: ToolchainSpec, workspace: Workspace) -> ExecutionResult:
        if spec.compile_command is not None:
            logger.debug("[%s] Compiling", workspace.id)
            outcome = await self.runner.run(
                spec.compile_command.render(workspace.path),
                workspace.path,
                timeout_ms=self.limits.compile_timeout_ms,
            )
            if not isinstance(outcome, Success):
                return self._classify(outcome, ExecutionState.COMPILE_FAILED)

        logger.debug("[%s] Running", workspace.id)
        outcome = await self.runner.run(
            spec.run_command.render(workspace.path),
            workspace.path,
            timeout_ms=self.limits.run_timeout_ms,
            stdin=workspace.read_input(),
        )
        return self._classify(outcome, ExecutionState.RUNTIME_FAILED)

    def _classify(self, outcome: PhaseOutcome, exit_state: ExecutionState) -> ExecutionResult:
        if isinstance(outcome, Success):
            return ExecutionResult.success(outcome.output)
        if isinstance(outcome, LimitExceeded):
            state, kind = _LIMIT_FAILURES[outcome.kind]
            return ExecutionResult.failure(state, kind, outcome.output)
        if isinstance(outcome, NonZeroExit):
            return ExecutionResult.failure(exit_state, FailureKind.ERROR_OCCURRED, outcome.diagnostic)
        if isinstance(outcome, ProcessError):
            return ExecutionResult.failure(
                ExecutionState.INTERNAL_ERROR, FailureKind.SYNTAX_ERROR, outcome.message
            )
        raise TypeError(f"Unknown phase outcome: {outcome!r}")
