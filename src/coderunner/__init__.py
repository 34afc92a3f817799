"""Multi-language code runner.

Accepts source code in one of several languages, builds and/or runs it in
a child process group under wall-clock, memory and output limits, and
returns the captured output or a classified failure.

The top-level modules include:

* ``config`` – configuration handling for environment variables.
* ``toolchains`` – the language table: how to compile and run each language.
* ``workspace`` – per-request scratch directories.
* ``executor`` – the resource-bounded execution engine.
* ``orchestrator`` – compile/run sequencing and result classification.
* ``models`` – Pydantic models defining request and response schemas.
* ``api`` – FastAPI application exposing HTTP endpoints.
* ``handler`` – function-style entry point sharing the same orchestrator.
"""

from .orchestrator import ExecutionRequest, ExecutionResult, FailureKind, Orchestrator

__all__ = ["ExecutionRequest", "ExecutionResult", "FailureKind", "Orchestrator"]
