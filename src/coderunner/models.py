"""Pydantic models for request and response bodies.

The wire format is shared by the HTTP API and the function handler.  A
response is either ``{"output": ...}`` or ``{"errorType": ..., "output": ...}``.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .orchestrator import ExecutionRequest


class RunRequest(BaseModel):
    """Request body for running a program."""

    code: str = Field(..., description="Source code to build and run.")
    language: Optional[str] = Field(
        default=None,
        description="Language identifier or alias, e.g. 'python', 'c++', 'js'.",
    )
    input: Optional[str] = Field(
        default=None, description="Standard input to pass to the program."
    )

    def to_execution_request(self) -> ExecutionRequest:
        return ExecutionRequest(
            source_text=self.code,
            language=self.language,
            stdin=self.input or "",
        )


class RunResponse(BaseModel):
    """Response body when the program ran successfully."""

    output: str


class RunErrorResponse(BaseModel):
    """Response body for every classified failure."""

    errorType: str = Field(..., description="Failure classification.")
    output: str = Field(..., description="Diagnostic or partial output.")


class LanguageInfo(BaseModel):
    """One supported language."""

    language: str
    aliases: List[str] = Field(default_factory=list)
    compiled: bool
