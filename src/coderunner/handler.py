"""
Function-style entry point.

``handler(event)`` accepts the same JSON object as ``POST /run`` and
returns the same response dictionary, which makes the runner usable from a
serverless function or a job queue consumer without the HTTP layer.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .config import Config
from .log import setup_logging
from .models import RunRequest
from .orchestrator import FailureKind, Orchestrator

_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    global _orchestrator
    if _orchestrator is None:
        config = Config.from_env()
        setup_logging(config.log_level)
        _orchestrator = Orchestrator.from_config(config)
    return _orchestrator


async def handle(event: Dict[str, Any], orchestrator: Optional[Orchestrator] = None) -> Dict[str, Any]:
    orchestrator = orchestrator or get_orchestrator()
    try:
        request = RunRequest.model_validate(event)
    except ValidationError as exc:
        return {
            "errorType": FailureKind.INVALID_REQUEST.value,
            "output": "; ".join(error["msg"] for error in exc.errors()),
        }
    result = await orchestrator.execute(request.to_execution_request())
    return result.to_dict()


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Synchronous entry point for function runtimes."""
    return asyncio.run(handle(event))
