"""
FastAPI application for the code runner.

This module configures the FastAPI application, registers the run and
discovery routes and enforces authentication via an API key.  All actual
work is delegated to a single :class:`~coderunner.orchestrator.Orchestrator`.
"""

from __future__ import annotations

from typing import Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import Config
from ..log import setup_logging
from ..models import LanguageInfo, RunErrorResponse, RunRequest, RunResponse
from ..orchestrator import ExecutionState, FailureKind, Orchestrator

config = Config.from_env()
logger = setup_logging(config.log_level)

logger.info(
    "Loaded config: workspace_root=%s, allowed_langs=%s, run_timeout_ms=%s, memory_limit_kb=%s",
    config.workspace_root,
    config.allowed_langs or "all",
    config.run_timeout_ms,
    config.memory_limit_kb,
)

orchestrator = Orchestrator.from_config(config)

app = FastAPI(title="Code Runner", version="0.1.0")


@app.middleware("http")
async def authenticate(request, call_next):
    """Middleware to enforce API key authentication on all requests."""
    path = request.url.path
    method = request.method
    client = getattr(request.client, "host", "unknown")

    logger.info("Incoming request: %s %s from %s", method, path, client)

    if config.api_key:
        provided_key = request.headers.get("x-api-key")
        if provided_key != config.api_key:
            logger.warning("Invalid API key for %s %s from %s", method, path, client)
            return JSONResponse(status_code=401, content={"detail": "Invalid API key"})

    response = await call_next(request)
    logger.info("Response: %s %s -> %s", method, path, response.status_code)
    return response


# Registered after the key check so preflight requests are answered before it.
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed bodies in the same shape as every other failure."""
    messages = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"errorType": FailureKind.INVALID_REQUEST.value, "output": messages},
    )


@app.get("/health")
async def health() -> Dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}


@app.get("/languages", response_model=List[LanguageInfo])
async def languages() -> List[LanguageInfo]:
    """List the languages this deployment accepts."""
    return [
        LanguageInfo(language=spec.language_id, aliases=list(spec.aliases), compiled=spec.compiled)
        for spec in orchestrator.registry.languages()
    ]


@app.post(
    "/run",
    response_model=RunResponse,
    responses={400: {"model": RunErrorResponse}},
)
async def run(req: RunRequest) -> JSONResponse:
    """Build and run the submitted program and return its output."""
    result = await orchestrator.execute(req.to_execution_request())
    status_code = 400 if result.state is ExecutionState.REJECTED else 200
    if not result.ok:
        logger.info("[/run] %s: %s", result.state.value, result.error_type.value)
    return JSONResponse(status_code=status_code, content=result.to_dict())
