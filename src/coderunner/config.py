"""Configuration loader.

The runner reads its configuration from environment variables so that the
same image can serve the HTTP API and the function-style handler.  Defaults
match the limits of the judge: one minute per phase, 256 MiB of resident
memory and 512 KiB of captured output per stream.

Environment variables:

``CODERUNNER_API_KEY``
    Shared secret expected in the ``x-api-key`` header.  Empty disables the
    check, which is convenient for local development.

``CODERUNNER_WORKSPACE_ROOT``
    Directory under which one scratch directory per request is created.
    Defaults to ``coderunner`` inside the system temporary directory.

``CODERUNNER_ALLOWED_LANGS``
    Comma-separated list of language identifiers to expose.  Empty (the
    default) exposes every built-in toolchain.

``CODERUNNER_DEFAULT_LANGUAGE``
    Language used when a request does not name one.  Unset by default, in
    which case such requests are rejected as unsupported.

``CODERUNNER_RUN_TIMEOUT_MS`` / ``CODERUNNER_COMPILE_TIMEOUT_MS``
    Wall-clock budget for the run and compile phases.  Default 60000.

``CODERUNNER_MEMORY_LIMIT_KB``
    Resident set size ceiling in KiB, shared by both phases.  Default 262144.

``CODERUNNER_MAX_OUTPUT_BYTES``
    Capture ceiling for each of stdout and stderr.  Default 524288.

``CODERUNNER_MEMORY_SAMPLE_INTERVAL_MS``
    How often resident memory is sampled.  Default 500.

``CODERUNNER_MEMORY_BACKEND``
    ``psutil`` (default) or ``procfs``.

``CODERUNNER_CORS_ORIGINS``
    Comma-separated list of origins allowed to call the HTTP API from a
    browser.  Default ``*``.

``CODERUNNER_LOG_LEVEL``
    Level of the ``coderunner`` logger.  Default ``INFO``.

``PORT``
    Port for the HTTP server.  Defaults to 5100.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional

from .executor.base import Limits

MEMORY_BACKENDS = {"psutil", "procfs"}


def _parse_list(value: str | None, lower: bool = True) -> List[str]:
    if not value:
        return []
    items = [item.strip() for item in value.split(",") if item.strip()]
    return [item.lower() for item in items] if lower else items


def _int_var(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    try:
        parsed = int(val)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {val}")
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {parsed}")
    return parsed


@dataclass
class Config:
    """Centralised configuration object."""

    api_key: str = ""
    workspace_root: str = field(
        default_factory=lambda: os.path.join(tempfile.gettempdir(), "coderunner")
    )
    allowed_langs: List[str] = field(default_factory=list)
    default_language: Optional[str] = None
    run_timeout_ms: int = 60_000
    compile_timeout_ms: int = 60_000
    memory_limit_kb: int = 256 * 1024
    max_output_bytes: int = 512 * 1024
    memory_sample_interval_ms: int = 500
    memory_backend: str = "psutil"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 5100

    @classmethod
    def load(cls) -> "Config":
        memory_backend = os.getenv("CODERUNNER_MEMORY_BACKEND", "psutil").strip().lower()
        if memory_backend not in MEMORY_BACKENDS:
            raise ValueError(
                f"Invalid CODERUNNER_MEMORY_BACKEND: {memory_backend}. Use 'psutil' or 'procfs'."
            )

        workspace_root = os.getenv("CODERUNNER_WORKSPACE_ROOT") or os.path.join(
            tempfile.gettempdir(), "coderunner"
        )
        default_language = os.getenv("CODERUNNER_DEFAULT_LANGUAGE", "").strip().lower() or None

        return cls(
            api_key=os.getenv("CODERUNNER_API_KEY", ""),
            workspace_root=workspace_root,
            allowed_langs=_parse_list(os.getenv("CODERUNNER_ALLOWED_LANGS")),
            default_language=default_language,
            run_timeout_ms=_int_var("CODERUNNER_RUN_TIMEOUT_MS", 60_000),
            compile_timeout_ms=_int_var("CODERUNNER_COMPILE_TIMEOUT_MS", 60_000),
            memory_limit_kb=_int_var("CODERUNNER_MEMORY_LIMIT_KB", 256 * 1024),
            max_output_bytes=_int_var("CODERUNNER_MAX_OUTPUT_BYTES", 512 * 1024),
            memory_sample_interval_ms=_int_var("CODERUNNER_MEMORY_SAMPLE_INTERVAL_MS", 500),
            memory_backend=memory_backend,
            cors_origins=_parse_list(os.getenv("CODERUNNER_CORS_ORIGINS"), lower=False) or ["*"],
            log_level=os.getenv("CODERUNNER_LOG_LEVEL", "INFO").upper(),
            port=_int_var("PORT", 5100),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """
        Alternate constructor used by the transport adapters.

        This wrapper calls :meth:`load` to construct the configuration.
        """
        return cls.load()

    def limits(self) -> Limits:
        """Return the ceilings applied to every request."""
        return Limits(
            run_timeout_ms=self.run_timeout_ms,
            compile_timeout_ms=self.compile_timeout_ms,
            memory_kib=self.memory_limit_kb,
            max_output_bytes=self.max_output_bytes,
        )
