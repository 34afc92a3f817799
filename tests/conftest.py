"""Shared fixtures: toolchains backed by the running interpreter."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from coderunner.executor import Limits
from coderunner.orchestrator import ExecutionRequest, Orchestrator
from coderunner.toolchains import ToolchainRegistry
from coderunner.workspace import WorkspaceManager
from helpers import COMPILED, INTERPRETED


@pytest.fixture
def workspace_root(tmp_path) -> Path:
    return tmp_path / "workspaces"


@pytest.fixture
def registry() -> ToolchainRegistry:
    return ToolchainRegistry([INTERPRETED, COMPILED])


@pytest.fixture
def make_orchestrator(workspace_root, registry):
    """Build an orchestrator with short limits; keyword arguments override them."""

    def factory(registry=registry, sampler=None, sample_interval_ms=50, **overrides):
        limits = Limits(
            **{
                "run_timeout_ms": 10_000,
                "compile_timeout_ms": 10_000,
                "memory_kib": 256 * 1024,
                "max_output_bytes": 512 * 1024,
                **overrides,
            }
        )
        return Orchestrator(
            limits,
            WorkspaceManager(workspace_root),
            registry,
            sampler=sampler,
            sample_interval_ms=sample_interval_ms,
        )

    return factory


@pytest.fixture
def execute():
    """Run one request synchronously."""

    def run(orchestrator, code, language="pytest-python", stdin=""):
        return asyncio.run(orchestrator.execute(ExecutionRequest(code, language, stdin)))

    return run
