"""Tests for the function-style entry point."""

from __future__ import annotations

import asyncio

from coderunner import handler as handler_module
from coderunner.executor import Limits
from coderunner.orchestrator import Orchestrator
from coderunner.toolchains import ToolchainRegistry
from coderunner.workspace import WorkspaceManager
from helpers import INTERPRETED


def _orchestrator(tmp_path):
    return Orchestrator(
        Limits(run_timeout_ms=5000),
        WorkspaceManager(tmp_path),
        ToolchainRegistry([INTERPRETED]),
    )


def test_handle_success(tmp_path):
    event = {"code": "print(input()[::-1])", "language": "pytest-python", "input": "abc"}
    response = asyncio.run(handler_module.handle(event, _orchestrator(tmp_path)))
    assert response == {"output": "cba\n"}


def test_handle_failure(tmp_path):
    event = {"code": "import time\ntime.sleep(30)", "language": "pyt"}
    orchestrator = Orchestrator(
        Limits(run_timeout_ms=300), WorkspaceManager(tmp_path), ToolchainRegistry([INTERPRETED])
    )
    response = asyncio.run(handler_module.handle(event, orchestrator))
    assert response == {"errorType": "Time limit exceeded", "output": ""}


def test_handle_invalid_event(tmp_path):
    response = asyncio.run(handler_module.handle({"code": 5}, _orchestrator(tmp_path)))
    assert response["errorType"] == "Invalid request"


def test_handler_uses_shared_orchestrator(tmp_path, monkeypatch):
    monkeypatch.setattr(handler_module, "_orchestrator", _orchestrator(tmp_path))
    assert handler_module.handler({"code": "print('hi')", "language": "pyt"}) == {"output": "hi\n"}
    assert handler_module.handler({"code": "print('hi')", "language": "cobol"}) == {
        "errorType": "Unsupported language",
        "output": "Unsupported language: cobol",
    }


def test_handler_builds_orchestrator_from_env(tmp_path, monkeypatch):
    monkeypatch.setattr(handler_module, "_orchestrator", None)
    monkeypatch.setenv("CODERUNNER_WORKSPACE_ROOT", str(tmp_path))
    monkeypatch.setenv("CODERUNNER_ALLOWED_LANGS", "python")
    orchestrator = handler_module.get_orchestrator()
    assert [spec.language_id for spec in orchestrator.registry.languages()] == ["python"]
    assert handler_module.get_orchestrator() is orchestrator
