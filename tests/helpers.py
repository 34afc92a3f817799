"""Toolchains, process checks and stubs shared by the tests."""

from __future__ import annotations

import sys
import time

import psutil

from coderunner.toolchains import CommandTemplate, ToolchainSpec

PYTHON = sys.executable

INTERPRETED = ToolchainSpec(
    "pytest-python",
    "program.py",
    run_command=CommandTemplate(PYTHON, ("{workspace}/program.py",)),
    aliases=("pyt",),
)

# py_compile exits non-zero with the SyntaxError on stderr, like a compiler.
COMPILED = ToolchainSpec(
    "pytest-compiled",
    "program.py",
    compile_command=CommandTemplate(PYTHON, ("-m", "py_compile", "{workspace}/program.py")),
    run_command=CommandTemplate(PYTHON, ("{workspace}/program.py",)),
)


class FixedSampler:
    """Memory sampler that always reports the same reading."""

    def __init__(self, value_kib):
        self.value_kib = value_kib
        self.calls = 0

    def sample_kib(self, pid):
        self.calls += 1
        return self.value_kib


def is_running(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def wait_until_gone(pid: int, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not is_running(pid):
            return True
        time.sleep(0.05)
    return not is_running(pid)
