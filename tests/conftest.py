"""Shared fixtures: a fake command runner and throwaway executables."""

from __future__ import annotations

import math
import os
import stat
import subprocess
import sys
import textwrap
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

Handler = Callable[[list[str]], tuple[int, str]]


class FakeRunner:
    """Records commands instead of running them.

    Handlers are keyed by program name (after any leading ``sudo``) and
    return ``(returncode, stderr)``. Unknown programs succeed.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.handlers: dict[str, Handler] = {}

    def on(self, program: str, handler: Handler) -> None:
        self.handlers[program] = handler

    def fail(self, program: str, returncode: int, stderr: str = "") -> None:
        self.on(program, lambda args: (returncode, stderr))

    def programs(self) -> list[str]:
        return [self._strip_sudo(cmd)[0] for cmd in self.calls]

    def __call__(self, cmd: Sequence[str]) -> subprocess.CompletedProcess[str]:
        cmd = list(cmd)
        self.calls.append(cmd)
        args = self._strip_sudo(cmd)
        handler = self.handlers.get(args[0])
        returncode, stderr = handler(args) if handler else (0, "")
        return subprocess.CompletedProcess(cmd, returncode, stderr=stderr)

    @staticmethod
    def _strip_sudo(cmd: list[str]) -> list[str]:
        return cmd[1:] if cmd[0] == "sudo" else cmd


class FakeInterface:
    """Stands in for ip(8) against an interface created ``delay`` seconds from now."""

    def __init__(self, name: str = "tun0", delay: float = 0.0) -> None:
        self.name = name
        self.appears_at = time.monotonic() + delay
        self.addresses: list[str] = []
        self.up = False

    @classmethod
    def never(cls, name: str = "tun0") -> FakeInterface:
        return cls(name, math.inf)

    def __call__(self, args: list[str]) -> tuple[int, str]:
        if time.monotonic() < self.appears_at:
            return 1, f'Cannot find device "{self.name}"\n'
        if args[1:3] == ["addr", "add"]:
            if args[3] in self.addresses:
                return 2, "RTNETLINK answers: File exists\n"
            self.addresses.append(args[3])
        elif args[1:4] == ["link", "set", "up"]:
            self.up = True
        return 0, ""


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_executable(tmp_path: Path) -> Callable[[str], Path]:
    """Write a Python script with a shebang and make it executable."""
    counter = 0

    def make(body: str) -> Path:
        nonlocal counter
        counter += 1
        path = tmp_path / f"child{counter}"
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP)
        return path

    return make


def wait_for_file(path: Path, timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while not path.exists():
        if time.monotonic() > deadline:
            raise AssertionError(f"{path} never appeared")
        time.sleep(0.01)


@pytest.fixture
def children():
    """Collects spawned children and kills any left running after the test."""
    spawned = []
    yield spawned
    for child in spawned:
        if child.process.poll() is None:
            os.kill(child.pid, 9)
            child.process.wait()
