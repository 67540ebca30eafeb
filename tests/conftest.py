"""Shared fixtures for dabstrap tests."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from dabstrap.context import RunContext, User
from dabstrap.executor import CommandResult

Handler = Callable[[list[str]], CommandResult | None]


class StubExecutor:
    """Records every command and answers from a list of handlers.

    Each handler receives the argv and returns a CommandResult, or None to
    let the next handler try. Unhandled commands succeed with no output.
    """

    def __init__(self, *handlers: Handler) -> None:
        self.handlers = list(handlers)
        self.calls: list[dict] = []

    def run(self, argv, *, cwd=None, env=None, input=None, elevate=False) -> CommandResult:
        cmd = [str(a) for a in argv]
        self.calls.append({"argv": cmd, "cwd": cwd, "env": env, "input": input, "elevate": elevate})
        for handler in self.handlers:
            result = handler(cmd)
            if result is not None:
                return result
        return CommandResult(argv=tuple(cmd), exit_code=0, elevated=elevate)

    @property
    def argvs(self) -> list[list[str]]:
        return [c["argv"] for c in self.calls]

    def find(self, *prefix: str) -> list[dict]:
        """Calls whose argv starts with the given words."""
        return [c for c in self.calls if c["argv"][: len(prefix)] == list(prefix)]


def fail_on(*prefix: str, exit_code: int = 1, stderr: str = "boom") -> Handler:
    def handler(argv: list[str]) -> CommandResult | None:
        if argv[: len(prefix)] == list(prefix):
            return CommandResult(argv=tuple(argv), exit_code=exit_code, stderr=stderr)
        return None

    return handler


def reply(*prefix: str, stdout: str = "", exit_code: int = 0) -> Handler:
    def handler(argv: list[str]) -> CommandResult | None:
        if argv[: len(prefix)] == list(prefix):
            return CommandResult(argv=tuple(argv), exit_code=exit_code, stdout=stdout)
        return None

    return handler


@pytest.fixture
def user(tmp_path: Path) -> User:
    return User(name="tester", uid=os.getuid(), gid=os.getgid(), home=tmp_path / "home")


@pytest.fixture
def stub() -> StubExecutor:
    return StubExecutor()


@pytest.fixture
def make_ctx(user: User, stub: StubExecutor):
    def _make_ctx(**kwargs) -> RunContext:
        kwargs.setdefault("executor", stub)
        kwargs.setdefault("user", user)
        return RunContext(target=None, **kwargs)

    return _make_ctx
