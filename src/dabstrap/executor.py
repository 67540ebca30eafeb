"""Shell/process executor: run external commands and capture their results."""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# shell convention for "command not found"
EXIT_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a single external command."""

    argv: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    elevated: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def signal(self) -> int | None:
        """Signal number that killed the child, if any."""
        if self.exit_code < 0:
            return -self.exit_code
        return None

    @property
    def signal_name(self) -> str | None:
        sig = self.signal
        if sig is None:
            return None
        try:
            return signal.Signals(sig).name
        except ValueError:
            return str(sig)

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return "\n".join(part.rstrip("\n") for part in (self.stdout, self.stderr) if part)

    @property
    def denied(self) -> bool:
        """True if sudo itself refused to run the command."""
        if not self.elevated:
            return False
        if self.exit_code == EXIT_NOT_FOUND:
            return self.stderr.startswith("sudo:")
        if self.exit_code != 1:
            return False
        text = self.stderr.lower()
        return "sudo:" in text and ("password" in text or "sudoers" in text)


class Executor:
    """Runs commands as child processes.

    A non-zero exit is returned, never raised; the caller decides what a
    failure means. Elevated commands are prefixed with ``sudo`` unless the
    process is already root.
    """

    def __init__(self, *, sudo: Sequence[str] = ("sudo",)) -> None:
        self.sudo = tuple(sudo)

    @property
    def is_root(self) -> bool:
        return os.geteuid() == 0

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        input: str | None = None,
        elevate: bool = False,
    ) -> CommandResult:
        cmd = [str(arg) for arg in argv]
        if elevate and not self.is_root:
            # sudo resets the environment, so extra variables go through env(1)
            assignments = [f"{k}={v}" for k, v in (env or {}).items()]
            if assignments:
                cmd = ["env", *assignments, *cmd]
            cmd = [*self.sudo, *cmd]

        run_env = None
        if env:
            run_env = {**os.environ, **env}

        logger.debug("RUN: %s (cwd=%s)", shlex.join(cmd), cwd)
        try:
            proc = subprocess.run(
                cmd,
                cwd=cwd,
                env=run_env,
                input=input,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            logger.debug("Command not found: %s", cmd[0])
            return CommandResult(
                argv=tuple(cmd),
                exit_code=EXIT_NOT_FOUND,
                stderr=f"{cmd[0]}: {exc.strerror or 'not found'}",
                elevated=elevate,
            )

        logger.debug("EXIT %d: %s", proc.returncode, cmd[0])
        return CommandResult(
            argv=tuple(cmd),
            exit_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            elevated=elevate,
        )
