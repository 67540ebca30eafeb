"""Provisioning error taxonomy.

Every error is fatal to a run; nothing is retried automatically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .executor import CommandResult


class ProvisionError(Exception):
    """Base class for errors that abort a provisioning run."""

    def __init__(self, message: str, *, step: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self) -> str:
        if self.step:
            return f"{self.step}: {self.message}"
        return self.message


class UserAborted(ProvisionError):
    """The operator declined the confirmation prompt."""

    def __init__(self, message: str = "installation cancelled by user") -> None:
        super().__init__(message)


class CommandFailed(ProvisionError):
    """An external command exited non-zero or was killed."""

    def __init__(
        self,
        phase: str,
        result: CommandResult,
        *,
        step: str | None = None,
    ) -> None:
        self.phase = phase
        self.result = result
        if result.signal is not None:
            detail = f"killed by signal {result.signal_name}"
        else:
            detail = f"exit code {result.exit_code}"
        super().__init__(f"{phase} failed ({detail})", step=step)

    @property
    def exit_code(self) -> int:
        return self.result.exit_code

    @property
    def output(self) -> str:
        return self.result.output


class PermissionDenied(CommandFailed):
    """Privilege elevation was refused or is unavailable."""

    def __init__(
        self,
        phase: str,
        result: CommandResult,
        *,
        step: str | None = None,
    ) -> None:
        super().__init__(phase, result, step=step)
        self.message = f"{phase} failed: privilege elevation refused"


class ContractViolation(ProvisionError):
    """An action reported success but its goal is still unmet."""

    def __init__(self, message: str = "goal not satisfied after apply", *, step: str | None = None) -> None:
        super().__init__(message, step=step)


class MissingTemplate(ProvisionError):
    """The configuration template directory does not exist."""

    def __init__(self, path: object, *, step: str | None = None) -> None:
        self.path = path
        super().__init__(f"template source not found: {path}", step=step)


class Interrupted(ProvisionError):
    """The operator interrupted a running step."""

    def __init__(self, message: str = "interrupted by operator", *, step: str | None = None) -> None:
        super().__init__(message, step=step)
