"""Runtime execution context for a provisioning run."""

from __future__ import annotations

import logging
import os
import pwd
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from .errors import CommandFailed, PermissionDenied
from .executor import CommandResult, Executor

if TYPE_CHECKING:
    from .report import StepRecord

logger = logging.getLogger(__name__)

RELOAD_MARKER = "reload-requested"


class User(BaseModel):
    """Identity of the user being provisioned for."""

    name: str
    uid: int
    gid: int
    home: Path

    @classmethod
    def current(cls) -> User:
        """Return the invoking user, looking through sudo when run as root."""
        sudo_user = os.environ.get("SUDO_USER")
        if os.geteuid() == 0 and sudo_user:
            entry = pwd.getpwnam(sudo_user)
        else:
            entry = pwd.getpwuid(os.getuid())
        return cls(name=entry.pw_name, uid=entry.pw_uid, gid=entry.pw_gid, home=Path(entry.pw_dir))


def default_variables(user: User, **overrides: Any) -> dict[str, Any]:
    """Build the template variables available to plan files."""
    variables: dict[str, Any] = {
        "user": user.name,
        "uid": user.uid,
        "gid": user.gid,
        "home": str(user.home),
        "tools_dir": str(user.home / "ODR-mmbTools"),
        "config_dir": str(user.home / "dab"),
        "templates": str(Path.cwd() / "dab"),
        "supervisor_conf": "/etc/supervisor/supervisord.conf",
        "supervisor_port": 8001,
    }
    variables.update(overrides)
    return variables


class RunContext[P]:
    """Runtime state passed to every step of a run."""

    def __init__(
        self,
        target: P,
        *,
        user: User | None = None,
        executor: Executor | None = None,
        dry_run: bool = False,
        strict_templates: bool = True,
        state_dir: str | Path | None = None,
    ) -> None:
        self.target = target
        self.user = user or User.current()
        self.executor = executor or Executor()
        self.dry_run = dry_run
        self.strict_templates = strict_templates
        self.log: list[StepRecord] = []
        self.apt_refreshed = False
        if state_dir is None:
            state_dir = self.user.home / ".local" / "state" / "dabstrap"
        self.state_dir = Path(state_dir)

    @property
    def reload_marker(self) -> Path:
        return self.state_dir / RELOAD_MARKER

    @property
    def reload_requested(self) -> bool:
        """True while a supervisor reload is outstanding, including from an earlier run."""
        return self.reload_marker.is_file()

    def request_reload(self) -> None:
        """Mark the process supervisor as needing a reload.

        The request is kept on disk until the reload succeeds, so a run that
        aborts after changing supervisor config still reloads on the next run.
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.reload_marker.touch()
        logger.debug("Supervisor reload requested: %s", self.reload_marker)

    def clear_reload(self) -> None:
        self.reload_marker.unlink(missing_ok=True)

    def probe(self, argv: Sequence[str], **kwargs: Any) -> CommandResult:
        """Run a read-only query command; the caller inspects the result."""
        return self.executor.run(argv, **kwargs)

    def run(
        self,
        argv: Sequence[str],
        *,
        phase: str,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        input: str | None = None,
        elevate: bool = False,
    ) -> CommandResult:
        """Run a command that must succeed, raising on failure."""
        result = self.executor.run(argv, cwd=cwd, env=env, input=input, elevate=elevate)
        if result.ok:
            return result
        if result.denied:
            raise PermissionDenied(phase, result)
        raise CommandFailed(phase, result)
