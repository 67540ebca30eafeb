"""Build-from-source steps: clone, bootstrap, configure, make, install."""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from .context import RunContext
from .errors import ContractViolation
from .spec import Specification, spec

logger = logging.getLogger(__name__)

STAMP_FILE = ".dabstrap-build.json"


class BuildPhase(StrEnum):
    CLONE = "clone"
    BOOTSTRAP = "bootstrap"
    CONFIGURE = "configure"
    BUILD = "build"
    INSTALL = "install"
    LDCONFIG = "ldconfig"


class BuildSpec(BaseModel):
    """One source dependency to fetch and build.

    ``configure_flags`` are passed to ``./configure`` verbatim and in order;
    a flag containing spaces stays a single argument.
    """

    repo_url: str
    target_dir: Path
    configure_flags: list[str] = Field(default_factory=list)
    branch: str | None = None
    jobs: int | None = None

    def clone_argv(self) -> list[str]:
        argv = ["git", "clone"]
        if self.branch:
            argv += ["--branch", self.branch]
        return [*argv, self.repo_url, str(self.target_dir)]

    def configure_argv(self) -> list[str]:
        return ["./configure", *self.configure_flags]

    def build_argv(self) -> list[str]:
        jobs = self.jobs or os.cpu_count() or 1
        return ["make", f"-j{jobs}"]

    def stamp(self) -> dict[str, Any]:
        """What gets recorded after a successful install."""
        return {"repo": self.repo_url, "flags": self.configure_flags}


# -- Bootstrap strategies --


class BootstrapStrategy(ABC):
    """One way of generating a configure script."""

    name: str

    @abstractmethod
    def detect(self, source: Path) -> bool:
        """True if this strategy applies to the source tree."""

    @abstractmethod
    def argv(self, source: Path) -> list[str]: ...


class ScriptBootstrap(BootstrapStrategy):
    """Run a bootstrap script shipped in the source tree."""

    def __init__(self, script: str) -> None:
        self.name = script

    def detect(self, source: Path) -> bool:
        return (source / self.name).is_file()

    def argv(self, source: Path) -> list[str]:
        return [f"./{self.name}"]


class AutoreconfBootstrap(BootstrapStrategy):
    """Regenerate the autotools files directly."""

    name = "autoreconf"

    def detect(self, source: Path) -> bool:
        return True

    def argv(self, source: Path) -> list[str]:
        return ["autoreconf", "-fi"]


# checked in order; the first match wins
BOOTSTRAP_STRATEGIES: list[BootstrapStrategy] = [
    ScriptBootstrap("bootstrap"),
    ScriptBootstrap("bootstrap.sh"),
    ScriptBootstrap("autogen.sh"),
    AutoreconfBootstrap(),
]


def detect_bootstrap(
    source: Path,
    strategies: list[BootstrapStrategy] | None = None,
) -> BootstrapStrategy:
    """Return the first strategy that applies to the source tree."""
    for strategy in strategies if strategies is not None else BOOTSTRAP_STRATEGIES:
        if strategy.detect(source):
            logger.debug("Bootstrap for %s: %s", source, strategy.name)
            return strategy
    raise ValueError(f"No bootstrap strategy applies to {source}")


# -- Source build spec --


@spec("source")
class SourceBuild(Specification[Any]):
    """Clone a repository and build and install it with autotools."""

    def __init__(
        self,
        repo: str,
        dir: str,
        flags: list[str] | None = None,
        branch: str | None = None,
        jobs: int | None = None,
        update: bool = False,
    ) -> None:
        self.build = BuildSpec(
            repo_url=repo,
            target_dir=Path(dir),
            configure_flags=list(flags or []),
            branch=branch,
            jobs=jobs,
        )
        self.update = update

    @property
    def stamp_path(self) -> Path:
        return self.build.target_dir / STAMP_FILE

    def _read_stamp(self) -> dict[str, Any] | None:
        try:
            return json.loads(self.stamp_path.read_text())
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt build stamp: %s", self.stamp_path)
            return None

    def exists(self, ctx: RunContext[Any]) -> bool:
        return self._read_stamp() is not None

    def equals(self, ctx: RunContext[Any]) -> bool:
        return self._read_stamp() == self.build.stamp()

    def apply(self, ctx: RunContext[Any]) -> None:
        build = self.build
        source = build.target_dir

        if not source.is_dir():
            source.parent.mkdir(parents=True, exist_ok=True)
            ctx.run(build.clone_argv(), phase=BuildPhase.CLONE)
            if not source.is_dir():
                raise ContractViolation(f"{BuildPhase.CLONE} did not create {source}")
        elif self.update:
            ctx.run(["git", "pull", "--ff-only"], phase=BuildPhase.CLONE, cwd=source)

        # drop any stamp left by a previous configuration
        self.stamp_path.unlink(missing_ok=True)

        strategy = detect_bootstrap(source)
        ctx.run(strategy.argv(source), phase=BuildPhase.BOOTSTRAP, cwd=source)
        ctx.run(build.configure_argv(), phase=BuildPhase.CONFIGURE, cwd=source)
        ctx.run(build.build_argv(), phase=BuildPhase.BUILD, cwd=source)
        ctx.run(["make", "install"], phase=BuildPhase.INSTALL, cwd=source, elevate=True)
        ctx.run(["ldconfig"], phase=BuildPhase.LDCONFIG, elevate=True)

        self.stamp_path.write_text(json.dumps(build.stamp(), indent=2) + "\n")
        logger.info("Installed %s", build.repo_url)

