"""Built-in step kinds for host provisioning."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Any

from .context import RunContext
from .errors import MissingTemplate
from .patcher import ConfigPatcher, PatchRule, iter_files
from .predicates import (
    marker_present,
    owned_by,
    package_installed,
    python_package_installed,
    symlink_points_to,
    system_up_to_date,
    user_in_group,
)
from .spec import Specification, spec

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def _refresh_apt(ctx: RunContext[Any]) -> None:
    """Run ``apt-get update`` at most once per run."""
    if ctx.apt_refreshed:
        return
    ctx.run(["apt-get", "update"], phase="apt-get update", env=APT_ENV, elevate=True)
    ctx.apt_refreshed = True


# -- Package managers --


@spec("apt")
class AptPackages(Specification[Any]):
    """System packages, installed by name at any version."""

    def __init__(self, packages: list[str]) -> None:
        self.packages = list(packages)

    def missing(self, ctx: RunContext[Any]) -> list[str]:
        return [name for name in self.packages if not package_installed(ctx, name)]

    def equals(self, ctx: RunContext[Any]) -> bool:
        return not self.missing(ctx)

    def apply(self, ctx: RunContext[Any]) -> None:
        missing = self.missing(ctx)
        logger.info("Installing %d package(s): %s", len(missing), " ".join(missing))
        _refresh_apt(ctx)
        ctx.run(
            ["apt-get", "install", "-y", *missing],
            phase="apt-get install",
            env=APT_ENV,
            elevate=True,
        )


@spec("apt_upgrade")
class AptUpgrade(Specification[Any]):
    """All installed system packages at their latest available version."""

    def equals(self, ctx: RunContext[Any]) -> bool:
        return system_up_to_date(ctx)

    def apply(self, ctx: RunContext[Any]) -> None:
        _refresh_apt(ctx)
        ctx.run(["apt-get", "upgrade", "-y"], phase="apt-get upgrade", env=APT_ENV, elevate=True)


@spec("pip")
class PipPackages(Specification[Any]):
    """Python packages for the system interpreter."""

    def __init__(
        self,
        requirements: list[str],
        python: str = "python3",
        break_system_packages: bool = True,
    ) -> None:
        self.requirements = list(requirements)
        self.python = python
        self.break_system_packages = break_system_packages

    def missing(self, ctx: RunContext[Any]) -> list[str]:
        return [
            req
            for req in self.requirements
            if not python_package_installed(ctx, req, python=self.python)
        ]

    def equals(self, ctx: RunContext[Any]) -> bool:
        return not self.missing(ctx)

    def apply(self, ctx: RunContext[Any]) -> None:
        for req in self.missing(ctx):
            argv = [self.python, "-m", "pip", "install"]
            if self.break_system_packages:
                argv.append("--break-system-packages")
            ctx.run([*argv, req], phase=f"pip install {req}", elevate=True)


# -- Filesystem --


@spec("directory")
class Directories(Specification[Any]):
    """Directories that must exist."""

    def __init__(self, paths: list[str]) -> None:
        self.paths = [Path(p) for p in paths]

    def equals(self, ctx: RunContext[Any]) -> bool:
        return all(p.is_dir() for p in self.paths)

    def apply(self, ctx: RunContext[Any]) -> None:
        for path in self.paths:
            path.mkdir(parents=True, exist_ok=True)


@spec("template")
class ConfigTemplate(Specification[Any]):
    """A template directory copied into place and patched for the user."""

    def __init__(
        self,
        src: str,
        dest: str,
        pattern: str = "*.conf",
        rule: list[dict[str, str]] | None = None,
        strict: bool | None = None,
    ) -> None:
        self.src = Path(src)
        self.dest = Path(dest)
        self.rules = [PatchRule(**r) for r in rule or []]
        self.patcher = ConfigPatcher(self.rules, pattern=pattern)
        self.strict = strict

    def _strict(self, ctx: RunContext[Any]) -> bool:
        return ctx.strict_templates if self.strict is None else self.strict

    def _owned(self, ctx: RunContext[Any]) -> bool:
        return all(owned_by(self.dest / rel, ctx.user) for rel in iter_files(self.src))

    def equals(self, ctx: RunContext[Any]) -> bool:
        if not self.src.is_dir():
            if self._strict(ctx):
                logger.warning("Template source not found, applying will abort: %s", self.src)
                return False
            logger.warning("Template source not found, skipping: %s", self.src)
            return True
        return self.patcher.is_current(self.src, self.dest) and self._owned(ctx)

    def apply(self, ctx: RunContext[Any]) -> None:
        if not self.src.is_dir():
            raise MissingTemplate(self.src)
        self.patcher.install(self.src, self.dest)
        if not self._owned(ctx):
            owner = f"{ctx.user.uid}:{ctx.user.gid}"
            ctx.run(["chown", "-R", owner, str(self.dest)], phase="chown", elevate=True)


@spec("links")
class ConfigLinks(Specification[Any]):
    """Symlinks in a drop-in directory pointing at config fragments."""

    def __init__(self, src: str, dest: str, pattern: str = "*.conf") -> None:
        self.src = Path(src)
        self.dest = Path(dest)
        self.pattern = pattern

    def fragments(self) -> list[Path]:
        if not self.src.is_dir():
            return []
        return sorted(p for p in self.src.glob(self.pattern) if p.is_file())

    def equals(self, ctx: RunContext[Any]) -> bool:
        fragments = self.fragments()
        if not fragments:
            logger.warning("No %s files found in %s to link", self.pattern, self.src)
            return True
        return all(symlink_points_to(self.dest / f.name, f) for f in fragments)

    def apply(self, ctx: RunContext[Any]) -> None:
        for fragment in self.fragments():
            link = self.dest / fragment.name
            if symlink_points_to(link, fragment):
                continue
            ctx.run(["ln", "-sf", str(fragment), str(link)], phase=f"link {fragment.name}", elevate=True)
        ctx.request_reload()


# -- Users --


@spec("group")
class GroupMembership(Specification[Any]):
    """The invoking user as a member of extra groups."""

    def __init__(self, groups: list[str]) -> None:
        self.groups = list(groups)

    def equals(self, ctx: RunContext[Any]) -> bool:
        return all(user_in_group(ctx.user, g) for g in self.groups)

    def apply(self, ctx: RunContext[Any]) -> None:
        for group in self.groups:
            if user_in_group(ctx.user, group):
                continue
            ctx.run(
                ["usermod", "--append", "--groups", group, ctx.user.name],
                phase=f"usermod {group}",
                elevate=True,
            )


# -- Process supervisor --


def _ends_with_newline(path: Path) -> bool:
    """True if the file is missing, empty, or its last byte is a newline."""
    try:
        with path.open("rb") as fh:
            if fh.seek(0, os.SEEK_END) == 0:
                return True
            fh.seek(-1, os.SEEK_END)
            return fh.read(1) == b"\n"
    except FileNotFoundError:
        return True


@spec("block")
class ConfigBlock(Specification[Any]):
    """A block of lines appended to a config file, detected by a marker."""

    def __init__(self, path: str, marker: str, lines: list[str], reload: bool = True) -> None:
        self.path = Path(path)
        self.marker = marker
        self.lines = list(lines)
        self.reload = reload

    def equals(self, ctx: RunContext[Any]) -> bool:
        return marker_present(self.path, self.marker)

    def apply(self, ctx: RunContext[Any]) -> None:
        content = "\n".join(self.lines) + "\n"
        if not _ends_with_newline(self.path):
            content = "\n" + content
        ctx.run(["tee", "-a", str(self.path)], phase=f"append to {self.path}", input=content, elevate=True)
        if self.reload:
            ctx.request_reload()


@spec("supervisor")
class SupervisorReload(Specification[Any]):
    """Supervisor restarted and its programs updated after config changes."""

    def __init__(self, service: str = "supervisor", settle: float = 2.0) -> None:
        self.service = service
        self.settle = settle

    def equals(self, ctx: RunContext[Any]) -> bool:
        # the request outlives a failed reload, so a later run retries it
        return not ctx.reload_requested

    def apply(self, ctx: RunContext[Any]) -> None:
        ctx.run(["systemctl", "restart", self.service], phase="restart supervisor", elevate=True)
        if self.settle:
            time.sleep(self.settle)
        ctx.run(["supervisorctl", "reread"], phase="supervisorctl reread", elevate=True)
        ctx.run(["supervisorctl", "update"], phase="supervisorctl update", elevate=True)
        ctx.clear_reload()
