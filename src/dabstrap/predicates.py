"""Idempotency predicates.

Each predicate answers "is this goal already satisfied?" from local state
only: the filesystem, the package database, or installed package metadata.
None of them mutate anything.
"""

from __future__ import annotations

import grp
import logging
import re
from pathlib import Path

from packaging.requirements import InvalidRequirement, Requirement
from packaging.version import InvalidVersion, Version

from .context import RunContext, User

logger = logging.getLogger(__name__)

_PIP_VERSION = re.compile(r"^Version:\s*(\S+)", re.MULTILINE)
_APT_UPGRADED = re.compile(r"^(\d+) upgraded", re.MULTILINE)

# probe output below is parsed as untranslated English text
C_LOCALE = {"LC_ALL": "C"}


def package_installed(ctx: RunContext, name: str) -> bool:
    """True iff the system package is installed at any version."""
    result = ctx.probe(["dpkg-query", "-W", "-f=${Status}", name], env=C_LOCALE)
    return result.ok and "install ok installed" in result.stdout


def python_package_installed(ctx: RunContext, requirement: str, *, python: str = "python3") -> bool:
    """True iff the requirement is installed and its version satisfies the specifier."""
    try:
        req = Requirement(requirement)
    except InvalidRequirement as exc:
        raise ValueError(f"invalid requirement '{requirement}': {exc}") from exc

    result = ctx.probe([python, "-m", "pip", "show", req.name], env=C_LOCALE)
    if not result.ok:
        return False
    if not req.specifier:
        return True

    match = _PIP_VERSION.search(result.stdout)
    if match is None:
        return False
    try:
        version = Version(match.group(1))
    except InvalidVersion:
        logger.debug("Unparseable version for %s: %s", req.name, match.group(1))
        return False
    return req.specifier.contains(version, prereleases=True)


def system_up_to_date(ctx: RunContext) -> bool:
    """True iff a simulated upgrade has nothing to do."""
    result = ctx.probe(["apt-get", "-s", "upgrade"], env=C_LOCALE)
    if not result.ok:
        return False
    match = _APT_UPGRADED.search(result.stdout)
    return match is not None and int(match.group(1)) == 0


def directory_exists(path: str | Path) -> bool:
    return Path(path).is_dir()


def marker_present(path: str | Path, marker: str) -> bool:
    """True iff some line of the file contains the marker text."""
    file = Path(path)
    try:
        with file.open(encoding="utf-8", errors="replace") as fh:
            return any(marker in line for line in fh)
    except FileNotFoundError:
        return False


def symlink_points_to(link: str | Path, target: str | Path) -> bool:
    """True iff link is a symlink resolving to target."""
    link = Path(link)
    if not link.is_symlink():
        return False
    return link.resolve() == Path(target).resolve()


def user_in_group(user: User, group: str) -> bool:
    """True iff the user is a member of the group, primary or supplementary."""
    try:
        entry = grp.getgrnam(group)
    except KeyError:
        return False
    return entry.gr_gid == user.gid or user.name in entry.gr_mem


def owned_by(path: str | Path, user: User) -> bool:
    stat = Path(path).lstat()
    return stat.st_uid == user.uid and stat.st_gid == user.gid
