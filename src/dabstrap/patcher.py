"""Config patcher: copy a template tree and rewrite user-specific text."""

from __future__ import annotations

import fnmatch
import logging
import shutil
import stat
from collections.abc import Iterator, Sequence
from pathlib import Path

from pydantic import BaseModel

from .errors import MissingTemplate

logger = logging.getLogger(__name__)

# keeps arbitrary bytes intact through a str round trip
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class PatchRule(BaseModel):
    """A literal substring replacement."""

    match: str
    replacement: str

    def apply(self, text: str) -> str:
        return text.replace(self.match, self.replacement)


def apply_rules(text: str, rules: Sequence[PatchRule]) -> str:
    """Apply rules in order to a block of text."""
    for rule in rules:
        text = rule.apply(text)
    return text


def make_writable(path: Path) -> None:
    """Add the owner write bit to a regular file if it lacks it."""
    mode = path.stat().st_mode
    if not mode & stat.S_IWUSR:
        path.chmod(mode | stat.S_IWUSR)


def iter_files(root: Path) -> Iterator[Path]:
    """Yield regular files under root, relative to it, in sorted order."""
    for path in sorted(root.rglob("*")):
        if path.is_file() and not path.is_symlink():
            yield path.relative_to(root)


class ConfigPatcher:
    """Copies a template directory tree and patches matching files in place."""

    def __init__(self, rules: Sequence[PatchRule], *, pattern: str = "*.conf") -> None:
        self.rules = list(rules)
        self.pattern = pattern

    def matches(self, path: Path) -> bool:
        return fnmatch.fnmatch(path.name, self.pattern)

    def render(self, src: Path, rel: Path) -> bytes:
        """Return the expected content of a copied file."""
        data = (src / rel).read_bytes()
        if not self.matches(rel):
            return data
        text = data.decode(_ENCODING, _ERRORS)
        return apply_rules(text, self.rules).encode(_ENCODING, _ERRORS)

    def is_current(self, src: Path, dst: Path) -> bool:
        """True iff every template file has an identical rendered copy under dst."""
        for rel in iter_files(src):
            target = dst / rel
            if not target.is_file():
                return False
            if target.read_bytes() != self.render(src, rel):
                return False
        return True

    def copy_tree(self, src: Path, dst: Path) -> list[Path]:
        """Copy src into dst, preserving permissions. Returns copied files.

        Copied files are left owner-writable so later runs can patch and
        overwrite them, even when the template itself is read-only.
        """
        if not src.is_dir():
            raise MissingTemplate(src)
        files = [dst / rel for rel in iter_files(src)]
        for path in files:
            if path.is_file() and not path.is_symlink():
                make_writable(path)
        logger.info("Copying templates %s -> %s", src, dst)
        shutil.copytree(src, dst, dirs_exist_ok=True, symlinks=True)
        for path in files:
            make_writable(path)
        return files

    def patch_file(self, path: Path) -> bool:
        """Rewrite a single file in place. Returns True if it changed."""
        data = path.read_bytes()
        text = data.decode(_ENCODING, _ERRORS)
        patched = apply_rules(text, self.rules).encode(_ENCODING, _ERRORS)
        if patched == data:
            return False
        # write_bytes truncates in place, so the mode bits survive
        path.write_bytes(patched)
        logger.debug("Patched %s", path)
        return True

    def patch_files(self, files: Sequence[Path]) -> list[Path]:
        """Patch every matching file. Returns the changed files."""
        return [path for path in files if self.matches(path) and self.patch_file(path)]

    def install(self, src: Path, dst: Path) -> list[Path]:
        """Copy then patch the copied files. Returns the changed files.

        Only the freshly copied files are patched; other files under dst are
        left alone.
        """
        copied = self.copy_tree(src, dst)
        changed = self.patch_files(copied)
        logger.info("Patched %d file(s) under %s", len(changed), dst)
        return changed
