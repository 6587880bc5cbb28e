"""Workspace-relative path normalization and confinement."""

from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath

from codecraft.errors import PathEscapeError

_LEADING_SLASHES = re.compile(r"^[/\\]+")
_WORKSPACE_PREFIX = re.compile(r"^workspace(?:[/\\]+|$)")


def clean_relative_path(raw: str | None) -> str:
    """Strip leading slashes and a leading `workspace/` segment from client paths."""
    value = str(raw or "").strip()
    value = _LEADING_SLASHES.sub("", value)
    value = _WORKSPACE_PREFIX.sub("", value)
    return value.replace("\\", "/")


def _inside(base: Path, candidate: Path) -> bool:
    return candidate == base or base in candidate.parents


def resolve_workspace_path(root: Path, raw: str | None, *, follow_symlinks: bool = True) -> Path:
    """Return the absolute path for `raw` inside `root`.

    Raises PathEscapeError without modifying the filesystem when either the
    joined or the symlink-resolved path lands outside the workspace root.
    With `follow_symlinks=False` the joined path is returned, so a trailing
    symlink names the link itself rather than its target.
    """
    base = Path(root).resolve()
    joined = Path(os.path.normpath(base / clean_relative_path(raw)))
    target = joined.resolve()
    if not _inside(base, joined) or not _inside(base, target):
        raise PathEscapeError()
    return target if follow_symlinks else joined


def relative_to_workspace(root: Path, path: Path) -> str:
    """Render `path` as a forward-slash path relative to the workspace root."""
    relative = Path(os.path.normpath(path)).relative_to(Path(root).resolve())
    text = PurePosixPath(*relative.parts).as_posix()
    return "" if text == "." else text
