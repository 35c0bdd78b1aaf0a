"""
alliage-sandbox — filesystem utilities

File: src/alliage_sandbox/utils/fs.py

Purpose
- Provide the filesystem capability consumed by the sandbox lifecycle: copies,
  symlinks, guarded recursive removal and atomic JSON reads/writes.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Removal refuses paths outside the configured sandbox root and tolerates missing targets.
- Symlink creation creates missing parent directories.

Non-functional requirements
- Standard library only; blocking calls, callers offload them to threads.
"""

from __future__ import annotations

import contextlib
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "copy_path",
    "ensure_symlink",
    "is_within",
    "read_json",
    "remove_tree",
    "write_json",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Write ``data`` next to ``path`` in a temp file, fsync it, then swap it in."""

    target = Path(path)
    payload = data.encode(encoding) if isinstance(data, str) else data
    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, target)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise


def read_json(path: PathLike) -> Any:
    """Read and decode the JSON document stored at ``path``."""

    with Path(path).open(encoding="utf-8") as file_handle:
        return json.load(file_handle)


def write_json(path: PathLike, payload: object) -> None:
    """Serialize ``payload`` as JSON and write it atomically to ``path``."""

    atomic_write(path, json.dumps(payload, ensure_ascii=False) + "\n")


def copy_path(source: PathLike, destination: PathLike) -> Path:
    """
    Copy a file or a directory tree from ``source`` to ``destination``.

    Symlinks inside copied trees are preserved as links. Existing directories at
    ``destination`` are merged into.
    """

    src = Path(source)
    dest = Path(destination)
    if src.is_dir():
        shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
        return dest

    if not src.exists():
        raise FileNotFoundError(f"copy source does not exist: {src!s}")
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dest, follow_symlinks=False)
    return dest


def ensure_symlink(target: PathLike, link_path: PathLike) -> Path:
    """
    Create ``link_path`` as a symbolic link pointing at ``target``.

    Missing parents of ``link_path`` are created. An existing link already
    pointing at ``target`` is left in place.
    """

    link = Path(link_path)
    destination = Path(target)
    if not os.path.lexists(destination):
        raise FileNotFoundError(f"symlink target does not exist: {destination!s}")

    if link.is_symlink():
        if Path(os.readlink(link)) == destination:
            return link
        raise FileExistsError(f"symlink already exists with another target: {link!s}")

    link.parent.mkdir(parents=True, exist_ok=True)
    link.symlink_to(destination, target_is_directory=destination.is_dir())
    return link


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if absolute ``child`` is located under absolute ``parent``."""

    resolved_parent = Path(os.path.abspath(parent))
    resolved_child = Path(os.path.abspath(child))
    return _is_relative_to(resolved_child, resolved_parent)


def remove_tree(path: PathLike, root: PathLike) -> bool:
    """
    Delete ``path`` recursively, only if it is contained within ``root``.

    Symlinks are unlinked without traversing into their targets. Returns
    ``False`` when there was nothing to delete.
    """

    target = Path(os.path.abspath(path))
    if target == Path(os.path.abspath(root)) or not is_within(target, root):
        raise ValueError(f"refusing to delete path outside sandbox root: {target!s}")

    if not os.path.lexists(target):
        return False

    if target.is_symlink() or not target.is_dir():
        target.unlink()
        return True

    shutil.rmtree(target)
    return True


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True
