"""Utility exports for filesystem and concurrency helpers."""

from alliage_sandbox.utils.concurrency import WorkerPool, run_with_timeout
from alliage_sandbox.utils.fs import (
    atomic_write,
    copy_path,
    ensure_symlink,
    is_within,
    read_json,
    remove_tree,
    write_json,
)

__all__ = [
    "WorkerPool",
    "atomic_write",
    "copy_path",
    "ensure_symlink",
    "is_within",
    "read_json",
    "remove_tree",
    "run_with_timeout",
    "write_json",
]
