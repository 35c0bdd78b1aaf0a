"""Materialize a freshly created sandbox directory: fixture copies and module links."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from alliage_sandbox.constants import LINKED_MODULES_DIR, NODE_MODULES_DIR
from alliage_sandbox.utils.concurrency import WorkerPool
from alliage_sandbox.utils.fs import copy_path, ensure_symlink

if TYPE_CHECKING:
    from alliage_sandbox.config.schema import SandboxConfig

DEFAULT_MAX_CONCURRENCY = 16


class ProvisionKind(StrEnum):
    COPY = "copy"
    LINK = "link"


@dataclass(frozen=True, slots=True)
class ProvisionedEntry:
    """One filesystem operation performed inside the sandbox."""

    kind: ProvisionKind
    source: Path
    destination: Path


class Provisioner:
    """Copy fixture files and create module symlinks inside a sandbox.

    Every operation is issued concurrently on worker threads and awaited
    jointly. The first failure fails the whole batch; operations that already
    finished stay on disk.
    """

    def __init__(
        self,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        logger: Any | None = None,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._max_concurrency = max_concurrency
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def plan(
        self,
        config: SandboxConfig,
        *,
        sandbox_path: Path,
        project_root: Path,
    ) -> list[ProvisionedEntry]:
        """Return the operations :meth:`provision` performs, in declaration order."""

        entries = [
            ProvisionedEntry(
                kind=ProvisionKind.COPY,
                source=Path(source),
                destination=sandbox_path / Path(source).name,
            )
            for source in config.copy_files
        ]
        entries.extend(
            ProvisionedEntry(
                kind=ProvisionKind.LINK,
                source=Path(target),
                destination=sandbox_path / LINKED_MODULES_DIR / name,
            )
            for name, target in config.link_modules.items()
        )
        entries.append(
            ProvisionedEntry(
                kind=ProvisionKind.LINK,
                source=project_root / NODE_MODULES_DIR,
                destination=sandbox_path / NODE_MODULES_DIR,
            )
        )
        return entries

    async def provision(
        self,
        config: SandboxConfig,
        *,
        sandbox_path: Path,
        project_root: Path,
    ) -> list[ProvisionedEntry]:
        entries = self.plan(config, sandbox_path=sandbox_path, project_root=project_root)
        pool: WorkerPool[ProvisionedEntry] = WorkerPool(max_concurrency=self._max_concurrency)
        await pool.gather(self._apply(entry) for entry in entries)

        self._logger.info(
            "sandbox_provisioned",
            sandbox_path=str(sandbox_path),
            copied=sum(1 for entry in entries if entry.kind is ProvisionKind.COPY),
            linked=sum(1 for entry in entries if entry.kind is ProvisionKind.LINK),
        )
        return entries

    async def _apply(self, entry: ProvisionedEntry) -> ProvisionedEntry:
        if entry.kind is ProvisionKind.COPY:
            await asyncio.to_thread(copy_path, entry.source, entry.destination)
        else:
            await asyncio.to_thread(ensure_symlink, entry.source, entry.destination)
        return entry


__all__ = ["DEFAULT_MAX_CONCURRENCY", "ProvisionKind", "ProvisionedEntry", "Provisioner"]
