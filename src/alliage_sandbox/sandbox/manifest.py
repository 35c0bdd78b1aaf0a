"""
alliage-sandbox — framework module manifest.

File: src/alliage_sandbox/sandbox/manifest.py

Purpose
- Locate the ``package.json`` of every declared framework module, keep the ones
  declaring ``alliageManifest.type == "module"``, and persist the merged
  registry as ``<sandbox>/alliage-modules.json``.

What should be included in this file
- ``ModuleLocator``: path resolution for local identifiers (``/``, ``./``,
  ``../``), search-path resolution for package names, optional request overrides.
- ``ModuleManifestBuilder``: concurrent reads, declaration-ordered merge on top
  of any existing manifest, atomic write.

Functional requirements
- A missing existing manifest reads as an empty mapping.
- A package manifest that cannot be located raises ``ModuleResolutionError``.
- On a name collision the later declared module wins; fresh entries always win
  over pre-existing ones.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog

from alliage_sandbox.constants import (
    MODULES_MANIFEST_FILE_NAME,
    NODE_MODULES_DIR,
    PACKAGE_MANIFEST_FILE_NAME,
)
from alliage_sandbox.utils.fs import read_json, write_json

LOCAL_MODULE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\.{0,2}(/.*)+$")
MODULE_TYPE: Final[str] = "module"

ManifestEntry = dict[str, Any]
ModulesManifest = dict[str, ManifestEntry]


class ModuleResolutionError(FileNotFoundError):
    """Raised when a declared module's package manifest cannot be located."""

    def __init__(self, identifier: str, searched: Sequence[Path]) -> None:
        self.identifier = identifier
        self.searched = tuple(searched)
        locations = ", ".join(str(item) for item in self.searched) or "<none>"
        super().__init__(
            f"cannot locate package manifest for {identifier!r} (searched: {locations})"
        )


@dataclass(frozen=True, slots=True)
class ModuleDefinition:
    """A framework module contributed to the sandbox registry."""

    name: str
    module: str
    deps: tuple[str, ...] = ()

    def to_entry(self) -> ManifestEntry:
        return {"module": self.module, "deps": list(self.deps)}


def is_local_module(identifier: str) -> bool:
    return LOCAL_MODULE_PATTERN.match(identifier) is not None


class ModuleLocator:
    """Find ``<identifier>/package.json`` for declared framework modules.

    Overrides map a request string (``"<identifier>/package.json"``) to a file
    and take precedence over both resolution strategies.
    """

    def __init__(
        self,
        overrides: Mapping[str, str | os.PathLike[str]] | None = None,
        *,
        base_dir: Path | None = None,
    ) -> None:
        self._overrides = {request: Path(path) for request, path in (overrides or {}).items()}
        self._base_dir = base_dir

    def locate(self, identifier: str, search_paths: Sequence[Path] = ()) -> Path:
        request = f"{identifier}/{PACKAGE_MANIFEST_FILE_NAME}"
        override = self._overrides.get(request)
        if override is not None:
            return override

        if is_local_module(identifier):
            base_dir = self._base_dir if self._base_dir is not None else Path.cwd()
            candidate = Path(os.path.normpath(base_dir / request))
            if not candidate.is_file():
                raise ModuleResolutionError(identifier, (candidate,))
            return candidate

        candidates = _search_candidates(request, search_paths)
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise ModuleResolutionError(identifier, candidates)


def _search_candidates(request: str, search_paths: Sequence[Path]) -> list[Path]:
    # Each root is tried directly first, then the node_modules folders of the
    # root and its ancestors, mirroring node's lookup order.
    seen: set[Path] = set()
    candidates: list[Path] = []
    for root in search_paths:
        absolute_root = Path(os.path.abspath(root))
        lookups = [absolute_root / request]
        for ancestor in (absolute_root, *absolute_root.parents):
            if ancestor.name == NODE_MODULES_DIR.name:
                continue
            lookups.append(ancestor / NODE_MODULES_DIR / request)
        for lookup in lookups:
            if lookup not in seen:
                seen.add(lookup)
                candidates.append(lookup)
    return candidates


def load_resolution_overrides(paths: Iterable[Path]) -> dict[str, Path]:
    """Merge ``modules-resolution.json`` style files in order (later files win).

    Relative targets are resolved against the directory of the file that
    declares them.
    """

    merged: dict[str, Path] = {}
    for path in paths:
        payload = read_json(path)
        if not isinstance(payload, Mapping):
            raise ValueError(f"resolution overrides in {path!s} must be a JSON object")
        for request, target in payload.items():
            if not isinstance(target, str):
                raise ValueError(f"resolution override {request!r} in {path!s} must be a string")
            merged[str(request)] = Path(os.path.normpath(path.parent / target))
    return merged


def read_module_definition(
    package_manifest: Mapping[str, Any], identifier: str
) -> ModuleDefinition | None:
    """Return the registry contribution of a package manifest, if it is a module."""

    alliage_manifest = package_manifest.get("alliageManifest")
    if not isinstance(alliage_manifest, Mapping) or alliage_manifest.get("type") != MODULE_TYPE:
        return None

    name = package_manifest.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError(f"package manifest of module {identifier!r} has no name")

    dependencies = alliage_manifest.get("dependencies") or []
    if not isinstance(dependencies, list) or not all(isinstance(dep, str) for dep in dependencies):
        raise ValueError(f"alliageManifest.dependencies of {name!r} must be a list of strings")

    return ModuleDefinition(name=name, module=identifier, deps=tuple(dependencies))


def load_existing_manifest(path: Path) -> ModulesManifest:
    if not path.exists():
        return {}
    payload = read_json(path)
    if not isinstance(payload, Mapping):
        raise ValueError(f"module manifest {path!s} must be a JSON object")
    return dict(payload)


class ModuleManifestBuilder:
    """Build and persist the sandbox module registry."""

    def __init__(self, *, locator: ModuleLocator | None = None, logger: Any | None = None) -> None:
        self._locator = locator if locator is not None else ModuleLocator()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def locator(self) -> ModuleLocator:
        return self._locator

    async def build(
        self,
        modules: Sequence[str],
        *,
        sandbox_path: Path,
        search_paths: Sequence[Path] = (),
    ) -> ModulesManifest:
        manifest_path = sandbox_path / MODULES_MANIFEST_FILE_NAME
        existing, definitions = await asyncio.gather(
            asyncio.to_thread(load_existing_manifest, manifest_path),
            asyncio.gather(*(self._describe(identifier, search_paths) for identifier in modules)),
        )

        merged: ModulesManifest = dict(existing)
        for definition in definitions:
            if definition is not None:
                merged[definition.name] = definition.to_entry()

        await asyncio.to_thread(write_json, manifest_path, merged)
        self._logger.info(
            "module_manifest_written",
            path=str(manifest_path),
            declared=len(modules),
            registered=sorted(definition.name for definition in definitions if definition),
            total=len(merged),
        )
        return merged

    async def _describe(
        self, identifier: str, search_paths: Sequence[Path]
    ) -> ModuleDefinition | None:
        package_path = await asyncio.to_thread(self._locator.locate, identifier, search_paths)
        package_manifest = await asyncio.to_thread(read_json, package_path)
        if not isinstance(package_manifest, Mapping):
            raise ValueError(f"package manifest {package_path!s} must be a JSON object")
        return read_module_definition(package_manifest, identifier)


__all__ = [
    "LOCAL_MODULE_PATTERN",
    "MODULE_TYPE",
    "ModuleDefinition",
    "ModuleLocator",
    "ModuleManifestBuilder",
    "ModuleResolutionError",
    "ModulesManifest",
    "is_local_module",
    "load_existing_manifest",
    "load_resolution_overrides",
    "read_module_definition",
]
