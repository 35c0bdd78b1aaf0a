"""
alliage-sandbox — unit tests for the framework module manifest

File: tests/unit/sandbox/test_manifest.py

Purpose
- Validate module location, registry extraction and manifest persistence.

What this test file should cover
- Local identifiers versus search-path lookups, and request overrides.
- Modules of another ``alliageManifest.type`` being skipped.
- Merge on top of an existing manifest, declaration-order collisions.
- Resolution failures.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from alliage_sandbox.sandbox.manifest import (
    ModuleDefinition,
    ModuleLocator,
    ModuleManifestBuilder,
    ModuleResolutionError,
    is_local_module,
    load_existing_manifest,
    load_resolution_overrides,
    read_module_definition,
)


class _NullLogger:
    def info(self, event: str, **fields: Any) -> None:
        return None


def _package(directory: Path, payload: dict[str, Any]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _module_package(name: str, deps: list[str] | None = None) -> dict[str, Any]:
    manifest: dict[str, Any] = {"type": "module"}
    if deps is not None:
        manifest["dependencies"] = deps
    return {"name": name, "alliageManifest": manifest}


@pytest.mark.parametrize(
    ("identifier", "expected"),
    [
        ("/abs/module", True),
        ("./module", True),
        ("../module", True),
        ("../../nested/module", True),
        ("alliage-fake-module", False),
        ("@scope/module", False),
        (".hidden", False),
        ("...", False),
    ],
)
def test_is_local_module(identifier: str, expected: bool) -> None:
    assert is_local_module(identifier) is expected


def test_locate_local_identifier_relative_to_base_dir(tmp_path: Path) -> None:
    expected = _package(tmp_path / "alliage-other-fake-module", _module_package("other"))
    base = tmp_path / "scenario"
    base.mkdir()

    located = ModuleLocator(base_dir=base).locate("../alliage-other-fake-module")

    assert located == expected


def test_locate_package_name_through_search_paths(tmp_path: Path) -> None:
    linked = tmp_path / "sandbox" / "linked_modules"
    node_modules = tmp_path / "sandbox" / "node_modules"
    linked.mkdir(parents=True)
    expected = _package(node_modules / "alliage-fake-module", _module_package("fake"))

    located = ModuleLocator().locate("alliage-fake-module", [linked, node_modules])

    assert located == expected


def test_linked_modules_shadow_installed_ones(tmp_path: Path) -> None:
    linked = tmp_path / "sandbox" / "linked_modules"
    node_modules = tmp_path / "sandbox" / "node_modules"
    _package(node_modules / "pkg", _module_package("pkg"))
    expected = _package(linked / "pkg", _module_package("pkg"))

    assert ModuleLocator().locate("pkg", [linked, node_modules]) == expected


def test_locate_walks_ancestor_node_modules(tmp_path: Path) -> None:
    expected = _package(tmp_path / "node_modules" / "pkg", _module_package("pkg"))
    deep = tmp_path / "a" / "b"
    deep.mkdir(parents=True)

    assert ModuleLocator().locate("pkg", [deep]) == expected


def test_locate_failure_lists_searched_locations(tmp_path: Path) -> None:
    with pytest.raises(ModuleResolutionError) as exc_info:
        ModuleLocator().locate("missing-module", [tmp_path / "linked_modules"])

    assert exc_info.value.identifier == "missing-module"
    assert tmp_path / "linked_modules" / "missing-module" / "package.json" in (
        exc_info.value.searched
    )
    assert isinstance(exc_info.value, FileNotFoundError)


def test_locate_missing_local_module(tmp_path: Path) -> None:
    with pytest.raises(ModuleResolutionError, match="'./nope'"):
        ModuleLocator(base_dir=tmp_path).locate("./nope")


def test_overrides_take_precedence(tmp_path: Path) -> None:
    override = _package(tmp_path / "elsewhere", _module_package("fake"))
    _package(tmp_path / "node_modules" / "fake", _module_package("fake"))
    locator = ModuleLocator({"fake/package.json": override})

    assert locator.locate("fake", [tmp_path / "node_modules"]) == override


def test_load_resolution_overrides_resolves_relative_targets(tmp_path: Path) -> None:
    first = tmp_path / "one" / "modules-resolution.json"
    second = tmp_path / "two" / "modules-resolution.json"
    first.parent.mkdir()
    second.parent.mkdir()
    first.write_text(
        json.dumps({"a/package.json": "./a.json", "b/package.json": "/abs/b.json"}),
        encoding="utf-8",
    )
    second.write_text(json.dumps({"a/package.json": "../shared/a.json"}), encoding="utf-8")

    overrides = load_resolution_overrides([first, second])

    assert overrides == {
        "a/package.json": tmp_path / "shared" / "a.json",
        "b/package.json": Path("/abs/b.json"),
    }


def test_read_module_definition() -> None:
    assert read_module_definition(_module_package("a", ["b"]), "./a") == ModuleDefinition(
        name="a", module="./a", deps=("b",)
    )
    assert read_module_definition(_module_package("a"), "a").deps == ()
    assert read_module_definition({"name": "x"}, "x") is None
    assert read_module_definition(
        {"name": "x", "alliageManifest": {"type": "compound"}}, "x"
    ) is None


@pytest.mark.parametrize(
    "payload",
    [
        {"alliageManifest": {"type": "module"}},
        {"name": "a", "alliageManifest": {"type": "module", "dependencies": "b"}},
        {"name": "a", "alliageManifest": {"type": "module", "dependencies": [1]}},
    ],
)
def test_read_module_definition_rejects_malformed_modules(payload: dict[str, Any]) -> None:
    with pytest.raises(ValueError):
        read_module_definition(payload, "a")


def test_load_existing_manifest_missing_file(tmp_path: Path) -> None:
    assert load_existing_manifest(tmp_path / "alliage-modules.json") == {}


async def test_build_merges_on_top_of_existing_manifest(tmp_path: Path) -> None:
    sandbox = tmp_path / "sandbox"
    node_modules = sandbox / "node_modules"
    _package(node_modules / "alliage-fake-module", _module_package("alliage-fake-module", ["a"]))
    other = _package(
        tmp_path / "alliage-other-fake-module",
        {"name": "alliage-other-fake-module", "alliageManifest": {"type": "compound"}},
    )
    (sandbox / "alliage-modules.json").write_text(
        json.dumps({"alliage-dummy-module": {"module": "alliage-dummy-module", "deps": []}}),
        encoding="utf-8",
    )
    builder = ModuleManifestBuilder(locator=ModuleLocator(), logger=_NullLogger())

    manifest = await builder.build(
        ["alliage-fake-module", str(other.parent)],
        sandbox_path=sandbox,
        search_paths=[sandbox / "linked_modules", node_modules],
    )

    expected = {
        "alliage-dummy-module": {"module": "alliage-dummy-module", "deps": []},
        "alliage-fake-module": {"module": "alliage-fake-module", "deps": ["a"]},
    }
    assert manifest == expected
    assert json.loads((sandbox / "alliage-modules.json").read_text(encoding="utf-8")) == expected


async def test_build_later_declaration_wins_on_name_collision(tmp_path: Path) -> None:
    sandbox = tmp_path / "sandbox"
    sandbox.mkdir()
    first = _package(tmp_path / "first", _module_package("shared", ["one"]))
    second = _package(tmp_path / "second", _module_package("shared", ["two"]))
    (sandbox / "alliage-modules.json").write_text(
        json.dumps({"shared": {"module": "stale", "deps": []}}), encoding="utf-8"
    )

    manifest = await ModuleManifestBuilder(logger=_NullLogger()).build(
        [str(first.parent), str(second.parent)], sandbox_path=sandbox
    )

    assert manifest == {"shared": {"module": str(second.parent), "deps": ["two"]}}


async def test_build_with_no_modules_writes_existing_content(tmp_path: Path) -> None:
    sandbox = tmp_path / "sandbox"
    sandbox.mkdir()

    manifest = await ModuleManifestBuilder(logger=_NullLogger()).build([], sandbox_path=sandbox)

    assert manifest == {}
    assert json.loads((sandbox / "alliage-modules.json").read_text(encoding="utf-8")) == {}


async def test_build_propagates_resolution_errors(tmp_path: Path) -> None:
    sandbox = tmp_path / "sandbox"
    sandbox.mkdir()

    with pytest.raises(ModuleResolutionError):
        await ModuleManifestBuilder(logger=_NullLogger()).build(
            ["not-installed"], sandbox_path=sandbox, search_paths=[sandbox / "node_modules"]
        )
    assert not (sandbox / "alliage-modules.json").exists()
