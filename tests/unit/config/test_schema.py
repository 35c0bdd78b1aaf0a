"""Unit tests for the scenario configuration schema and defaults."""

from __future__ import annotations

import pytest

from alliage_sandbox.config.schema import (
    ConfigValidationError,
    SandboxConfig,
    default_config,
    validate_config,
)


def test_default_command_comes_from_node_variable() -> None:
    assert default_config({"NODE": "/opt/node18/bin/node"}).command == "/opt/node18/bin/node"


@pytest.mark.parametrize("environ", [{}, {"NODE": ""}])
def test_default_command_falls_back_to_node(environ: dict[str, str]) -> None:
    config = default_config(environ)

    assert config.command == "node"
    assert config.copy_files == ()
    assert dict(config.link_modules) == {}
    assert config.alliage_modules == ()


def test_payload_keys_override_defaults_individually() -> None:
    defaults = default_config({"NODE": "/usr/bin/node"})

    merged = validate_config({"copyFiles": ["a", "b"]}, defaults=defaults)

    assert merged.command == "/usr/bin/node"
    assert merged.copy_files == ("a", "b")
    assert merged.alliage_modules == ()


def test_full_payload_is_typed() -> None:
    merged = validate_config(
        {
            "command": "node --inspect",
            "copyFiles": ["<scenarioRoot>/src"],
            "linkModules": {"@scope/pkg": "<projectRoot>/packages/pkg/dist"},
            "alliageModules": ["alliage-fake-module"],
            "unknownKey": {"ignored": True},
        },
        defaults=default_config({}),
    )

    assert merged.command == "node --inspect"
    assert merged.copy_files == ("<scenarioRoot>/src",)
    assert dict(merged.link_modules) == {"@scope/pkg": "<projectRoot>/packages/pkg/dist"}
    assert merged.alliage_modules == ("alliage-fake-module",)


def test_invalid_values_report_every_offending_key() -> None:
    with pytest.raises(ConfigValidationError) as exc_info:
        validate_config(
            {
                "command": ["node"],
                "copyFiles": "src",
                "linkModules": ["not", "a", "mapping"],
                "alliageModules": ["ok", 3],
            },
            defaults=default_config({}),
        )

    paths = [issue.path for issue in exc_info.value.issues]
    assert paths == ["command", "copyFiles", "linkModules", "alliageModules[1]"]
    assert str(exc_info.value).startswith("invalid sandbox config:\n- command:")


def test_link_module_values_must_be_strings() -> None:
    with pytest.raises(ConfigValidationError, match=r"linkModules\.pkg: must be a string"):
        validate_config({"linkModules": {"pkg": 12}}, defaults=default_config({}))


def test_map_paths_transforms_values_but_not_link_names() -> None:
    config = SandboxConfig(
        command="<root>/node",
        copy_files=["<root>/a"],
        link_modules={"<root>": "<root>/b"},
        alliage_modules=["<root>/c"],
    )

    mapped = config.map_paths(lambda value: value.replace("<root>", "/r"))

    assert mapped.to_dict() == {
        "command": "/r/node",
        "copyFiles": ["/r/a"],
        "linkModules": {"<root>": "/r/b"},
        "alliageModules": ["/r/c"],
    }
    assert config.command == "<root>/node"


def test_config_collections_are_immutable() -> None:
    config = SandboxConfig(command="node", link_modules={"a": "/a"})

    with pytest.raises(TypeError):
        config.link_modules["b"] = "/b"  # type: ignore[index]
    assert isinstance(config.copy_files, tuple)


@pytest.mark.parametrize("command", ["", "   "])
def test_blank_command_strings_are_merged_as_given(command: str) -> None:
    merged = validate_config({"command": command}, defaults=default_config({"NODE": "/opt/node"}))

    assert merged.command == command
