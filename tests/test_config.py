from __future__ import annotations

import pytest

from proto2wire.config import (
    DEFAULT_RESERVED_IDENTIFIERS,
    DEFAULT_RUNTIME_MODULE,
    DecodeCase,
    GeneratorConfig,
)


def test_generator_config_defaults() -> None:
    config = GeneratorConfig.from_parameter_string(None)
    assert config.reserved_identifiers == DEFAULT_RESERVED_IDENTIFIERS
    assert config.include_package_in_names is False
    assert config.decode_case is DecodeCase.SNAKE
    assert config.fill_defaults is True
    assert config.runtime_module == DEFAULT_RUNTIME_MODULE
    assert config.naming_config is None


def test_generator_config_allows_overriding_reserved_identifiers(tmp_path) -> None:
    reserved_file = tmp_path / "reserved.txt"
    reserved_file.write_text("ExtraType\n# comment\nAnotherType\n", encoding="utf-8")

    parameter = (
        "reserved_identifiers=CustomOne|CustomTwo,"
        "extra_reserved_identifiers=Third,"
        f"reserved_identifiers_file={reserved_file}"
    )

    config = GeneratorConfig.from_parameter_string(parameter)

    assert config.reserved_identifiers == (
        "CustomOne",
        "CustomTwo",
        "Third",
        "ExtraType",
        "AnotherType",
    )


def test_generator_config_parses_rename_overrides(tmp_path) -> None:
    rename_file = tmp_path / "renames.txt"
    rename_file.write_text(
        "physics.Vector:PhysicsVector\nphysics.Color:PhysicsColor\n",
        encoding="utf-8",
    )

    parameter = (
        "rename_overrides=demo.Widget:DemoWidget|demo.Token:DemoToken,"
        f"rename_overrides_file={rename_file}"
    )

    config = GeneratorConfig.from_parameter_string(parameter)

    assert config.rename_overrides == {
        "demo.Widget": "DemoWidget",
        "demo.Token": "DemoToken",
        "physics.Vector": "PhysicsVector",
        "physics.Color": "PhysicsColor",
    }


def test_generator_config_allows_enabling_package_names() -> None:
    config = GeneratorConfig.from_parameter_string("include_package_in_names")

    assert config.include_package_in_names is True


def test_generator_config_rename_overrides_require_separator() -> None:
    with pytest.raises(ValueError):
        GeneratorConfig.from_parameter_string("rename_overrides=invalid-entry")


def test_generator_config_rename_overrides_require_identifiers() -> None:
    with pytest.raises(ValueError, match="not a valid Python identifier"):
        GeneratorConfig.from_parameter_string("rename_overrides=demo.Widget:Not-Valid")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("snake", DecodeCase.SNAKE),
        ("CAMEL", DecodeCase.CAMEL),
        ("camelCase", DecodeCase.CAMEL),
        (" both ", DecodeCase.BOTH),
    ],
)
def test_decode_case_parsing(raw, expected) -> None:
    assert DecodeCase.parse(raw) is expected
    assert GeneratorConfig.from_parameter_string(f"decode_case={raw}").decode_case is expected


def test_decode_case_rejects_unknown_values() -> None:
    with pytest.raises(ValueError, match="snake, camel, both"):
        DecodeCase.parse("kebab")


def test_generator_config_reads_flags_and_module_names() -> None:
    config = GeneratorConfig.from_parameter_string(
        "fill_defaults=off; runtime_module=wire_runtime, naming_config=/tmp/naming.json"
    )

    assert config.fill_defaults is False
    assert config.runtime_module == "wire_runtime"
    assert config.naming_config == "/tmp/naming.json"


def test_generator_config_rejects_invalid_runtime_module() -> None:
    with pytest.raises(ValueError, match="runtime_module"):
        GeneratorConfig.from_parameter_string("runtime_module=my-runtime")
