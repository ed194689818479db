"""Configuration helpers for proto2wire code generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}

DEFAULT_RESERVED_IDENTIFIERS: Tuple[str, ...] = ("MessageHandler",)
DEFAULT_RUNTIME_MODULE = "_pb_runtime"


class DecodeCase(str, Enum):
    """Which output keys a generated decoder assigns."""

    SNAKE = "snake"
    CAMEL = "camel"
    BOTH = "both"

    @classmethod
    def parse(cls, value: str) -> "DecodeCase":
        lowered = value.strip().lower()
        aliases = {"snake_case": cls.SNAKE, "camelcase": cls.CAMEL, "camel_case": cls.CAMEL}
        if lowered in aliases:
            return aliases[lowered]
        try:
            return cls(lowered)
        except ValueError as exc:
            choices = ", ".join(member.value for member in cls)
            raise ValueError(f"decode_case must be one of {choices}, got '{value}'") from exc


def _parse_parameter_string(parameter: str | None) -> Dict[str, str]:
    if not parameter:
        return {}

    entries = parameter.replace(";", ",").split(",")
    result: Dict[str, str] = {}
    for entry in entries:
        piece = entry.strip()
        if not piece:
            continue
        if "=" in piece:
            key, value = piece.split("=", 1)
            result[key.strip().lower()] = value.strip()
        else:
            result[piece.lower()] = "true"
    return result


def _to_bool(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def _split_config_tokens(raw: str | None) -> List[str]:
    if not raw:
        return []
    normalized = raw
    for separator in ("|", ";"):
        normalized = normalized.replace(separator, ",")
    return [piece.strip() for piece in normalized.split(",") if piece.strip()]


def _load_identifier_file(path_value: str | None) -> List[str]:
    if not path_value:
        return []
    path = Path(path_value).expanduser()
    content = path.read_text(encoding="utf-8")
    entries: List[str] = []
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        entries.append(stripped)
    return entries


def _parse_rename_entries(entries: Iterable[str]) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for entry in entries:
        if not entry:
            continue
        if ":" not in entry:
            raise ValueError(
                "Rename override entries must use the form 'full.proto.Name:Symbol'"
            )
        proto_name, symbol = entry.split(":", 1)
        proto_key = proto_name.strip()
        symbol_value = symbol.strip()
        if not proto_key or not symbol_value:
            raise ValueError(
                "Rename override entries must include both a proto name and a symbol"
            )
        if not symbol_value.isidentifier():
            raise ValueError(f"Rename override '{symbol_value}' is not a valid Python identifier")
        mapping[proto_key] = symbol_value
    return mapping


@dataclass(slots=True)
class GeneratorConfig:
    """Runtime configuration for proto2wire generation."""

    decode_case: DecodeCase = DecodeCase.SNAKE
    fill_defaults: bool = True
    include_package_in_names: bool = False
    reserved_identifiers: Tuple[str, ...] = DEFAULT_RESERVED_IDENTIFIERS
    rename_overrides: Dict[str, str] = field(default_factory=dict)
    runtime_module: str = DEFAULT_RUNTIME_MODULE
    naming_config: Optional[str] = None

    @classmethod
    def from_parameter_string(cls, parameter: str | None) -> "GeneratorConfig":
        overrides = _parse_parameter_string(parameter)

        decode_case = DecodeCase.SNAKE
        decode_case_raw = overrides.get("decode_case")
        if decode_case_raw:
            decode_case = DecodeCase.parse(decode_case_raw)

        fill_defaults_value = _to_bool(overrides.get("fill_defaults"))

        reserved_entries: List[str]
        reserved_entries = list(DEFAULT_RESERVED_IDENTIFIERS)
        reserved_override = overrides.get("reserved_identifiers")
        if reserved_override:
            reserved_entries = _split_config_tokens(reserved_override)
        extra_reserved = overrides.get("extra_reserved_identifiers")
        if extra_reserved:
            reserved_entries.extend(_split_config_tokens(extra_reserved))
        reserved_file = overrides.get("reserved_identifiers_file")
        if reserved_file:
            reserved_entries.extend(_load_identifier_file(reserved_file))

        unique_reserved = tuple(dict.fromkeys(entry for entry in reserved_entries if entry))

        rename_entries: List[str] = []
        rename_override = overrides.get("rename_overrides")
        if rename_override:
            rename_entries.extend(_split_config_tokens(rename_override))
        rename_file = overrides.get("rename_overrides_file")
        if rename_file:
            rename_entries.extend(_load_identifier_file(rename_file))
        rename_overrides = _parse_rename_entries(rename_entries)

        include_package_value = _to_bool(overrides.get("include_package_in_names"))

        runtime_module = overrides.get("runtime_module") or DEFAULT_RUNTIME_MODULE
        if not runtime_module.isidentifier():
            raise ValueError(f"runtime_module '{runtime_module}' is not a valid module name")

        return cls(
            decode_case=decode_case,
            fill_defaults=fill_defaults_value if fill_defaults_value is not None else True,
            include_package_in_names=
                include_package_value if include_package_value is not None else False,
            reserved_identifiers=unique_reserved,
            rename_overrides=rename_overrides,
            runtime_module=runtime_module,
            naming_config=overrides.get("naming_config") or None,
        )


__all__ = [
    "DEFAULT_RESERVED_IDENTIFIERS",
    "DEFAULT_RUNTIME_MODULE",
    "DecodeCase",
    "GeneratorConfig",
]
