"""Normalize loaded protobuf schemas into flat, wire-oriented message descriptors."""

from __future__ import annotations

import base64
import logging
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from google.protobuf import text_encoding

from . import model
from .config import GeneratorConfig
from .descriptor_loader import SchemaError
from .naming import (
    NameResolver,
    load_naming_rules,
    sanitize_identifier,
    to_camel_case,
    to_pascal_case,
)

_LOG = logging.getLogger(__name__)


class WireType(IntEnum):
    """Protobuf wire types."""

    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    START_GROUP = 3
    END_GROUP = 4
    FIXED32 = 5


SCALAR_WIRE_TYPES: Dict[str, WireType] = {
    "int32": WireType.VARINT,
    "int64": WireType.VARINT,
    "uint32": WireType.VARINT,
    "uint64": WireType.VARINT,
    "sint32": WireType.VARINT,
    "sint64": WireType.VARINT,
    "bool": WireType.VARINT,
    "fixed64": WireType.FIXED64,
    "sfixed64": WireType.FIXED64,
    "double": WireType.FIXED64,
    "string": WireType.LENGTH_DELIMITED,
    "bytes": WireType.LENGTH_DELIMITED,
    "fixed32": WireType.FIXED32,
    "sfixed32": WireType.FIXED32,
    "float": WireType.FIXED32,
}

SIXTY_FOUR_BIT_TYPES = frozenset({"int64", "uint64", "sint64", "fixed64", "sfixed64"})
FLOATING_POINT_TYPES = frozenset({"float", "double"})
_NON_PACKABLE_SCALARS = frozenset({"string", "bytes"})


@dataclass(frozen=True, slots=True)
class EnumInfo:
    """Lookup tables for an enum referenced by a field."""

    name: str
    full_name: str
    values: Mapping[str, int]
    values_by_id: Mapping[str, str]

    @property
    def default_name(self) -> Optional[str]:
        return self.values_by_id.get("0")


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """A supported field reduced to what the wire codec needs."""

    name: str
    number: int
    kind: model.FieldKind
    scalar_type: Optional[str] = None
    enum_info: Optional[EnumInfo] = None
    child: Optional[str] = None
    is_repeated: bool = False
    is_packed: bool = False
    json_name: Optional[str] = None
    has_presence: bool = False
    default_value: object = None

    @property
    def wire_type(self) -> WireType:
        if self.kind is model.FieldKind.SCALAR:
            return SCALAR_WIRE_TYPES[self.scalar_type]
        if self.kind is model.FieldKind.ENUM:
            return WireType.VARINT
        return WireType.LENGTH_DELIMITED

    @property
    def tag(self) -> int:
        return (self.number << 3) | int(self.wire_type)

    @property
    def packed_tag(self) -> int:
        return (self.number << 3) | int(WireType.LENGTH_DELIMITED)

    @property
    def is_packable(self) -> bool:
        return is_packable(self.kind, self.scalar_type)

    @property
    def camel_name(self) -> str:
        return to_camel_case(self.name)

    @property
    def lookup_keys(self) -> Tuple[str, ...]:
        """Keys tried, in order, when reading the field from a message value."""

        candidates = [self.name, self.json_name or self.camel_name, self.camel_name]
        return tuple(dict.fromkeys(candidate for candidate in candidates if candidate))


@dataclass(frozen=True, slots=True)
class MessageDescriptor:
    """A message selected for generation, with its supported fields in declaration order."""

    name: str
    full_name: str
    symbol: str
    fields: Tuple[FieldDescriptor, ...] = field(default_factory=tuple)
    syntax: model.Syntax = model.Syntax.PROTO3
    file_name: Optional[str] = None


def is_packable(kind: model.FieldKind, scalar_type: Optional[str]) -> bool:
    if kind is model.FieldKind.ENUM:
        return True
    if kind is model.FieldKind.SCALAR:
        return scalar_type not in _NON_PACKABLE_SCALARS
    return False


class SchemaNormalizer:
    """Flattens :class:`model.ProtoFile` trees into :class:`MessageDescriptor` lists.

    Messages of the target files are emitted depth-first in declaration order.
    Messages from other loaded files are appended when a selected field refers
    to them, so every generated module can import its children.
    """

    def __init__(self, config: GeneratorConfig | None = None) -> None:
        self._config = config or GeneratorConfig()
        rules = load_naming_rules(self._config.naming_config)
        if self._config.rename_overrides:
            rules = rules.with_overrides(self._config.rename_overrides)
        self._resolver = NameResolver(
            rules, additional_reserved=self._config.reserved_identifiers
        )
        self._descriptors: Dict[str, MessageDescriptor] = {}

    def lookup(self, full_name: str) -> MessageDescriptor:
        """Return the descriptor generated for *full_name*."""

        try:
            return self._descriptors[full_name]
        except KeyError as exc:
            raise KeyError(f"Message '{full_name}' was not selected for generation") from exc

    def normalize(
        self,
        proto_files: Iterable[model.ProtoFile],
        dependencies: Iterable[model.ProtoFile] = (),
    ) -> List[MessageDescriptor]:
        """Return descriptors for every generatable message of *proto_files*.

        *dependencies* are the other loaded files; their messages are only
        generated when a field of a selected message refers to them.
        """

        files = list(proto_files)
        owners = self._collect_messages(files, list(dependencies))

        # Dropping a message can leave a parent with nothing to encode, so
        # repeat until the selection is stable.
        candidates = [entry for entry in owners if not entry[0].map_entry]
        selected = {entry[0].full_name for entry in candidates}
        while True:
            kept = {
                message.full_name
                for message, _, _ in candidates
                if message.full_name in selected and self._supported_fields(message, selected)
            }
            if kept == selected:
                break
            for dropped in sorted(selected - kept):
                _LOG.debug("Skipping message %s: no supported fields", dropped)
            selected = kept

        ordered = [entry for entry in candidates if entry[0].full_name in selected]
        for message, proto_file, _ in ordered:
            self._register_symbol(message, proto_file)

        result: List[MessageDescriptor] = []
        for message, proto_file, ancestors in ordered:
            fields = self._supported_fields(message, selected, log=True)
            descriptor = MessageDescriptor(
                name=message.name,
                full_name=message.full_name,
                symbol=self._resolver.lookup(message.full_name),
                fields=tuple(self._convert_field(f, message, proto_file, ancestors) for f in fields),
                syntax=proto_file.syntax,
                file_name=proto_file.name,
            )
            self._descriptors[message.full_name] = descriptor
            result.append(descriptor)
        return result

    # Selection helpers ----------------------------------------------------
    def _collect_messages(
        self, files: Sequence[model.ProtoFile], dependencies: Sequence[model.ProtoFile]
    ) -> List[Tuple[model.Message, model.ProtoFile, Tuple[model.Message, ...]]]:
        owners: List[Tuple[model.Message, model.ProtoFile, Tuple[model.Message, ...]]] = []
        seen: Set[str] = set()
        file_of: Dict[int, model.ProtoFile] = {}
        parent_of: Dict[int, model.Message] = {}

        for proto_file in [*files, *dependencies]:
            for message in proto_file.iter_messages():
                file_of[id(message)] = proto_file
                for nested in message.nested_messages:
                    parent_of[id(nested)] = message

        def ancestors_of(message: model.Message) -> Tuple[model.Message, ...]:
            chain: List[model.Message] = []
            parent = parent_of.get(id(message))
            while parent is not None:
                chain.append(parent)
                parent = parent_of.get(id(parent))
            return tuple(reversed(chain))

        for proto_file in files:
            for message in proto_file.iter_messages():
                if message.full_name not in seen:
                    seen.add(message.full_name)
                    owners.append((message, proto_file, ancestors_of(message)))

        # Pull in messages from dependency files that selected fields refer to.
        index = 0
        while index < len(owners):
            message = owners[index][0]
            index += 1
            for proto_field in message.fields:
                target = proto_field.resolved_type
                if proto_field.kind is not model.FieldKind.MESSAGE:
                    continue
                if not isinstance(target, model.Message) or target.full_name in seen:
                    continue
                proto_file = file_of.get(id(target))
                if proto_file is None:
                    raise SchemaError(
                        f"Message '{target.full_name}' referenced by '{message.full_name}."
                        f"{proto_field.name}' is not part of the loaded files"
                    )
                seen.add(target.full_name)
                owners.append((target, proto_file, ancestors_of(target)))
        return owners

    def _supported_fields(
        self, message: model.Message, selected: Set[str], *, log: bool = False
    ) -> List[model.Field]:
        supported: List[model.Field] = []
        for proto_field in message.fields:
            reason = self._unsupported_reason(proto_field, selected)
            if reason is not None:
                if log:
                    _LOG.debug(
                        "Skipping field %s.%s: %s", message.full_name, proto_field.name, reason
                    )
                continue
            supported.append(proto_field)
        return supported

    def _unsupported_reason(self, proto_field: model.Field, selected: Set[str]) -> Optional[str]:
        if proto_field.kind is model.FieldKind.MAP:
            return "map fields are not supported"
        if proto_field.kind is model.FieldKind.GROUP:
            return "group fields are not supported"
        if proto_field.kind is model.FieldKind.SCALAR:
            if proto_field.scalar not in SCALAR_WIRE_TYPES:
                return f"unknown scalar type '{proto_field.scalar}'"
            return None
        if proto_field.kind is model.FieldKind.ENUM:
            if not isinstance(proto_field.resolved_type, model.Enum):
                return "enum type is unresolved"
            return None
        if proto_field.kind is model.FieldKind.MESSAGE:
            target = proto_field.resolved_type
            if not isinstance(target, model.Message) or target.full_name not in selected:
                return f"message type '{proto_field.type_name}' is not generated"
            return None
        return f"unsupported kind '{proto_field.kind}'"

    # Symbols --------------------------------------------------------------
    def _register_symbol(self, message: model.Message, proto_file: model.ProtoFile) -> str:
        package = proto_file.package
        remainder = message.full_name
        if package and remainder.startswith(f"{package}.") and not self._config.include_package_in_names:
            remainder = remainder[len(package) + 1 :]
        pascal = "".join(to_pascal_case(segment) for segment in remainder.split(".") if segment)
        return self._resolver.register(message.full_name, "", sanitize_identifier(pascal, "Message"))

    # Field conversion -----------------------------------------------------
    def _convert_field(
        self,
        proto_field: model.Field,
        message: model.Message,
        proto_file: model.ProtoFile,
        ancestors: Tuple[model.Message, ...],
    ) -> FieldDescriptor:
        is_repeated = proto_field.cardinality is model.FieldCardinality.REPEATED
        enum_info = None
        child = None
        if proto_field.kind is model.FieldKind.ENUM:
            enum_info = _build_enum_info(proto_field.resolved_type)
        elif proto_field.kind is model.FieldKind.MESSAGE:
            child = proto_field.resolved_type.full_name

        return FieldDescriptor(
            name=proto_field.name,
            number=proto_field.number,
            kind=proto_field.kind,
            scalar_type=proto_field.scalar if proto_field.kind is model.FieldKind.SCALAR else None,
            enum_info=enum_info,
            child=child,
            is_repeated=is_repeated,
            is_packed=self._resolve_packed(proto_field, message, proto_file, ancestors),
            json_name=proto_field.json_name or to_camel_case(proto_field.name),
            has_presence=self._has_presence(proto_field, message, proto_file, ancestors),
            default_value=_parse_default(proto_field, proto_file.syntax),
        )

    def _resolve_packed(
        self,
        proto_field: model.Field,
        message: model.Message,
        proto_file: model.ProtoFile,
        ancestors: Tuple[model.Message, ...],
    ) -> bool:
        if proto_field.cardinality is not model.FieldCardinality.REPEATED:
            return False
        packable = is_packable(proto_field.kind, proto_field.scalar)

        requested: Optional[bool] = proto_field.packed
        if requested is None and proto_file.syntax is model.Syntax.EDITIONS:
            encoding = _feature(
                "repeated_field_encoding", proto_field, message, proto_file, ancestors
            )
            if encoding is not None and packable:
                requested = str(encoding).upper() == "PACKED"
            else:
                # Editions pack every packable repeated field unless told otherwise.
                requested = packable

        if requested is None:
            return packable and proto_file.syntax is model.Syntax.PROTO3
        if requested and not packable:
            _LOG.warning(
                "Ignoring packed encoding on non-packable field %s.%s",
                message.full_name,
                proto_field.name,
            )
            return False
        return bool(requested)

    def _has_presence(
        self,
        proto_field: model.Field,
        message: model.Message,
        proto_file: model.ProtoFile,
        ancestors: Tuple[model.Message, ...],
    ) -> bool:
        if proto_field.cardinality is model.FieldCardinality.REPEATED:
            return False
        if proto_field.kind is model.FieldKind.MESSAGE:
            return True
        if proto_field.oneof is not None or proto_field.proto3_optional:
            return True
        if proto_file.syntax is model.Syntax.PROTO2:
            return True
        if proto_file.syntax is model.Syntax.EDITIONS:
            presence = _feature("field_presence", proto_field, message, proto_file, ancestors)
            return presence is None or str(presence).upper() != "IMPLICIT"
        return False


def _feature(
    name: str,
    proto_field: model.Field,
    message: model.Message,
    proto_file: model.ProtoFile,
    ancestors: Tuple[model.Message, ...],
) -> object:
    """Resolve an editions feature from the field, enclosing messages, then the file."""

    scopes: List[Mapping[str, object]] = [proto_field.options, message.options]
    scopes.extend(ancestor.options for ancestor in reversed(ancestors))
    scopes.append(proto_file.options)
    for options in scopes:
        features = options.get("features") if isinstance(options, Mapping) else None
        if isinstance(features, Mapping) and name in features:
            return features[name]
    return None


def _build_enum_info(enum: model.Enum) -> EnumInfo:
    values: Dict[str, int] = {}
    values_by_id: Dict[str, str] = {}
    for value in enum.values:
        values.setdefault(value.name.upper(), value.number)
        values_by_id.setdefault(str(value.number), value.name)
    return EnumInfo(
        name=enum.name,
        full_name=enum.full_name,
        values=dict(sorted(values.items())),
        values_by_id=dict(sorted(values_by_id.items(), key=lambda item: int(item[0]))),
    )


def _parse_default(proto_field: model.Field, syntax: model.Syntax) -> object:
    """Return the decoded-form default of a field (declared default or zero value)."""

    if proto_field.cardinality is model.FieldCardinality.REPEATED:
        return []
    if proto_field.kind is model.FieldKind.MESSAGE:
        return None
    raw = proto_field.default_value

    if proto_field.kind is model.FieldKind.ENUM:
        enum = proto_field.resolved_type
        if raw:
            return raw
        if syntax is model.Syntax.PROTO2 and enum.values:
            return enum.values[0].name
        default_name = _build_enum_info(enum).default_name
        return default_name if default_name is not None else 0

    scalar = proto_field.scalar
    if scalar == "string":
        return raw or ""
    if scalar == "bytes":
        if not raw:
            return ""
        return base64.b64encode(text_encoding.CUnescape(raw)).decode("ascii")
    if scalar == "bool":
        return (raw or "").strip().lower() == "true"
    if scalar in FLOATING_POINT_TYPES:
        if not raw:
            return 0.0
        lowered = raw.strip().lower()
        if lowered in ("inf", "infinity"):
            return math.inf
        if lowered in ("-inf", "-infinity"):
            return -math.inf
        try:
            return float(lowered)
        except ValueError:
            return 0.0
    if scalar in SIXTY_FOUR_BIT_TYPES:
        return _integer_text(raw)
    return int(_integer_text(raw))


def _integer_text(raw: Optional[str]) -> str:
    if not raw:
        return "0"
    text = raw.strip()
    for base in (10, 0):
        try:
            return str(int(text, base))
        except ValueError:
            continue
    return "0"


__all__ = [
    "EnumInfo",
    "FieldDescriptor",
    "FLOATING_POINT_TYPES",
    "MessageDescriptor",
    "SCALAR_WIRE_TYPES",
    "SIXTY_FOUR_BIT_TYPES",
    "SchemaNormalizer",
    "WireType",
    "is_packable",
]
