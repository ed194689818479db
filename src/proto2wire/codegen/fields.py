"""Per-field Python source emission for generated wire codecs."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Tuple

from .. import model
from ..config import DecodeCase, GeneratorConfig
from ..naming import sanitize_identifier, to_snake_case
from ..normalizer import FieldDescriptor, MessageDescriptor, WireType


@dataclass(frozen=True, slots=True)
class _ScalarCodec:
    """Source templates for one scalar type; ``{value}``/``{raw}`` are substituted."""

    coerce: str
    non_default: str
    writer: str
    reader: str
    convert: str = "{raw}"


_SCALAR_CODECS: Dict[str, _ScalarCodec] = {
    "string": _ScalarCodec(
        coerce='_pb.coerce_string({value}).encode("utf-8")',
        non_default="{value}",
        writer="_pb.write_length_delimited",
        reader="_pb.read_string",
    ),
    "bytes": _ScalarCodec(
        coerce="_pb.coerce_bytes({value})",
        non_default="{value}",
        writer="_pb.write_length_delimited",
        reader="_pb.read_bytes",
    ),
    "bool": _ScalarCodec(
        coerce="1 if _pb.coerce_bool({value}) else 0",
        non_default="{value}",
        writer="_pb.write_varint32",
        reader="_pb.read_varint64",
        convert='{raw} != "0"',
    ),
    "int32": _ScalarCodec(
        coerce="_pb.coerce_int32({value})",
        non_default="{value} != 0",
        writer="_pb.write_varint64",
        reader="_pb.read_varint64",
        convert="_pb.to_signed32_from_string({raw})",
    ),
    "uint32": _ScalarCodec(
        coerce="_pb.coerce_uint32({value})",
        non_default="{value} != 0",
        writer="_pb.write_varint64",
        reader="_pb.read_varint64",
        convert="_pb.to_unsigned32_from_string({raw})",
    ),
    "sint32": _ScalarCodec(
        coerce="_pb.encode_zigzag32(_pb.coerce_int32({value}))",
        non_default="{value} != 0",
        writer="_pb.write_varint64",
        reader="_pb.read_varint64",
        convert="_pb.decode_zigzag32({raw})",
    ),
    "int64": _ScalarCodec(
        coerce="_pb.normalize_unsigned_decimal({value})",
        non_default='{value} != "0"',
        writer="_pb.write_varint64",
        reader="_pb.read_varint64",
        convert="_pb.to_signed64_decimal({raw})",
    ),
    "uint64": _ScalarCodec(
        coerce="_pb.normalize_unsigned_decimal({value})",
        non_default='{value} != "0"',
        writer="_pb.write_varint64",
        reader="_pb.read_varint64",
    ),
    "sint64": _ScalarCodec(
        coerce="_pb.encode_zigzag64({value})",
        non_default='{value} != "0"',
        writer="_pb.write_varint64",
        reader="_pb.read_varint64",
        convert="_pb.decode_zigzag64({raw})",
    ),
    "fixed32": _ScalarCodec(
        coerce="_pb.coerce_uint32({value})",
        non_default="{value} != 0",
        writer="_pb.write_fixed32",
        reader="_pb.read_fixed32",
    ),
    "sfixed32": _ScalarCodec(
        coerce="_pb.coerce_int32({value})",
        non_default="{value} != 0",
        writer="_pb.write_sfixed32",
        reader="_pb.read_sfixed32",
    ),
    "fixed64": _ScalarCodec(
        coerce="_pb.normalize_unsigned_decimal({value})",
        non_default='{value} != "0"',
        writer="_pb.write_fixed64",
        reader="_pb.read_fixed64",
    ),
    "sfixed64": _ScalarCodec(
        coerce="_pb.normalize_unsigned_decimal({value})",
        non_default='{value} != "0"',
        writer="_pb.write_fixed64",
        reader="_pb.read_sfixed64",
    ),
    "float": _ScalarCodec(
        coerce="_pb.coerce_float({value})",
        non_default="not _pb.is_positive_zero({value})",
        writer="_pb.write_float",
        reader="_pb.read_float",
    ),
    "double": _ScalarCodec(
        coerce="_pb.coerce_float({value})",
        non_default="not _pb.is_positive_zero({value})",
        writer="_pb.write_double",
        reader="_pb.read_double",
    ),
}


def python_literal(value: object) -> str:
    """Render *value* as Python source, spelling out non-finite floats."""

    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return 'float("nan")'
        return 'float("inf")' if value > 0 else 'float("-inf")'
    return repr(value)


class FieldEmitter:
    """Emits encode statements, decode arms and constants for the fields of one message.

    Generated modules refer to the runtime as ``_pb`` and to other message
    modules as ``_m_<Symbol>``; *symbols* maps message full names to their
    generated symbols.
    """

    def __init__(
        self,
        message: MessageDescriptor,
        symbols: Mapping[str, str],
        config: GeneratorConfig | None = None,
    ) -> None:
        self._message = message
        self._symbols = symbols
        self._config = config or GeneratorConfig()
        self._stems = self._assign_stems(message.fields)

    # Constants ------------------------------------------------------------
    def constant_lines(self, field: FieldDescriptor) -> List[str]:
        stem = self._stems[field.number]
        lines = [
            f"_KEYS_{stem} = {python_literal(field.lookup_keys)}",
            f"_OUT_{stem} = {python_literal(self.output_keys(field))}",
        ]
        if field.enum_info is not None:
            info = field.enum_info
            lines.append(f"_ENUM_{stem}_BY_NAME = {python_literal(dict(info.values))}")
            lines.append(f"_ENUM_{stem}_BY_NUMBER = {python_literal(dict(info.values_by_id))}")
            lines.append(f"_ENUM_{stem}_DEFAULT = {python_literal(info.default_name)}")
        return lines

    def output_keys(self, field: FieldDescriptor) -> Tuple[str, ...]:
        """Keys a decoded value is stored under, following the decode case policy."""

        snake = field.name
        camel = field.json_name or field.camel_name
        decode_case = self._config.decode_case
        if decode_case is DecodeCase.CAMEL:
            return (camel,)
        if decode_case is DecodeCase.BOTH:
            return tuple(dict.fromkeys((snake, camel)))
        return (snake,)

    # Encode ---------------------------------------------------------------
    def encode_lines(self, field: FieldDescriptor) -> List[str]:
        """Statements, at function-body indentation, writing *field* into ``out``."""

        stem = self._stems[field.number]
        lines = [
            f"# {field.number}: {field.name} ({self._describe(field)})",
            f"value = _pb.resolve_field_value(_KEYS_{stem}, message)",
            "if value is not None:",
        ]
        if field.is_repeated and field.is_packed:
            lines.extend(indent_lines(self._encode_packed(field), 1))
        elif field.is_repeated:
            lines.extend(indent_lines(self._encode_unpacked(field), 1))
        else:
            lines.extend(indent_lines(self._encode_single(field), 1))
        return lines

    def _encode_single(self, field: FieldDescriptor) -> List[str]:
        if field.kind is model.FieldKind.MESSAGE:
            return [f"_pb.write_varint32(out, {field.tag})"] + self._write_message(field, "out", "value")

        coerce, non_default, writer = self._value_codec(field)
        lines = [f"value = {coerce.format(value='value')}"]
        write = [
            f"_pb.write_varint32(out, {field.tag})",
            f"{writer}(out, value)",
        ]
        if field.has_presence:
            return lines + write
        return lines + [f"if {non_default.format(value='value')}:"] + indent_lines(write, 1)

    def _encode_unpacked(self, field: FieldDescriptor) -> List[str]:
        lines = ["for item in _pb.iter_repeated(value):"]
        if field.kind is model.FieldKind.MESSAGE:
            body = [
                "if item is None:",
                "    continue",
                f"_pb.write_varint32(out, {field.tag})",
            ] + self._write_message(field, "out", "item")
        else:
            coerce, _, writer = self._value_codec(field)
            body = [
                f"_pb.write_varint32(out, {field.tag})",
                f"{writer}(out, {coerce.format(value='item')})",
            ]
        return lines + indent_lines(body, 1)

    def _encode_packed(self, field: FieldDescriptor) -> List[str]:
        coerce, _, writer = self._value_codec(field)
        return [
            "packed = _pb.create_byte_buffer()",
            "for item in _pb.iter_repeated(value):",
            f"    {writer}(packed, {coerce.format(value='item')})",
            "if packed:",
            f"    _pb.write_varint32(out, {field.packed_tag})",
            "    _pb.write_length_delimited(out, packed)",
        ]

    def _write_message(self, field: FieldDescriptor, buffer: str, expression: str) -> List[str]:
        encode = self._child_call(field, "Encode")
        return [f"_pb.write_length_delimited({buffer}, _pb.from_base64({encode}({expression})))"]

    # Decode ---------------------------------------------------------------
    def decode_arm_lines(self, field: FieldDescriptor, *, first: bool = False) -> List[str]:
        """``if``/``elif`` arms, at loop-body indentation, reading *field* into ``message``."""

        keyword = "if" if first else "elif"
        lines: List[str] = []
        if field.is_repeated and field.is_packable:
            lines.append(
                f"{keyword} field_number == {field.number} and wire_type == {int(WireType.LENGTH_DELIMITED)}:"
            )
            lines.extend(indent_lines(self._decode_packed(field), 1))
            keyword = "elif"
        lines.append(
            f"{keyword} field_number == {field.number} and wire_type == {int(field.wire_type)}:"
        )
        lines.extend(indent_lines(self._decode_single(field), 1))
        return lines

    def _decode_single(self, field: FieldDescriptor) -> List[str]:
        stem = self._stems[field.number]
        if field.kind is model.FieldKind.MESSAGE:
            reader = "_pb.read_length_delimited"
            converted = f"{self._child_call(field, 'Decode')}(raw)"
        else:
            reader, convert = self._decode_codec(field)
            converted = convert.format(raw="raw")
        lines = [
            f"raw, cursor = {reader}(data, cursor)",
            "if raw is None:",
            "    break",
        ]
        if field.is_repeated:
            lines.append(f"_pb.append_field_value(_OUT_{stem}, message, [{converted}])")
        else:
            lines.append(f"_pb.assign_field_value(_OUT_{stem}, message, {converted})")
        return lines

    def _decode_packed(self, field: FieldDescriptor) -> List[str]:
        stem = self._stems[field.number]
        reader, convert = self._decode_codec(field)
        lines = [
            "payload, cursor = _pb.read_length_delimited(data, cursor)",
            "if payload is None:",
            "    break",
        ]
        if convert == "{raw}":
            lines.append(
                f"_pb.append_field_value(_OUT_{stem}, message, _pb.read_packed(payload, {reader}))"
            )
        else:
            lines.append(
                f"_pb.append_field_value(_OUT_{stem}, message, "
                f"[{convert.format(raw='raw')} for raw in _pb.read_packed(payload, {reader})])"
            )
        return lines

    def default_lines(self, field: FieldDescriptor) -> List[str]:
        """Statements filling the decoded default when *field* was absent on the wire.

        Fields with explicit presence stay absent so that re-encoding the
        decoded message writes exactly the fields that were on the wire.
        """

        if field.is_repeated:
            default = []
        elif field.has_presence or field.kind is model.FieldKind.MESSAGE:
            return []
        else:
            default = field.default_value
        stem = self._stems[field.number]
        return [f"_pb.fill_default(_OUT_{stem}, message, {python_literal(default)})"]

    # Helpers --------------------------------------------------------------
    def _value_codec(self, field: FieldDescriptor) -> Tuple[str, str, str]:
        if field.kind is model.FieldKind.ENUM:
            stem = self._stems[field.number]
            return (
                f"_pb.coerce_enum({{value}}, _ENUM_{stem}_BY_NAME)",
                "{value} != 0",
                "_pb.write_varint64",
            )
        codec = _SCALAR_CODECS[field.scalar_type]
        return codec.coerce, codec.non_default, codec.writer

    def _decode_codec(self, field: FieldDescriptor) -> Tuple[str, str]:
        if field.kind is model.FieldKind.ENUM:
            stem = self._stems[field.number]
            return (
                "_pb.read_varint64",
                f"_pb.enum_name(_pb.to_signed32_from_string({{raw}}), "
                f"_ENUM_{stem}_BY_NUMBER, _ENUM_{stem}_DEFAULT)",
            )
        codec = _SCALAR_CODECS[field.scalar_type]
        return codec.reader, codec.convert

    def _child_call(self, field: FieldDescriptor, suffix: str) -> str:
        symbol = self._symbols[field.child]
        if symbol == self._message.symbol:
            return f"{symbol}{suffix}"
        return f"_m_{symbol}.{symbol}{suffix}"

    def _describe(self, field: FieldDescriptor) -> str:
        if field.kind is model.FieldKind.MESSAGE:
            kind = field.child
        elif field.kind is model.FieldKind.ENUM:
            kind = field.enum_info.full_name
        else:
            kind = field.scalar_type
        if field.is_repeated:
            return f"repeated {kind}, {'packed' if field.is_packed else 'unpacked'}"
        return kind

    @staticmethod
    def _assign_stems(fields) -> Dict[int, str]:
        stems: Dict[int, str] = {}
        used: set[str] = set()
        for field in fields:
            stem = sanitize_identifier(to_snake_case(field.name).upper(), "FIELD")
            if stem in used:
                stem = f"{stem}_{field.number}"
            used.add(stem)
            stems[field.number] = stem
        return stems


def indent_lines(lines: List[str], level: int) -> List[str]:
    prefix = "    " * level
    return [f"{prefix}{line}" if line else line for line in lines]


__all__ = ["FieldEmitter", "indent_lines", "python_literal"]
