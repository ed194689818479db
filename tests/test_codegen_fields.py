from __future__ import annotations

import math

import pytest

pytest.importorskip("google.protobuf")

from proto2wire import model
from proto2wire.codegen.fields import FieldEmitter, indent_lines, python_literal
from proto2wire.config import DecodeCase, GeneratorConfig
from proto2wire.normalizer import EnumInfo, FieldDescriptor, MessageDescriptor

_COLOR = EnumInfo(
    name="Color",
    full_name="demo.Color",
    values={"COLOR_RED": 1, "COLOR_UNSPECIFIED": 0},
    values_by_id={"0": "COLOR_UNSPECIFIED", "1": "COLOR_RED"},
)


def _scalar(name, number, scalar_type, **kwargs) -> FieldDescriptor:
    return FieldDescriptor(
        name=name, number=number, kind=model.FieldKind.SCALAR, scalar_type=scalar_type, **kwargs
    )


def _emitter(*fields, config=None, symbols=None) -> FieldEmitter:
    message = MessageDescriptor(name="Node", full_name="demo.Node", symbol="Node", fields=fields)
    return FieldEmitter(message, symbols or {"demo.Node": "Node"}, config)


def test_python_literal_spells_out_non_finite_floats() -> None:
    assert python_literal(math.inf) == 'float("inf")'
    assert python_literal(-math.inf) == 'float("-inf")'
    assert python_literal(math.nan) == 'float("nan")'
    assert python_literal(0.5) == "0.5"
    assert python_literal(("a",)) == "('a',)"


def test_indent_lines_keeps_blank_lines_empty() -> None:
    assert indent_lines(["a", "", "b"], 2) == ["        a", "", "        b"]


def test_implicit_presence_scalar_is_guarded_by_default_check() -> None:
    field = _scalar("display_name", 2, "string")
    lines = _emitter(field).encode_lines(field)

    assert lines == [
        "# 2: display_name (string)",
        "value = _pb.resolve_field_value(_KEYS_DISPLAY_NAME, message)",
        "if value is not None:",
        '    value = _pb.coerce_string(value).encode("utf-8")',
        "    if value:",
        "        _pb.write_varint32(out, 18)",
        "        _pb.write_length_delimited(out, value)",
    ]


def test_explicit_presence_scalar_is_always_written() -> None:
    field = _scalar("count", 1, "sint64", has_presence=True)
    lines = _emitter(field).encode_lines(field)

    assert lines[3:] == [
        "    value = _pb.encode_zigzag64(value)",
        "    _pb.write_varint32(out, 8)",
        "    _pb.write_varint64(out, value)",
    ]


def test_packed_and_unpacked_repeated_encoding() -> None:
    packed = _scalar("ids", 1, "fixed32", is_repeated=True, is_packed=True)
    unpacked = _scalar("names", 2, "string", is_repeated=True)
    emitter = _emitter(packed, unpacked)

    assert emitter.encode_lines(packed)[3:] == [
        "    packed = _pb.create_byte_buffer()",
        "    for item in _pb.iter_repeated(value):",
        "        _pb.write_fixed32(packed, _pb.coerce_uint32(item))",
        "    if packed:",
        "        _pb.write_varint32(out, 10)",
        "        _pb.write_length_delimited(out, packed)",
    ]
    assert emitter.encode_lines(unpacked)[3:] == [
        "    for item in _pb.iter_repeated(value):",
        "        _pb.write_varint32(out, 18)",
        '        _pb.write_length_delimited(out, _pb.coerce_string(item).encode("utf-8"))',
    ]


def test_message_fields_call_child_modules_and_self() -> None:
    child = FieldDescriptor(
        name="leaf", number=1, kind=model.FieldKind.MESSAGE, child="demo.Leaf", has_presence=True
    )
    parent = FieldDescriptor(
        name="parent", number=2, kind=model.FieldKind.MESSAGE, child="demo.Node", has_presence=True
    )
    emitter = _emitter(child, parent, symbols={"demo.Node": "Node", "demo.Leaf": "Leaf"})

    assert emitter.encode_lines(child)[3:] == [
        "    _pb.write_varint32(out, 10)",
        "    _pb.write_length_delimited(out, _pb.from_base64(_m_Leaf.LeafEncode(value)))",
    ]
    assert emitter.decode_arm_lines(parent) == [
        "elif field_number == 2 and wire_type == 2:",
        "    raw, cursor = _pb.read_length_delimited(data, cursor)",
        "    if raw is None:",
        "        break",
        "    _pb.assign_field_value(_OUT_PARENT, message, NodeDecode(raw))",
    ]
    assert emitter.default_lines(parent) == []


def test_repeated_packable_fields_accept_both_wire_forms() -> None:
    field = _scalar("values", 3, "int32", is_repeated=True)
    lines = _emitter(field).decode_arm_lines(field, first=True)

    assert lines == [
        "if field_number == 3 and wire_type == 2:",
        "    payload, cursor = _pb.read_length_delimited(data, cursor)",
        "    if payload is None:",
        "        break",
        "    _pb.append_field_value(_OUT_VALUES, message, "
        "[_pb.to_signed32_from_string(raw) for raw in _pb.read_packed(payload, _pb.read_varint64)])",
        "elif field_number == 3 and wire_type == 0:",
        "    raw, cursor = _pb.read_varint64(data, cursor)",
        "    if raw is None:",
        "        break",
        "    _pb.append_field_value(_OUT_VALUES, message, [_pb.to_signed32_from_string(raw)])",
    ]


def test_packed_decode_without_conversion_reads_directly() -> None:
    field = _scalar("weights", 4, "double", is_repeated=True, is_packed=True)
    lines = _emitter(field).decode_arm_lines(field)

    assert lines[4] == (
        "    _pb.append_field_value(_OUT_WEIGHTS, message, _pb.read_packed(payload, _pb.read_double))"
    )


def test_enum_constants_and_codecs() -> None:
    field = FieldDescriptor(
        name="color", number=5, kind=model.FieldKind.ENUM, enum_info=_COLOR,
        default_value="COLOR_UNSPECIFIED",
    )
    emitter = _emitter(field)

    assert emitter.constant_lines(field) == [
        "_KEYS_COLOR = ('color',)",
        "_OUT_COLOR = ('color',)",
        "_ENUM_COLOR_BY_NAME = {'COLOR_RED': 1, 'COLOR_UNSPECIFIED': 0}",
        "_ENUM_COLOR_BY_NUMBER = {'0': 'COLOR_UNSPECIFIED', '1': 'COLOR_RED'}",
        "_ENUM_COLOR_DEFAULT = 'COLOR_UNSPECIFIED'",
    ]
    assert emitter.encode_lines(field)[0] == "# 5: color (demo.Color)"
    assert emitter.encode_lines(field)[3] == "    value = _pb.coerce_enum(value, _ENUM_COLOR_BY_NAME)"
    assert emitter.decode_arm_lines(field)[-1] == (
        "    _pb.assign_field_value(_OUT_COLOR, message, _pb.enum_name("
        "_pb.to_signed32_from_string(raw), _ENUM_COLOR_BY_NUMBER, _ENUM_COLOR_DEFAULT))"
    )
    assert emitter.default_lines(field) == [
        "_pb.fill_default(_OUT_COLOR, message, 'COLOR_UNSPECIFIED')"
    ]


@pytest.mark.parametrize(
    "decode_case, expected",
    [
        (DecodeCase.SNAKE, ("display_name",)),
        (DecodeCase.CAMEL, ("displayName",)),
        (DecodeCase.BOTH, ("display_name", "displayName")),
    ],
)
def test_output_keys_follow_decode_case(decode_case, expected) -> None:
    field = _scalar("display_name", 1, "string", json_name="displayName")
    emitter = _emitter(field, config=GeneratorConfig(decode_case=decode_case))
    assert emitter.output_keys(field) == expected


def test_output_keys_collapse_when_names_match() -> None:
    field = _scalar("id", 1, "int32")
    emitter = _emitter(field, config=GeneratorConfig(decode_case=DecodeCase.BOTH))
    assert emitter.output_keys(field) == ("id",)


def test_default_lines_render_declared_defaults() -> None:
    ratio = _scalar("ratio", 1, "double", default_value=math.inf)
    tags = _scalar("tags", 2, "string", is_repeated=True, default_value=[])
    emitter = _emitter(ratio, tags)

    assert emitter.default_lines(ratio) == ['_pb.fill_default(_OUT_RATIO, message, float("inf"))']
    assert emitter.default_lines(tags) == ["_pb.fill_default(_OUT_TAGS, message, [])"]


def test_colliding_constant_stems_are_numbered() -> None:
    snake = _scalar("user_id", 1, "int32")
    camel = _scalar("userId", 2, "int32")
    emitter = _emitter(snake, camel)

    assert emitter.constant_lines(snake)[0].startswith("_KEYS_USER_ID =")
    assert emitter.constant_lines(camel)[0].startswith("_KEYS_USER_ID_2 =")


def test_default_lines_leave_presence_fields_absent() -> None:
    retries = _scalar("retries", 1, "int32", has_presence=True, default_value=5)
    color = FieldDescriptor(
        name="color", number=2, kind=model.FieldKind.ENUM, enum_info=_COLOR,
        has_presence=True, default_value="COLOR_UNSPECIFIED",
    )
    tags = _scalar("tags", 3, "string", is_repeated=True, default_value=[])
    emitter = _emitter(retries, color, tags)

    assert emitter.default_lines(retries) == []
    assert emitter.default_lines(color) == []
    assert emitter.default_lines(tags) == ["_pb.fill_default(_OUT_TAGS, message, [])"]
