"""Helpers for building descriptor protos and reference messages in tests."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.compiler import plugin_pb2

FDP = descriptor_pb2.FieldDescriptorProto

TYPES = {
    "double": FDP.TYPE_DOUBLE,
    "float": FDP.TYPE_FLOAT,
    "int64": FDP.TYPE_INT64,
    "uint64": FDP.TYPE_UINT64,
    "int32": FDP.TYPE_INT32,
    "fixed64": FDP.TYPE_FIXED64,
    "fixed32": FDP.TYPE_FIXED32,
    "bool": FDP.TYPE_BOOL,
    "string": FDP.TYPE_STRING,
    "bytes": FDP.TYPE_BYTES,
    "uint32": FDP.TYPE_UINT32,
    "sfixed32": FDP.TYPE_SFIXED32,
    "sfixed64": FDP.TYPE_SFIXED64,
    "sint32": FDP.TYPE_SINT32,
    "sint64": FDP.TYPE_SINT64,
    "enum": FDP.TYPE_ENUM,
    "message": FDP.TYPE_MESSAGE,
    "group": FDP.TYPE_GROUP,
}

LABELS = {
    "optional": FDP.LABEL_OPTIONAL,
    "required": FDP.LABEL_REQUIRED,
    "repeated": FDP.LABEL_REPEATED,
}


def new_file(
    name: str = "test.proto",
    package: str = "test",
    syntax: str = "proto3",
    dependencies: Sequence[str] = (),
) -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = name
    if package:
        file_proto.package = package
    if syntax != "proto2":
        file_proto.syntax = syntax
    file_proto.dependency.extend(dependencies)
    return file_proto


def add_message(container, name: str) -> descriptor_pb2.DescriptorProto:
    if isinstance(container, descriptor_pb2.FileDescriptorProto):
        message = container.message_type.add()
    else:
        message = container.nested_type.add()
    message.name = name
    return message


def add_enum(container, name: str, values: Iterable[Tuple[str, int]]) -> descriptor_pb2.EnumDescriptorProto:
    enum = container.enum_type.add()
    enum.name = name
    for value_name, number in values:
        enum.value.add(name=value_name, number=number)
    return enum


def add_field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    type_: str,
    *,
    label: str = "optional",
    type_name: Optional[str] = None,
    packed: Optional[bool] = None,
    default: Optional[str] = None,
    proto3_optional: bool = False,
    oneof_index: Optional[int] = None,
) -> descriptor_pb2.FieldDescriptorProto:
    field = message.field.add()
    field.name = name
    field.number = number
    field.label = LABELS[label]
    field.type = TYPES[type_]
    if type_name:
        field.type_name = type_name if type_name.startswith(".") else f".{type_name}"
    if packed is not None:
        field.options.packed = packed
    if default is not None:
        field.default_value = default
    if proto3_optional:
        field.proto3_optional = True
        oneof = message.oneof_decl.add()
        oneof.name = f"_{name}"
        field.oneof_index = len(message.oneof_decl) - 1
    elif oneof_index is not None:
        field.oneof_index = oneof_index
    return field


def request_for(
    *files: descriptor_pb2.FileDescriptorProto,
    targets: Optional[Sequence[str]] = None,
    parameter: str = "",
) -> plugin_pb2.CodeGeneratorRequest:
    request = plugin_pb2.CodeGeneratorRequest()
    for file_proto in files:
        request.proto_file.append(file_proto)
    request.file_to_generate.extend(targets if targets is not None else [files[-1].name])
    if parameter:
        request.parameter = parameter
    return request


def reference_class(files: Sequence[descriptor_pb2.FileDescriptorProto], full_name: str):
    """Build a google.protobuf message class for *full_name* from descriptor protos."""

    pool = descriptor_pool.DescriptorPool()
    for file_proto in files:
        pool.Add(file_proto)
    return message_factory.GetMessageClass(pool.FindMessageTypeByName(full_name))
