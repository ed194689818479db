from __future__ import annotations

import pytest

pytest.importorskip("google.protobuf")

from google.protobuf import descriptor_pb2
from google.protobuf.compiler import plugin_pb2

from proto2wire.descriptor_loader import DescriptorLoader, SchemaError
from proto2wire import model

from protobuild import add_field, add_message, new_file, request_for


def _build_request() -> plugin_pb2.CodeGeneratorRequest:
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "example.proto"
    file_proto.package = "example.pkg"
    file_proto.syntax = "proto3"
    file_proto.options.java_multiple_files = True

    color_enum = file_proto.enum_type.add()
    color_enum.name = "Color"
    red_value = color_enum.value.add()
    red_value.name = "COLOR_RED"
    red_value.number = 1

    thing_msg = file_proto.message_type.add()
    thing_msg.name = "Thing"
    thing_msg.options.deprecated = True

    map_entry = thing_msg.nested_type.add()
    map_entry.name = "LabelsEntry"
    map_entry.options.map_entry = True
    map_key = map_entry.field.add()
    map_key.name = "key"
    map_key.number = 1
    map_key.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL
    map_key.type = descriptor_pb2.FieldDescriptorProto.TYPE_STRING
    map_value = map_entry.field.add()
    map_value.name = "value"
    map_value.number = 2
    map_value.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL
    map_value.type = descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE
    map_value.type_name = ".example.pkg.Meta"

    labels_field = thing_msg.field.add()
    labels_field.name = "labels"
    labels_field.number = 1
    labels_field.label = descriptor_pb2.FieldDescriptorProto.LABEL_REPEATED
    labels_field.type = descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE
    labels_field.type_name = ".example.pkg.Thing.LabelsEntry"

    color_field = thing_msg.field.add()
    color_field.name = "color"
    color_field.number = 2
    color_field.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL
    color_field.type = descriptor_pb2.FieldDescriptorProto.TYPE_ENUM
    color_field.type_name = ".example.pkg.Color"
    color_field.options.deprecated = True

    thing_oneof = thing_msg.oneof_decl.add()
    thing_oneof.name = "selection"

    name_field = thing_msg.field.add()
    name_field.name = "name"
    name_field.number = 3
    name_field.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL
    name_field.type = descriptor_pb2.FieldDescriptorProto.TYPE_STRING
    name_field.oneof_index = 0
    name_field.proto3_optional = True

    meta_message = file_proto.message_type.add()
    meta_message.name = "Meta"

    meta_field = thing_msg.field.add()
    meta_field.name = "meta"
    meta_field.number = 4
    meta_field.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL
    meta_field.type = descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE
    meta_field.type_name = ".example.pkg.Meta"

    request = plugin_pb2.CodeGeneratorRequest()
    request.file_to_generate.append("example.proto")
    request.proto_file.append(file_proto)
    return request


def test_descriptor_loader_builds_intermediate_model() -> None:
    request = _build_request()
    loader = DescriptorLoader(request)
    files = loader.load()

    assert "example.proto" in files
    proto_file = files["example.proto"]
    assert proto_file.package == "example.pkg"
    assert proto_file.syntax is model.Syntax.PROTO3
    assert proto_file.options["java_multiple_files"] is True

    assert len(proto_file.messages) == 2
    thing, meta = proto_file.messages
    assert thing.full_name == "example.pkg.Thing"
    assert meta.full_name == "example.pkg.Meta"

    assert thing.options["deprecated"] is True
    assert len(thing.fields) == 4
    # Map entry messages are folded into the map field.
    assert thing.nested_messages == []

    labels_field = thing.fields[0]
    assert labels_field.kind is model.FieldKind.MAP
    assert labels_field.resolved_type is None

    color_field = thing.fields[1]
    assert color_field.kind is model.FieldKind.ENUM
    assert isinstance(color_field.resolved_type, model.Enum)
    assert color_field.resolved_type.name == "Color"
    assert color_field.options["deprecated"] is True

    name_field = thing.fields[2]
    assert name_field.oneof == "selection"
    assert name_field.oneof_index == 0
    assert name_field.proto3_optional is True

    meta_field = thing.fields[3]
    assert meta_field.kind is model.FieldKind.MESSAGE
    assert meta_field.resolved_type is meta

    assert len(thing.oneofs) == 1
    assert thing.oneofs[0].fields[0] is name_field

    assert len(proto_file.enums) == 1
    enum = proto_file.enums[0]
    assert enum.full_name == "example.pkg.Color"
    assert enum.values[0].name == "COLOR_RED"


def test_descriptor_loader_records_packing_defaults_and_json_names() -> None:
    file_proto = new_file(syntax="proto2")
    message = add_message(file_proto, "Sample")
    add_field(message, "values", 1, "int32", label="repeated", packed=True)
    add_field(message, "plain", 2, "int32", label="repeated")
    add_field(message, "retries", 3, "uint32", default="3")
    named = add_field(message, "display_name", 4, "string")
    named.json_name = "displayName"

    proto_file = DescriptorLoader(request_for(file_proto)).get_file("test.proto")
    values, plain, retries, display = proto_file.messages[0].fields

    assert proto_file.syntax is model.Syntax.PROTO2
    assert values.packed is True
    assert values.cardinality is model.FieldCardinality.REPEATED
    assert plain.packed is None
    assert retries.default_value == "3"
    assert retries.scalar == "uint32"
    assert plain.default_value is None
    assert display.json_name == "displayName"
    assert plain.json_name is None


def test_editions_files_keep_their_features() -> None:
    file_proto = new_file(syntax="editions")
    file_proto.options.features.field_presence = descriptor_pb2.FeatureSet.IMPLICIT
    add_field(add_message(file_proto, "Item"), "id", 1, "int32")

    proto_file = DescriptorLoader(request_for(file_proto)).load()["test.proto"]

    assert proto_file.syntax is model.Syntax.EDITIONS
    assert proto_file.options["features"]["field_presence"] == "IMPLICIT"


def test_iter_messages_walks_nested_messages_depth_first() -> None:
    file_proto = new_file()
    outer = add_message(file_proto, "Outer")
    inner = add_message(outer, "Inner")
    add_message(inner, "Deepest")
    add_message(file_proto, "Sibling")

    proto_file = DescriptorLoader(request_for(file_proto)).get_file("test.proto")

    assert [m.full_name for m in proto_file.iter_messages()] == [
        "test.Outer",
        "test.Outer.Inner",
        "test.Outer.Inner.Deepest",
        "test.Sibling",
    ]


def test_from_descriptor_set_defaults_to_every_file() -> None:
    first = new_file("a.proto")
    second = new_file("b.proto", dependencies=["a.proto"])
    descriptor_set = descriptor_pb2.FileDescriptorSet()
    descriptor_set.file.extend([first, second])

    assert DescriptorLoader.from_descriptor_set(descriptor_set).files_to_generate == [
        "a.proto",
        "b.proto",
    ]
    targeted = DescriptorLoader.from_descriptor_set(descriptor_set, ["b.proto"])
    assert targeted.files_to_generate == ["b.proto"]
    assert sorted(targeted.files) == ["a.proto", "b.proto"]


def test_missing_files_raise_schema_error() -> None:
    loader = DescriptorLoader(request_for(new_file()))

    with pytest.raises(SchemaError, match="nope.proto"):
        loader.get_file("nope.proto")
    with pytest.raises(SchemaError, match="nope.proto"):
        loader.load(["test.proto", "nope.proto"])


def test_unresolved_dependency_raises_schema_error() -> None:
    file_proto = new_file(dependencies=["absent.proto"])

    with pytest.raises(SchemaError, match="absent.proto"):
        DescriptorLoader(request_for(file_proto)).load()


def test_unresolved_type_reference_names_the_field() -> None:
    file_proto = new_file()
    add_field(add_message(file_proto, "Holder"), "ghost", 1, "enum", type_name="test.Ghost")

    with pytest.raises(SchemaError, match=r"test\.Holder\.ghost"):
        DescriptorLoader(request_for(file_proto)).load()


def test_missing_oneof_declaration_is_rejected() -> None:
    file_proto = new_file()
    add_field(add_message(file_proto, "Holder"), "choice", 1, "int32", oneof_index=2)

    with pytest.raises(SchemaError, match="oneof"):
        DescriptorLoader(request_for(file_proto)).load()


def test_unknown_syntax_is_rejected() -> None:
    file_proto = new_file(syntax="proto4")

    with pytest.raises(SchemaError, match="proto4"):
        DescriptorLoader(request_for(file_proto)).load()
