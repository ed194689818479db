from __future__ import annotations

"""Utilities to convert CodeGeneratorRequest payloads into model dataclasses."""

import logging
from typing import Dict, Iterable, List, MutableMapping, Optional, Set, Tuple

from google.protobuf import json_format
from google.protobuf.compiler import plugin_pb2
from google.protobuf import descriptor_pb2
from google.protobuf.message import Message

from . import model

_LOG = logging.getLogger(__name__)

OptionDict = Dict[str, object]


class SchemaError(ValueError):
    """Raised when a schema cannot be loaded; names the offending file or field."""


class DescriptorLoader:
    """Load FileDescriptorProto messages into higher level dataclasses."""

    def __init__(self, request: plugin_pb2.CodeGeneratorRequest) -> None:
        self._request = request
        self._loaded_files: MutableMapping[str, model.ProtoFile] = {}
        self._type_index: Dict[str, model.ProtoType] = {}
        self._pending_field_resolutions: List[Tuple[model.Field, str, str]] = []
        self._map_entry_names: Set[str] = set()
        self._loaded = False

    @classmethod
    def from_descriptor_set(
        cls,
        descriptor_set: descriptor_pb2.FileDescriptorSet,
        targets: Optional[Iterable[str]] = None,
    ) -> "DescriptorLoader":
        """Build a loader from a ``FileDescriptorSet`` (``protoc --descriptor_set_out``)."""

        request = plugin_pb2.CodeGeneratorRequest()
        request.proto_file.extend(descriptor_set.file)
        if targets:
            request.file_to_generate.extend(targets)
        else:
            request.file_to_generate.extend(file_proto.name for file_proto in descriptor_set.file)
        return cls(request)

    @property
    def files(self) -> MutableMapping[str, model.ProtoFile]:
        """Mapping of file name to :class:`ProtoFile` after :meth:`load`."""

        self.load()
        return self._loaded_files

    @property
    def files_to_generate(self) -> List[str]:
        """Return the list of files requested for generation."""

        return list(self._request.file_to_generate)

    def get_file(self, name: str) -> model.ProtoFile:
        """Return a loaded :class:`ProtoFile` by name."""

        self.load()
        try:
            return self._loaded_files[name]
        except KeyError as exc:
            raise SchemaError(f"Descriptor not found in request: {name}") from exc

    def load(self, file_names: Optional[Iterable[str]] = None) -> MutableMapping[str, model.ProtoFile]:
        """Load requested files and return the mapping of filenames to :class:`ProtoFile`.

        If ``file_names`` is ``None`` all files present in the request are loaded.
        Subsequent calls return cached results.
        """

        if not self._loaded:
            known_files = {file_proto.name for file_proto in self._request.proto_file}
            for file_proto in self._request.proto_file:
                for dependency in file_proto.dependency:
                    if dependency not in known_files:
                        raise SchemaError(
                            f"Unresolved dependency '{dependency}' referenced by {file_proto.name}"
                        )
                proto_file = self._convert_file(file_proto)
                self._loaded_files[file_proto.name] = proto_file
                _LOG.debug("Loaded %s (%s)", file_proto.name, proto_file.syntax.value)

            self._resolve_type_references()
            self._loaded = True

        if file_names is None:
            return self._loaded_files

        missing = sorted(name for name in file_names if name not in self._loaded_files)
        if missing:
            raise SchemaError(f"Descriptor(s) not found in request: {', '.join(missing)}")
        return {name: self._loaded_files[name] for name in file_names}

    def _convert_file(
        self,
        file_proto: descriptor_pb2.FileDescriptorProto,
    ) -> model.ProtoFile:
        package = file_proto.package or None
        proto_file = model.ProtoFile(
            name=file_proto.name,
            package=package,
            syntax=_parse_syntax(file_proto),
            dependencies=list(file_proto.dependency),
            options=self._message_to_dict(file_proto.options),
        )

        for enum_proto in file_proto.enum_type:
            proto_file.enums.append(self._convert_enum(enum_proto, file_proto, []))

        for message_proto in file_proto.message_type:
            proto_file.messages.append(self._convert_message(message_proto, file_proto, []))

        return proto_file

    def _convert_enum(
        self,
        enum_proto: descriptor_pb2.EnumDescriptorProto,
        file_proto: descriptor_pb2.FileDescriptorProto,
        parents: List[str],
    ) -> model.Enum:
        full_name = self._qualify_name(file_proto.package, parents, enum_proto.name)
        enum = model.Enum(
            name=enum_proto.name,
            full_name=full_name,
            options=self._message_to_dict(enum_proto.options),
        )
        self._register_type(full_name, enum)

        for value_proto in enum_proto.value:
            enum.values.append(model.EnumValue(name=value_proto.name, number=value_proto.number))

        return enum

    def _convert_message(
        self,
        message_proto: descriptor_pb2.DescriptorProto,
        file_proto: descriptor_pb2.FileDescriptorProto,
        parents: List[str],
    ) -> model.Message:
        full_name = self._qualify_name(file_proto.package, parents, message_proto.name)
        message = model.Message(
            name=message_proto.name,
            full_name=full_name,
            options=self._message_to_dict(message_proto.options),
            map_entry=message_proto.options.map_entry,
        )
        self._register_type(full_name, message)

        parents_chain = parents + [message_proto.name]

        for oneof_proto in message_proto.oneof_decl:
            message.oneofs.append(
                model.Oneof(name=oneof_proto.name, full_name=f"{full_name}.{oneof_proto.name}")
            )

        for nested_proto in message_proto.nested_type:
            if nested_proto.options.map_entry:
                nested_full_name = self._qualify_name(
                    file_proto.package, parents_chain, nested_proto.name
                )
                self._map_entry_names.add(nested_full_name)
                continue
            message.nested_messages.append(
                self._convert_message(nested_proto, file_proto, parents_chain)
            )

        for enum_proto in message_proto.enum_type:
            message.nested_enums.append(self._convert_enum(enum_proto, file_proto, parents_chain))

        for field_proto in message_proto.field:
            message.fields.append(self._convert_field(field_proto, message, file_proto.name))

        for field in message.fields:
            if field.oneof_index is not None and field.oneof_index < len(message.oneofs):
                message.oneofs[field.oneof_index].fields.append(field)

        return message

    def _convert_field(
        self,
        field_proto: descriptor_pb2.FieldDescriptorProto,
        message: model.Message,
        file_name: str,
    ) -> model.Field:
        cardinality = {
            descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL: model.FieldCardinality.OPTIONAL,
            descriptor_pb2.FieldDescriptorProto.LABEL_REQUIRED: model.FieldCardinality.REQUIRED,
            descriptor_pb2.FieldDescriptorProto.LABEL_REPEATED: model.FieldCardinality.REPEATED,
        }.get(field_proto.label, model.FieldCardinality.OPTIONAL)

        kind, scalar, type_name = self._classify_field_type(field_proto)
        if (
            kind is model.FieldKind.MESSAGE
            and cardinality is model.FieldCardinality.REPEATED
            and type_name in self._map_entry_names
        ):
            kind = model.FieldKind.MAP

        oneof_index = field_proto.oneof_index if field_proto.HasField("oneof_index") else None
        oneof_name = None
        if oneof_index is not None:
            if oneof_index >= len(message.oneofs):
                raise SchemaError(
                    f"{file_name}: field '{message.full_name}.{field_proto.name}' "
                    f"references missing oneof #{oneof_index}"
                )
            oneof_name = message.oneofs[oneof_index].name

        field = model.Field(
            name=field_proto.name,
            number=field_proto.number,
            cardinality=cardinality,
            kind=kind,
            scalar=scalar,
            type_name=type_name or None,
            default_value=field_proto.default_value if field_proto.HasField("default_value") else None,
            json_name=field_proto.json_name or None,
            oneof=oneof_name,
            oneof_index=oneof_index,
            proto3_optional=field_proto.proto3_optional,
            options=self._message_to_dict(field_proto.options),
        )

        if field_proto.HasField("options") and field_proto.options.HasField("packed"):
            field.packed = field_proto.options.packed

        if field.kind in (model.FieldKind.MESSAGE, model.FieldKind.ENUM) and field.type_name:
            self._pending_field_resolutions.append(
                (field, field.type_name, f"{file_name}: {message.full_name}.{field.name}")
            )

        return field

    def _classify_field_type(
        self, field_proto: descriptor_pb2.FieldDescriptorProto
    ) -> Tuple[model.FieldKind, Optional[str], Optional[str]]:
        field_type = field_proto.type
        if field_type in _SCALAR_TYPE_NAMES:
            return model.FieldKind.SCALAR, _SCALAR_TYPE_NAMES[field_type], None
        if field_type == descriptor_pb2.FieldDescriptorProto.TYPE_ENUM:
            return model.FieldKind.ENUM, None, self._normalize_type_name(field_proto.type_name)
        if field_type == descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE:
            return model.FieldKind.MESSAGE, None, self._normalize_type_name(field_proto.type_name)
        if field_type == descriptor_pb2.FieldDescriptorProto.TYPE_GROUP:
            return model.FieldKind.GROUP, None, self._normalize_type_name(field_proto.type_name)
        raise SchemaError(f"Unsupported field type {field_type} for field '{field_proto.name}'")

    def _normalize_type_name(self, type_name: str) -> str:
        if not type_name:
            return type_name
        return type_name[1:] if type_name.startswith(".") else type_name

    def _register_type(self, full_name: str, obj: model.ProtoType) -> None:
        self._type_index[full_name] = obj

    def _qualify_name(
        self, package: Optional[str], parents: List[str], name: str
    ) -> str:
        segments: List[str] = []
        if package:
            segments.append(package)
        segments.extend(parents)
        segments.append(name)
        return ".".join(segment for segment in segments if segment)

    def _message_to_dict(self, message: Optional[Message]) -> OptionDict:
        """Convert a protobuf message to a dictionary handling protobuf version differences."""

        if message is None:
            return {}
        kwargs = {
            "preserving_proto_field_name": True,
            "including_default_value_fields": False,
        }
        try:
            return json_format.MessageToDict(message, **kwargs)
        except TypeError:
            kwargs.pop("including_default_value_fields")
            return json_format.MessageToDict(message, **kwargs)

    def _resolve_type_references(self) -> None:
        for field, type_name, location in self._pending_field_resolutions:
            resolved = self._type_index.get(type_name)
            if resolved is None:
                raise SchemaError(f"Unable to resolve type reference '{type_name}' for field {location}")
            field.resolved_type = resolved


def _parse_syntax(file_proto: descriptor_pb2.FileDescriptorProto) -> model.Syntax:
    syntax = file_proto.syntax or "proto2"
    try:
        return model.Syntax(syntax)
    except ValueError as exc:
        raise SchemaError(f"{file_proto.name}: unsupported syntax '{syntax}'") from exc


_SCALAR_TYPE_NAMES: Dict[int, str] = {
    descriptor_pb2.FieldDescriptorProto.TYPE_DOUBLE: "double",
    descriptor_pb2.FieldDescriptorProto.TYPE_FLOAT: "float",
    descriptor_pb2.FieldDescriptorProto.TYPE_INT64: "int64",
    descriptor_pb2.FieldDescriptorProto.TYPE_UINT64: "uint64",
    descriptor_pb2.FieldDescriptorProto.TYPE_INT32: "int32",
    descriptor_pb2.FieldDescriptorProto.TYPE_FIXED64: "fixed64",
    descriptor_pb2.FieldDescriptorProto.TYPE_FIXED32: "fixed32",
    descriptor_pb2.FieldDescriptorProto.TYPE_BOOL: "bool",
    descriptor_pb2.FieldDescriptorProto.TYPE_STRING: "string",
    descriptor_pb2.FieldDescriptorProto.TYPE_BYTES: "bytes",
    descriptor_pb2.FieldDescriptorProto.TYPE_UINT32: "uint32",
    descriptor_pb2.FieldDescriptorProto.TYPE_SFIXED32: "sfixed32",
    descriptor_pb2.FieldDescriptorProto.TYPE_SFIXED64: "sfixed64",
    descriptor_pb2.FieldDescriptorProto.TYPE_SINT32: "sint32",
    descriptor_pb2.FieldDescriptorProto.TYPE_SINT64: "sint64",
}


__all__ = ["DescriptorLoader", "SchemaError"]
