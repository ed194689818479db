from __future__ import annotations

"""Dataclasses representing a protobuf schema in a plugin-friendly format."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class FieldCardinality(str, Enum):
    """Cardinality for message fields."""

    OPTIONAL = "optional"
    REQUIRED = "required"
    REPEATED = "repeated"


class FieldKind(str, Enum):
    """Different underlying kinds for a field."""

    SCALAR = "scalar"
    ENUM = "enum"
    MESSAGE = "message"
    MAP = "map"
    GROUP = "group"


class Syntax(str, Enum):
    """Schema syntax declared by a proto file."""

    PROTO2 = "proto2"
    PROTO3 = "proto3"
    EDITIONS = "editions"


@dataclass(slots=True)
class Field:
    """Represents a message field."""

    name: str
    number: int
    cardinality: FieldCardinality
    kind: FieldKind
    scalar: Optional[str] = None
    type_name: Optional[str] = None
    resolved_type: Optional[ProtoType] = None
    default_value: Optional[str] = None
    json_name: Optional[str] = None
    oneof: Optional[str] = None
    oneof_index: Optional[int] = None
    proto3_optional: bool = False
    packed: Optional[bool] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class EnumValue:
    """Represents a value within an enum."""

    name: str
    number: int


@dataclass(slots=True)
class Enum:
    """Represents an enum type."""

    name: str
    full_name: str
    values: List[EnumValue] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Oneof:
    """Represents a oneof declaration."""

    name: str
    full_name: str
    fields: List[Field] = field(default_factory=list)


@dataclass(slots=True)
class Message:
    """Represents a message type."""

    name: str
    full_name: str
    fields: List[Field] = field(default_factory=list)
    nested_messages: List[Message] = field(default_factory=list)
    nested_enums: List[Enum] = field(default_factory=list)
    oneofs: List[Oneof] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    map_entry: bool = False


@dataclass(slots=True)
class ProtoFile:
    """Represents a protobuf file and its declarations."""

    name: str
    package: Optional[str]
    syntax: Syntax = Syntax.PROTO2
    dependencies: List[str] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    enums: List[Enum] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)

    def iter_messages(self):
        """Yield every message of the file, nested ones included, depth first."""

        stack = list(reversed(self.messages))
        while stack:
            message = stack.pop()
            yield message
            stack.extend(reversed(message.nested_messages))


ProtoType = Message | Enum
