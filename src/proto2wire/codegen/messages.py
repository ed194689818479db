"""Assemble generated Python codec modules from normalized message descriptors."""

from __future__ import annotations

from importlib import resources
from typing import Iterable, List, Mapping, Sequence

from .. import model
from ..config import GeneratorConfig
from ..normalizer import MessageDescriptor
from .fields import FieldEmitter, indent_lines, python_literal

GENERATED_HEADER = "# Generated by proto2wire. DO NOT EDIT."


class MessageModuleTemplate:
    """Renders ``messages/<Symbol>.py`` with ``<Symbol>Encode`` and ``<Symbol>Decode``."""

    def __init__(
        self,
        message: MessageDescriptor,
        symbols: Mapping[str, str],
        config: GeneratorConfig | None = None,
    ) -> None:
        self._message = message
        self._symbols = symbols
        self._config = config or GeneratorConfig()
        self._emitter = FieldEmitter(message, symbols, self._config)

    @property
    def encode_name(self) -> str:
        return f"{self._message.symbol}Encode"

    @property
    def decode_name(self) -> str:
        return f"{self._message.symbol}Decode"

    def render(self) -> str:
        lines: List[str] = []
        lines.append(GENERATED_HEADER)
        if self._message.file_name:
            lines.append(f"# source: {self._message.file_name}")
        lines.append(f'"""Protobuf wire codec for ``{self._message.full_name}``."""')
        lines.append("")
        lines.extend(self._render_imports())
        lines.append("")
        lines.append(f"FULL_NAME = {python_literal(self._message.full_name)}")
        lines.append("")
        for field in self._message.fields:
            lines.extend(self._emitter.constant_lines(field))
        lines.append("")
        lines.append("")
        lines.extend(self._render_encode())
        lines.append("")
        lines.append("")
        lines.extend(self._render_decode())
        lines.append("")
        lines.append("")
        lines.append(f"__all__ = [{python_literal(self.encode_name)}, {python_literal(self.decode_name)}]")
        lines.append("")
        return "\n".join(lines)

    def _render_imports(self) -> List[str]:
        lines = [f"from .. import {self._config.runtime_module} as _pb"]
        children: List[str] = []
        for field in self._message.fields:
            if field.kind is not model.FieldKind.MESSAGE:
                continue
            symbol = self._symbols[field.child]
            if symbol != self._message.symbol and symbol not in children:
                children.append(symbol)
        for symbol in children:
            lines.append(f"from . import {symbol} as _m_{symbol}")
        return lines

    def _render_encode(self) -> List[str]:
        lines = [
            f"def {self.encode_name}(message):",
            f'    """Encode a ``{self._message.name}`` dict or object into base64 wire bytes."""',
            "",
            "    out = _pb.create_byte_buffer()",
            "    if message is None:",
            "        return _pb.to_base64(out)",
        ]
        for field in self._message.fields:
            lines.extend(indent_lines(self._emitter.encode_lines(field), 1))
        lines.append("    _pb.append_unknown_fields(out, message)")
        lines.append("    return _pb.to_base64(out)")
        return lines

    def _render_decode(self) -> List[str]:
        lines = [
            f"def {self.decode_name}(encoded):",
            f'    """Decode base64 (or raw) wire bytes into a ``{self._message.name}`` dict."""',
            "",
            "    data = _pb.from_base64(encoded)",
            "    message = {}",
            "    unknown = _pb.create_byte_buffer()",
            "    cursor = 0",
            "    limit = len(data)",
            "    while cursor < limit:",
            "        start = cursor",
            "        tag, cursor = _pb.read_varint32(data, cursor)",
            "        if tag is None or tag >> 3 == 0:",
            "            break",
            "        field_number = tag >> 3",
            "        wire_type = tag & 0x07",
        ]
        arms: List[str] = []
        for index, field in enumerate(self._message.fields):
            arms.extend(self._emitter.decode_arm_lines(field, first=index == 0))
        unknown_arm = [
            "next_cursor = _pb.skip_field(data, cursor, wire_type, field_number)",
            "if next_cursor <= cursor:",
            "    break",
            "unknown.extend(data[start:next_cursor])",
            "cursor = next_cursor",
        ]
        if arms:
            arms.append("else:")
            arms.extend(indent_lines(unknown_arm, 1))
        else:
            arms = unknown_arm
        lines.extend(indent_lines(arms, 2))
        if self._config.fill_defaults:
            for field in self._message.fields:
                lines.extend(indent_lines(self._emitter.default_lines(field), 1))
        lines.append("    _pb.attach_unknown_fields(message, unknown)")
        lines.append("    return message")
        return lines


def render_runtime_module() -> str:
    """Return the shared runtime source emitted next to the message modules."""

    source = resources.files("proto2wire").joinpath("runtime.py").read_text(encoding="utf-8")
    return f"{GENERATED_HEADER}\n{source}"


def render_messages_package(messages: Sequence[MessageDescriptor]) -> str:
    lines = [
        GENERATED_HEADER,
        '"""Generated message codec modules, one per message."""',
        "",
        "__all__ = [",
    ]
    lines.extend(f"    {python_literal(message.symbol)}," for message in messages)
    lines.append("]")
    lines.append("")
    return "\n".join(lines)


def render_registry(messages: Sequence[MessageDescriptor]) -> str:
    """Render the package ``__init__`` exposing ``get_message_handlers()``."""

    lines = [
        GENERATED_HEADER,
        '"""Registry of generated protobuf wire codecs."""',
        "",
        "from collections import namedtuple",
        "from importlib import import_module",
        "",
        'MessageHandler = namedtuple("MessageHandler", ["encode", "decode"])',
        "",
        "_MESSAGES = {",
    ]
    lines.extend(
        f"    {python_literal(message.full_name)}: {python_literal(message.symbol)},"
        for message in messages
    )
    lines.extend(
        [
            "}",
            "",
            "",
            "def get_message_handlers():",
            '    """Return encode/decode handlers keyed by full message name and by symbol."""',
            "",
            "    handlers = {}",
            "    for full_name, symbol in _MESSAGES.items():",
            '        module = import_module(f"{__name__}.messages.{symbol}")',
            "        handler = MessageHandler(",
            '            getattr(module, f"{symbol}Encode"),',
            '            getattr(module, f"{symbol}Decode"),',
            "        )",
            "        handlers[full_name] = handler",
            "        handlers.setdefault(symbol, handler)",
            "    return handlers",
            "",
            "",
            '__all__ = ["MessageHandler", "get_message_handlers"]',
            "",
        ]
    )
    return "\n".join(lines)


def render_readme(proto_files: Iterable[str], messages: Sequence[MessageDescriptor]) -> str:
    lines = [
        "# Generated protobuf wire codecs",
        "",
        "Files in this directory are produced by proto2wire.",
        "",
        "## Proto inputs",
    ]
    proto_inputs = list(proto_files)
    lines.extend(f"- {name}" for name in proto_inputs)
    if not proto_inputs:
        lines.append("- (none)")
    lines.extend(["", "## Supported messages"])
    if messages:
        lines.extend(
            f"- `{message.full_name}`: `messages/{message.symbol}.py` "
            f"(`{message.symbol}Encode`, `{message.symbol}Decode`)"
            for message in messages
        )
    else:
        lines.append("- (none detected)")
    lines.extend(
        [
            "",
            "## Usage",
            "",
            "```python",
            "from . import get_message_handlers",
            "",
            "handlers = get_message_handlers()",
            "",
        ]
    )
    if messages:
        sample = messages[0]
        lines.append(f'encoded = handlers["{sample.full_name}"].encode({{}})')
        lines.append(f'decoded = handlers["{sample.full_name}"].decode(encoded)')
    lines.extend(["```", ""])
    return "\n".join(lines)


__all__ = [
    "GENERATED_HEADER",
    "MessageModuleTemplate",
    "render_messages_package",
    "render_readme",
    "render_registry",
    "render_runtime_module",
]
