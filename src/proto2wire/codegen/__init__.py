"""Rendering of normalized messages into generated Python files."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Protocol, Sequence

from ..config import GeneratorConfig
from ..normalizer import MessageDescriptor
from .messages import (
    MessageModuleTemplate,
    render_messages_package,
    render_readme,
    render_registry,
    render_runtime_module,
)

_INVALID_FILENAME_CHARS = re.compile(r"[^0-9A-Za-z_]")


@dataclass(frozen=True, slots=True)
class GeneratedFile:
    """A generated file, named relative to the output directory."""

    name: str
    content: str


class ITemplateRenderer(Protocol):
    def render(
        self, messages: Sequence[MessageDescriptor], *, proto_files: Iterable[str] = ()
    ) -> Iterable[GeneratedFile]:
        ...


def sanitize_generated_filename(path: str) -> str:
    """Make every path component's stem a valid Python identifier, keeping the extension."""

    components = [component for component in path.replace("\\", "/").split("/") if component]
    sanitized: List[str] = []
    for index, component in enumerate(components):
        stem, extension = component, ""
        if index == len(components) - 1 and "." in component:
            stem, extension = component.rsplit(".", 1)
            extension = f".{extension}"
        cleaned = _INVALID_FILENAME_CHARS.sub("_", stem).strip() or "_"
        if cleaned[0].isdigit():
            cleaned = f"_{cleaned}"
        sanitized.append(f"{cleaned}{extension}")
    return "/".join(sanitized)


class DefaultTemplateRenderer:
    """Renders the generated package: registry, runtime, message modules and README."""

    def __init__(self, config: GeneratorConfig | None = None) -> None:
        self._config = config or GeneratorConfig()

    def render(
        self, messages: Sequence[MessageDescriptor], *, proto_files: Iterable[str] = ()
    ) -> List[GeneratedFile]:
        symbols = {message.full_name: message.symbol for message in messages}
        files = [
            GeneratedFile("__init__.py", render_registry(messages)),
            GeneratedFile(f"{self._config.runtime_module}.py", render_runtime_module()),
            GeneratedFile("messages/__init__.py", render_messages_package(messages)),
        ]
        for message in messages:
            template = MessageModuleTemplate(message, symbols, self._config)
            name = sanitize_generated_filename(f"messages/{message.symbol}.py")
            files.append(GeneratedFile(name, template.render()))
        files.append(GeneratedFile("README.md", render_readme(proto_files, messages)))
        return files


__all__ = [
    "DefaultTemplateRenderer",
    "GeneratedFile",
    "ITemplateRenderer",
    "MessageModuleTemplate",
    "sanitize_generated_filename",
]
