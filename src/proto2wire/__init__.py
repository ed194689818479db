"""proto2wire package initialization."""

from __future__ import annotations

from . import model

__all__ = [
    "DecodeCase",
    "DefaultTemplateRenderer",
    "DescriptorLoader",
    "FieldDescriptor",
    "GeneratedFile",
    "GeneratorConfig",
    "ITemplateRenderer",
    "MessageDescriptor",
    "SchemaError",
    "SchemaNormalizer",
    "model",
]


def __getattr__(name: str):
    if name in {"DescriptorLoader", "SchemaError"}:
        from .descriptor_loader import DescriptorLoader, SchemaError

        mapping = {
            "DescriptorLoader": DescriptorLoader,
            "SchemaError": SchemaError,
        }
        return mapping[name]

    if name in {"DefaultTemplateRenderer", "GeneratedFile", "ITemplateRenderer"}:
        from .codegen import DefaultTemplateRenderer, GeneratedFile, ITemplateRenderer

        mapping = {
            "DefaultTemplateRenderer": DefaultTemplateRenderer,
            "GeneratedFile": GeneratedFile,
            "ITemplateRenderer": ITemplateRenderer,
        }
        return mapping[name]

    if name in {"DecodeCase", "GeneratorConfig"}:
        from .config import DecodeCase, GeneratorConfig

        return {"DecodeCase": DecodeCase, "GeneratorConfig": GeneratorConfig}[name]

    if name in {"FieldDescriptor", "MessageDescriptor", "SchemaNormalizer"}:
        from .normalizer import FieldDescriptor, MessageDescriptor, SchemaNormalizer

        mapping = {
            "FieldDescriptor": FieldDescriptor,
            "MessageDescriptor": MessageDescriptor,
            "SchemaNormalizer": SchemaNormalizer,
        }
        return mapping[name]

    raise AttributeError(name)
