"""Protocol Buffers compiler plugin entry point for proto2wire."""
from __future__ import annotations

import logging
import sys
from typing import Dict, List

from google.protobuf import descriptor_pb2
from google.protobuf.compiler import plugin_pb2

from . import model
from .codegen import DefaultTemplateRenderer, GeneratedFile, ITemplateRenderer
from .config import GeneratorConfig
from .descriptor_loader import DescriptorLoader, SchemaError
from .normalizer import SchemaNormalizer

_LOG = logging.getLogger(__name__)


def analyze_descriptors(request: plugin_pb2.CodeGeneratorRequest) -> Dict[str, model.ProtoFile]:
    """Normalize descriptors into the proto2wire schema model."""

    loader = DescriptorLoader(request)
    return dict(loader.load())


def generate_files(
    loader: DescriptorLoader,
    config: GeneratorConfig,
    *,
    renderer: ITemplateRenderer | None = None,
) -> List[GeneratedFile]:
    """Run normalization and rendering for the files the loader was asked to generate."""

    loader.load()
    files_to_generate = loader.files_to_generate or list(loader.files.keys())
    targets = [loader.get_file(name) for name in files_to_generate]
    dependencies = [
        proto_file for name, proto_file in loader.files.items() if name not in files_to_generate
    ]

    normalizer = SchemaNormalizer(config)
    messages = normalizer.normalize(targets, dependencies)
    _LOG.info("Generating %d message codec(s) from %d file(s)", len(messages), len(targets))

    renderer = renderer or DefaultTemplateRenderer(config)
    return list(renderer.render(messages, proto_files=files_to_generate))


def generate_code(
    request: plugin_pb2.CodeGeneratorRequest,
    *,
    renderer: ITemplateRenderer | None = None,
) -> plugin_pb2.CodeGeneratorResponse:
    """Run the proto2wire pipeline and return a populated response message.

    Schema and option errors are reported through ``response.error`` with no
    files, which makes protoc fail the invocation.
    """

    response = plugin_pb2.CodeGeneratorResponse()
    response.supported_features = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL
    if hasattr(response, "maximum_edition"):
        response.supported_features |= plugin_pb2.CodeGeneratorResponse.FEATURE_SUPPORTS_EDITIONS
        response.minimum_edition = descriptor_pb2.EDITION_PROTO2
        response.maximum_edition = descriptor_pb2.EDITION_2023

    try:
        config = GeneratorConfig.from_parameter_string(request.parameter)
        generated_files = generate_files(DescriptorLoader(request), config, renderer=renderer)
    except (SchemaError, ValueError, TypeError) as exc:
        _LOG.error("Generation failed: %s", exc)
        response.error = str(exc)
        return response

    for generated in generated_files:
        response_file = response.file.add()
        response_file.name = generated.name
        response_file.content = generated.content

    return response


def main() -> None:
    """Execute the protoc plugin workflow."""

    # stdout carries the response, so diagnostics go to stderr.
    logging.basicConfig(
        level=logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    request_payload = sys.stdin.buffer.read()

    request = plugin_pb2.CodeGeneratorRequest()
    if request_payload:
        request.ParseFromString(request_payload)

    response = generate_code(request)
    sys.stdout.buffer.write(response.SerializeToString())


if __name__ == "__main__":  # pragma: no cover - convenience execution entry.
    main()
