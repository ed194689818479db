"""Command-line helpers for generating wire codec packages."""

from __future__ import annotations

import argparse
import logging
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Iterable, List, Sequence, Set

from google.protobuf import descriptor_pb2

from proto2wire.config import GeneratorConfig
from proto2wire.descriptor_loader import DescriptorLoader, SchemaError
from proto2wire.plugin import generate_files

_LOG = logging.getLogger(__name__)

_DESCRIPTOR_SUFFIXES = {".pb", ".desc", ".protoset", ".binpb"}


def compile_descriptor_set(
    proto_files: Iterable[Path | str],
    includes: Iterable[Path | str] = (),
    protoc: str = "protoc",
) -> descriptor_pb2.FileDescriptorSet:
    """Compile ``.proto`` files into a :class:`FileDescriptorSet` by invoking protoc.

    Proto files not covered by one of the include paths have their directory
    added as an include path. Imports are included in the returned set.
    """

    proto_paths: List[Path] = [Path(f).resolve() for f in proto_files]
    include_paths: List[Path] = []
    for include in includes:
        resolved = Path(include).resolve()
        if resolved not in include_paths:
            include_paths.append(resolved)
    for path in proto_paths:
        if not any(include in path.parents for include in include_paths):
            include_paths.append(path.parent)

    with tempfile.TemporaryDirectory(prefix="proto2wire-") as temp_dir:
        output = Path(temp_dir) / "descriptor_set.pb"
        cmd = (
            protoc,
            f"--descriptor_set_out={output}",
            "--include_imports",
            *(f"-I{d}" for d in include_paths),
            *(str(p) for p in proto_paths),
        )

        _LOG.debug("%s", " ".join(shlex.quote(str(c)) for c in cmd))
        try:
            process = subprocess.run(cmd, capture_output=True)
        except FileNotFoundError as exc:
            raise SchemaError(f"protoc executable not found: {protoc}") from exc

        if process.returncode:
            _LOG.error(
                "protoc invocation failed!\n%s\n%s",
                " ".join(shlex.quote(str(c)) for c in cmd),
                process.stderr.decode(errors="replace"),
            )
            raise SchemaError(
                f"protoc failed with exit status {process.returncode}: "
                f"{process.stderr.decode(errors='replace').strip()}"
            )

        descriptor_set = descriptor_pb2.FileDescriptorSet()
        descriptor_set.ParseFromString(output.read_bytes())
    return descriptor_set


def proto_name_for(path: Path | str, includes: Iterable[Path | str]) -> str:
    """Return the protoc-relative name of *path* given the include directories."""

    resolved = Path(path).resolve()
    for include in includes:
        include_path = Path(include).resolve()
        if include_path in resolved.parents:
            return resolved.relative_to(include_path).as_posix()
    return resolved.name


def load_descriptor_set(inputs: Sequence[Path | str], includes: Sequence[Path | str] = ()):
    """Read descriptor sets and compile ``.proto`` inputs, merging them into one set.

    Returns ``(descriptor_set, default_targets)``, where the targets are the
    names of the ``.proto`` inputs (or every file of the given descriptor sets).
    """

    merged = descriptor_pb2.FileDescriptorSet()
    seen: Set[str] = set()
    targets: List[str] = []

    def _merge(descriptor_set: descriptor_pb2.FileDescriptorSet) -> None:
        for file_proto in descriptor_set.file:
            if file_proto.name in seen:
                continue
            seen.add(file_proto.name)
            merged.file.append(file_proto)

    proto_inputs = [Path(item) for item in inputs if Path(item).suffix == ".proto"]
    for item in inputs:
        path = Path(item)
        if path.suffix == ".proto":
            continue
        if path.suffix not in _DESCRIPTOR_SUFFIXES:
            _LOG.warning("Treating %s as a serialized FileDescriptorSet", path)
        descriptor_set = descriptor_pb2.FileDescriptorSet()
        try:
            descriptor_set.ParseFromString(path.read_bytes())
        except OSError as exc:
            raise SchemaError(f"Unable to read descriptor set {path}: {exc}") from exc
        _merge(descriptor_set)
        targets.extend(file_proto.name for file_proto in descriptor_set.file)

    if proto_inputs:
        _merge(compile_descriptor_set(proto_inputs, includes))
        effective_includes = list(includes) + [p.parent for p in proto_inputs]
        targets.extend(proto_name_for(p, effective_includes) for p in proto_inputs)

    return merged, list(dict.fromkeys(targets))


def generate_package(
    inputs: Sequence[Path | str],
    output_dir: Path | str,
    *,
    targets: Sequence[str] | None = None,
    includes: Sequence[Path | str] = (),
    config: GeneratorConfig | None = None,
) -> List[Path]:
    """Generate a codec package for *inputs* into *output_dir*.

    Nothing is written when loading or normalizing the schema fails.
    """

    output_dir = Path(output_dir)
    config = config or GeneratorConfig()

    descriptor_set, default_targets = load_descriptor_set(inputs, includes)
    loader = DescriptorLoader.from_descriptor_set(descriptor_set, targets or default_targets)
    generated_files = generate_files(loader, config)

    written: List[Path] = []
    for generated in generated_files:
        path = output_dir / Path(generated.name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(generated.content, encoding="utf-8")
        written.append(path)
    _LOG.info("Wrote %d file(s) to %s", len(written), output_dir)
    return written


def _build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate protobuf wire codec modules from .proto files or descriptor sets."
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help=".proto files (compiled with protoc) or serialized FileDescriptorSet files",
    )
    parser.add_argument(
        "--proto",
        dest="protos",
        action="append",
        help=(
            "Proto file to generate (as named in the descriptor set). Repeat for multiple "
            "files. Defaults to every input."
        ),
    )
    parser.add_argument(
        "-I",
        "--include",
        dest="includes",
        action="append",
        default=[],
        type=Path,
        help="Include directory passed to protoc when compiling .proto inputs",
    )
    parser.add_argument(
        "--out",
        dest="output",
        required=True,
        type=Path,
        help="Directory that receives the generated package",
    )
    parser.add_argument(
        "--option",
        dest="options",
        action="append",
        default=[],
        help="Generator option as key=value (same keys as the protoc plugin parameter)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point used by ``proto2wire-generate`` and ``python -m proto2wire.tools.generate``."""

    parser = _build_argument_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = GeneratorConfig.from_parameter_string(",".join(args.options))
        generated_paths = generate_package(
            args.inputs,
            args.output,
            targets=args.protos,
            includes=args.includes,
            config=config,
        )
    except (SchemaError, ValueError, TypeError) as exc:
        _LOG.error("%s", exc)
        return 1

    for path in generated_paths:
        print(path)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
