from __future__ import annotations

import importlib
import sys
import uuid
from pathlib import Path

import pytest


@pytest.fixture
def generate_package(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Run the plugin on a request, write the output and import it as a package."""

    pytest.importorskip("google.protobuf")
    from proto2wire.plugin import generate_code

    imported: list[str] = []
    monkeypatch.syspath_prepend(str(tmp_path))

    def _generate(request):
        response = generate_code(request)
        assert not response.error, response.error
        package_name = f"gen_{uuid.uuid4().hex}"
        root = tmp_path / package_name
        for generated in response.file:
            path = root / generated.name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(generated.content, encoding="utf-8")
        importlib.invalidate_caches()
        imported.append(package_name)
        return importlib.import_module(package_name)

    yield _generate

    for name in list(sys.modules):
        if any(name == package or name.startswith(f"{package}.") for package in imported):
            del sys.modules[name]
