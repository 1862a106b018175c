"""
Pytest configuration and fixtures for protodeps testing.

Provides temporary proto repositories, an in-memory protoc release archive
and a fake protoc executable that understands the subset of the protoc
command line protodeps uses.
"""

import io
import json
import stat
import sys
import textwrap
import zipfile
from pathlib import Path
from typing import Callable, Dict, List
from unittest.mock import Mock

import pytest
import requests


FAKE_PROTOC_SOURCE = textwrap.dedent('''
    import json
    import os
    import re
    import sys
    from pathlib import Path

    IMPORT = re.compile(r'^\\s*import\\s+(?:public\\s+|weak\\s+)?"([^"]+)"\\s*;', re.M)

    args = sys.argv[1:]
    proto_paths, outputs, files = [], {}, []
    dependency_out = None
    for arg in args:
        if arg.startswith("--proto_path="):
            proto_paths.append(Path(arg.split("=", 1)[1]))
        elif arg.startswith("--dependency_out="):
            dependency_out = Path(arg.split("=", 1)[1])
        elif arg.startswith("--plugin="):
            pass
        elif arg.startswith("--") and "_out=" in arg:
            key, value = arg[2:].split("=", 1)
            outputs[key] = Path(value)
        elif arg.startswith("-o"):
            pass
        else:
            files.append(Path(arg))

    log = os.environ.get("FAKE_PROTOC_LOG")
    if log:
        with open(log, "a") as f:
            f.write(json.dumps(args) + "\\n")

    target = files[0]
    if not target.is_file():
        sys.stderr.write(f"{target}: No such file or directory\\n")
        sys.exit(1)
    if not any(root == target or root in target.parents for root in proto_paths):
        sys.stderr.write(f"{target}: File does not reside within any path specified using --proto_path\\n")
        sys.exit(1)
    if target.name == os.environ.get("FAKE_PROTOC_FAIL_ON"):
        sys.stderr.write(f"{target.name}: simulated failure\\n")
        sys.exit(2)

    def resolve(name):
        for root in proto_paths:
            candidate = root / name
            if candidate.is_file():
                return candidate
        return None

    seen, stack = [], [target]
    while stack:
        current = stack.pop()
        for name in IMPORT.findall(current.read_text()):
            found = resolve(name)
            if found is None:
                sys.stderr.write(f"{name}: File not found.\\n")
                sys.exit(1)
            if found != target and found not in seen:
                seen.append(found)
                stack.append(found)

    if dependency_out is not None:
        deps = " \\\\\\n  ".join(str(p) for p in seen + [target])
        dependency_out.write_text(f"{os.devnull}: {deps}\\n")
    else:
        for value in outputs.values():
            value.mkdir(parents=True, exist_ok=True)
            (value / (target.stem + ".generated")).write_text(str(target))
        warning = os.environ.get("FAKE_PROTOC_STDERR")
        if warning:
            sys.stderr.write(warning + "\\n")
''')


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: runs the full pipeline against a fake protoc executable"
    )


@pytest.fixture
def write_proto() -> Callable[..., Path]:
    """Write a proto file, creating parent directories."""
    def _write(root: Path, relative: str, imports: List[str] = (), package: str = "test") -> Path:
        path = Path(root) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = ['syntax = "proto3";', f"package {package};"]
        lines.extend(f'import "{name}";' for name in imports)
        lines.append(f"message {path.stem.title().replace('_', '')} {{}}")
        path.write_text("\n".join(lines) + "\n")
        return path
    return _write


@pytest.fixture
def fake_protoc(tmp_path, monkeypatch) -> Path:
    """Executable fake protoc; every invocation is logged to protoc.log."""
    script = tmp_path / "bin" / "protoc"
    script.parent.mkdir(parents=True)
    script.write_text(f"#!{sys.executable}\n{FAKE_PROTOC_SOURCE}")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    monkeypatch.setenv("FAKE_PROTOC_LOG", str(tmp_path / "protoc.log"))
    return script


@pytest.fixture
def protoc_calls(tmp_path) -> Callable[[], List[List[str]]]:
    """Argument lists of every fake protoc invocation so far."""
    def _calls() -> List[List[str]]:
        log = tmp_path / "protoc.log"
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text().splitlines() if line]
    return _calls


@pytest.fixture
def protoc_zip() -> bytes:
    """In-memory protoc release archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("bin/protoc", "#!/bin/sh\necho fake protoc\n")
        archive.writestr("include/google/protobuf/empty.proto", 'syntax = "proto3";\n')
        archive.writestr("readme.txt", "Protocol Buffers\n")
    return buffer.getvalue()


@pytest.fixture
def http_response() -> Callable[..., Mock]:
    """Build a mock requests response."""
    def _response(content: bytes = b"", status_code: int = 200) -> Mock:
        response = Mock()
        response.status_code = status_code
        response.content = content
        if status_code >= 400:
            response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
        else:
            response.raise_for_status.return_value = None
        return response
    return _response


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def workspace_parent(tmp_path) -> Path:
    path = tmp_path / "tmp"
    path.mkdir()
    return path


@pytest.fixture
def repo_config_data() -> Callable[..., Dict]:
    """Build a configuration mapping for filesystem repositories."""
    def _data(output_path: Path, repos: Dict[str, Dict], **extra) -> Dict:
        data = {
            "output_path": str(output_path),
            "compiler_version": "3.19.1",
            "repos": repos,
        }
        data.update(extra)
        return data
    return _data
