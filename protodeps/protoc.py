#!/usr/bin/env python3
"""
protoc invocation: per-file compilation and dependency listing.
"""

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .discovery import IncludePathSet, ProtoFile
from .errors import CompilationFailed


logger = logging.getLogger(__name__)

DEPENDENCY_PATTERN = re.compile(r"[^\s]*\.proto")

GRPC_OUT_FLAG = "grpc-java_out"


@dataclass(frozen=True)
class CompilationResult:
    """Captured protoc output streams."""
    stdout: str
    stderr: str


def long_opt(key: str, value: Union[str, Path]) -> str:
    return f"--{key}={value}"


def parse_dependency_output(output: str) -> List[Path]:
    """
    Extract the proto paths from a protoc --dependency_out file.

    The file is make-style ("target: dep dep \\"); only tokens ending in
    .proto are kept, so the target and line continuations are skipped.
    """
    return [Path(match) for match in DEPENDENCY_PATTERN.findall(output)]


class ProtocRunner:
    """Runs a provisioned protoc against individual proto files."""

    def __init__(self, compiler: Union[str, Path], language: str = "java",
                 plugin: Optional[Union[str, Path]] = None, verbose: bool = False,
                 timeout: Optional[float] = None):
        """
        Initialize the runner.

        Args:
            compiler: Path to the protoc executable
            language: Target language, used as --<language>_out
            plugin: Path to protoc-gen-grpc-java, enables gRPC generation
            verbose: Enable verbose logging
            timeout: Optional timeout in seconds for each protoc call
        """
        self.compiler = Path(compiler)
        self.language = language
        self.plugin = Path(plugin) if plugin else None
        self.verbose = verbose
        self.timeout = timeout

    def log(self, message: str) -> None:
        """Log a message if verbose mode is enabled."""
        if self.verbose:
            logger.info(message)

    def run(self, args: List[str], proto_file: Path) -> CompilationResult:
        """Run protoc with args, raising CompilationFailed on non-zero exit."""
        command = [str(self.compiler)] + args
        self.log(f"Running {' '.join(command)}")
        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise CompilationFailed(proto_file, None, f"protoc timed out after {e.timeout}s") from e
        except OSError as e:
            raise CompilationFailed(proto_file, None, f"could not execute {self.compiler}: {e}") from e

        if result.returncode != 0:
            raise CompilationFailed(proto_file, result.returncode, result.stderr)

        return CompilationResult(stdout=result.stdout, stderr=result.stderr)

    def compile_args(self, include_paths: Iterable[Path], output_path: Union[str, Path],
                     proto_file: ProtoFile) -> List[str]:
        """protoc arguments compiling a single file."""
        args = [long_opt("proto_path", path) for path in include_paths]
        args.append(long_opt(f"{self.language}_out", output_path))
        if self.plugin is not None:
            args.append(long_opt(GRPC_OUT_FLAG, output_path))
            args.append(long_opt("plugin", self.plugin))
        args.append(str(proto_file.path))
        return args

    def compile_file(self, include_paths: IncludePathSet, output_path: Union[str, Path],
                     proto_file: ProtoFile) -> CompilationResult:
        """
        Compile one proto file into output_path.

        Non-empty stderr on success is reported as a warning.

        Raises:
            CompilationFailed: If protoc exits non-zero
        """
        logger.info(f"compiling {proto_file.name} ...")
        result = self.run(self.compile_args(include_paths, output_path, proto_file), proto_file.path)

        if result.stderr.strip():
            logger.warning(result.stderr.strip())
        if result.stdout.strip():
            logger.info(result.stdout.strip())

        return result

    def list_dependencies(self, include_paths: IncludePathSet, proto_file: ProtoFile) -> List[Path]:
        """
        Ask protoc which files proto_file depends on.

        No code is generated; the descriptor output is discarded.
        """
        with tempfile.TemporaryDirectory(prefix="protodeps-deps-") as sink_dir:
            sink = Path(sink_dir) / "deps.d"
            args = [long_opt("proto_path", path) for path in include_paths]
            args.append(long_opt("dependency_out", sink))
            args.append(f"-o{os.devnull}")
            args.append(str(proto_file.path))

            self.run(args, proto_file.path)
            output = sink.read_text() if sink.exists() else ""

        return parse_dependency_output(output)
