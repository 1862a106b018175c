"""
Exception hierarchy for protodeps.

Every error aborts the run; the CLI reports the message and exits non-zero.
"""

from pathlib import Path
from typing import Optional


class ProtodepsError(Exception):
    """Base exception for protodeps operations."""
    pass


class ConfigurationError(ProtodepsError):
    """Configuration loading or validation failed."""
    pass


class OutputPathNotConfigured(ConfigurationError):
    """No output path configured while dependencies are declared."""

    def __init__(self):
        super().__init__("output path not defined")


class UnknownCommand(ProtodepsError):
    """Requested command is not one of the supported commands."""

    def __init__(self, command: str):
        super().__init__(f"unknown command: {command}")
        self.command = command


class UnsupportedPlatform(ProtodepsError):
    """OS name or architecture has no release mapping."""

    def __init__(self, prop_name: str, prop_value: str):
        super().__init__(f"unsupported {prop_name}: {prop_value}")
        self.prop_name = prop_name
        self.prop_value = prop_value


class ProvisioningFailed(ProtodepsError):
    """Downloading, unpacking or permissioning a toolchain binary failed."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class MissingRevision(ConfigurationError):
    """Git repository declared without a revision."""

    def __init__(self, repository: str):
        super().__init__(f"repository '{repository}' has no rev configured")
        self.repository = repository


class RepositoryCloneFailed(ProtodepsError):
    """A git subprocess exited with a non-zero status."""

    def __init__(self, repository: str, exit_code: Optional[int], stderr: str = ""):
        message = f"git failed for repository '{repository}' (exit {exit_code})"
        if stderr.strip():
            message = f"{message}:\n{stderr.strip()}"
        super().__init__(message)
        self.repository = repository
        self.exit_code = exit_code
        self.stderr = stderr


class DependencyPathNotFound(ProtodepsError):
    """Discovery target directory does not exist or cannot be read."""

    def __init__(self, path: Path, reason: Optional[str] = None):
        message = f"dependency path not found: {path}"
        if reason:
            message = f"dependency path not readable: {path}: {reason}"
        super().__init__(message)
        self.path = path
        self.reason = reason


class CompilationFailed(ProtodepsError):
    """protoc exited with a non-zero status (or timed out)."""

    def __init__(self, proto_file: Path, exit_code: Optional[int], stderr: str = ""):
        message = f"protoc failed for {proto_file} (exit {exit_code})"
        if stderr.strip():
            message = f"{message}:\n{stderr.strip()}"
        super().__init__(message)
        self.proto_file = proto_file
        self.exit_code = exit_code
        self.stderr = stderr
