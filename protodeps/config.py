#!/usr/bin/env python3
"""
Configuration schema for protodeps.

The configuration is a YAML document describing the protoc toolchain, the
output location and the repositories whose proto files are compiled. Each
repository is one of a fixed set of kinds (git or filesystem); anything else
is rejected when the file is loaded.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigurationError


DEFAULT_CONFIG_FILE = "protodeps.yaml"
DEFAULT_LANGUAGE = "java"


@dataclass(frozen=True)
class GitRepository:
    """Remote git repository checked out at a branch, tag or commit."""
    clone_url: str
    revision: Optional[str] = None

    kind = "git"


@dataclass(frozen=True)
class FilesystemRepository:
    """Local directory used in place."""
    path: str

    kind = "filesystem"


RepositorySpec = Union[GitRepository, FilesystemRepository]


@dataclass(frozen=True)
class DependencyConfig:
    """A subdirectory of a repository whose proto files must be compiled."""
    path: str
    output_path: Optional[str] = None


@dataclass(frozen=True)
class RepositoryConfig:
    """One named repository with its include roots and compiled subdirectories."""
    name: str
    spec: RepositorySpec
    proto_paths: List[str] = field(default_factory=lambda: ["."])
    dependencies: List[DependencyConfig] = field(default_factory=list)


@dataclass
class ProtodepsConfig:
    """Top-level protodeps configuration."""
    output_path: Optional[str] = None
    compiler_version: Optional[str] = None
    language: str = DEFAULT_LANGUAGE
    compile_grpc: bool = False
    grpc_version: Optional[str] = None
    cache_dir: Optional[str] = None
    subprocess_timeout: Optional[float] = None
    source_paths: List[str] = field(default_factory=list)
    repos: List[RepositoryConfig] = field(default_factory=list)

    @property
    def has_dependencies(self) -> bool:
        return any(repo.dependencies for repo in self.repos)

    def resolve_cache_dir(self) -> Path:
        """Per-user cache root for provisioned toolchains."""
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        env_home = os.environ.get("PROTODEPS_HOME")
        if env_home:
            return Path(env_home).expanduser()
        return Path.home() / ".protodeps"


def _require_str(data: Dict[str, Any], key: str, context: str) -> str:
    value = data.get(key)
    if value is None or str(value).strip() == "":
        raise ConfigurationError(f"{context}: missing required key '{key}'")
    return str(value)


def _as_list(value: Any, key: str, context: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"{context}: '{key}' must be a list")
    return value


def _parse_spec(name: str, data: Dict[str, Any]) -> RepositorySpec:
    context = f"repository '{name}'"
    repo_type = data.get("repo_type")
    repo_config = data.get("config") or {}
    if not isinstance(repo_config, dict):
        raise ConfigurationError(f"{context}: 'config' must be a mapping")

    if repo_type == GitRepository.kind:
        rev = repo_config.get("rev")
        return GitRepository(
            clone_url=_require_str(repo_config, "clone_url", context),
            revision=str(rev) if rev is not None else None,
        )
    if repo_type == FilesystemRepository.kind:
        return FilesystemRepository(path=_require_str(repo_config, "path", context))

    raise ConfigurationError(
        f"{context}: unknown repo_type {repo_type!r}, "
        f"expected one of: {[GitRepository.kind, FilesystemRepository.kind]}"
    )


def _parse_dependency(entry: Any, context: str) -> DependencyConfig:
    if isinstance(entry, str):
        return DependencyConfig(path=entry)
    if isinstance(entry, dict):
        output_path = entry.get("output_path")
        return DependencyConfig(
            path=_require_str(entry, "path", context),
            output_path=str(output_path) if output_path else None,
        )
    raise ConfigurationError(f"{context}: invalid dependency entry {entry!r}")


def parse_repository(name: str, data: Any) -> RepositoryConfig:
    """Build a RepositoryConfig from its YAML mapping."""
    context = f"repository '{name}'"
    if not isinstance(data, dict):
        raise ConfigurationError(f"{context}: definition must be a mapping")

    proto_paths = [str(p) for p in _as_list(data.get("proto_paths"), "proto_paths", context)]
    dependencies = [
        _parse_dependency(entry, context)
        for entry in _as_list(data.get("dependencies"), "dependencies", context)
    ]
    return RepositoryConfig(
        name=name,
        spec=_parse_spec(name, data),
        proto_paths=proto_paths or ["."],
        dependencies=dependencies,
    )


def parse_config(data: Optional[Dict[str, Any]]) -> ProtodepsConfig:
    """Validate a decoded configuration mapping."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("configuration root must be a mapping")

    repos_data = data.get("repos") or {}
    if not isinstance(repos_data, dict):
        raise ConfigurationError("'repos' must be a mapping of name to repository")

    timeout = data.get("subprocess_timeout")
    try:
        timeout = float(timeout) if timeout is not None else None
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"invalid subprocess_timeout: {timeout!r}") from e

    compile_grpc = data.get("compile_grpc")
    if compile_grpc is None:
        compile_grpc = False
    elif not isinstance(compile_grpc, bool):
        raise ConfigurationError(f"invalid compile_grpc: {compile_grpc!r}, expected true or false")

    config = ProtodepsConfig(
        output_path=data.get("output_path"),
        compiler_version=str(data["compiler_version"]) if data.get("compiler_version") else None,
        language=str(data.get("language") or DEFAULT_LANGUAGE),
        compile_grpc=compile_grpc,
        grpc_version=str(data["grpc_version"]) if data.get("grpc_version") else None,
        cache_dir=data.get("cache_dir"),
        subprocess_timeout=timeout,
        source_paths=[str(p) for p in _as_list(data.get("source_paths"), "source_paths", "configuration")],
        repos=[parse_repository(str(name), repo) for name, repo in repos_data.items()],
    )

    if config.compile_grpc and not config.grpc_version:
        raise ConfigurationError("compile_grpc is enabled but grpc_version is not defined")

    return config


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_FILE) -> ProtodepsConfig:
    """Load and validate a protodeps YAML configuration file."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML configuration: {e}") from e

    return parse_config(data)
