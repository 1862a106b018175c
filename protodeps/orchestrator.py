#!/usr/bin/env python3
"""
Run orchestration: provision protoc, resolve repositories, then discover,
expand and compile every configured dependency.

All git checkouts share one temporary workspace that is removed when the run
ends, on success or failure, unless the caller asks to keep it.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Union

from .config import ProtodepsConfig
from .discovery import IncludePathSet, ProtoFile, discover
from .errors import ConfigurationError, OutputPathNotConfigured
from .expander import DependencyExpander
from .protoc import ProtocRunner
from .repository import RepositoryResolver, ResolvedRepository
from .toolchain import ToolchainHandle, ToolchainProvisioner


logger = logging.getLogger(__name__)

RunnerFactory = Callable[[ToolchainHandle], ProtocRunner]


def strip_trailing_slash(path: str) -> str:
    return path.rstrip("/") if path != "/" else path


class TemporaryWorkspace:
    """Scoped temporary directory, removed on exit unless kept."""

    def __init__(self, keep: bool = False, base_dir: Optional[Union[str, Path]] = None):
        self.keep = keep
        self.base_dir = base_dir
        self.path: Optional[Path] = None

    def __enter__(self) -> "TemporaryWorkspace":
        self.path = Path(tempfile.mkdtemp(prefix="protodeps-",
                                          dir=str(self.base_dir) if self.base_dir else None))
        logger.debug(f"Created temporary workspace {self.path}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()

    def cleanup(self) -> None:
        if self.path is None:
            return
        if self.keep:
            logger.info(f"keeping temporary directory {self.path}")
            return
        shutil.rmtree(self.path, ignore_errors=True)
        logger.debug(f"Removed temporary workspace {self.path}")


@dataclass
class GenerationReport:
    """Outcome of a generate run."""
    toolchain: Optional[ToolchainHandle] = None
    workspace: Optional[Path] = None
    include_paths: Optional[IncludePathSet] = None
    compiled: List[ProtoFile] = field(default_factory=list)


def build_include_paths(repositories: List[ResolvedRepository]) -> IncludePathSet:
    """Union of every repository's include roots, in configuration order."""
    include_paths = IncludePathSet()
    for repository in repositories:
        for root in repository.include_roots:
            include_paths.add(root)
    return include_paths


class Orchestrator:
    """Drives one protodeps generate run."""

    def __init__(self, config: ProtodepsConfig,
                 provisioner: Optional[ToolchainProvisioner] = None,
                 runner_factory: Optional[RunnerFactory] = None,
                 verbose: bool = False, keep_tmp_dir: bool = False,
                 workspace_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the orchestrator.

        Args:
            config: Validated protodeps configuration
            provisioner: Toolchain provisioner (defaults to the configured cache)
            runner_factory: Builds the protoc runner from the provisioned toolchain
            verbose: Enable verbose logging in every component
            keep_tmp_dir: Keep the temporary workspace instead of deleting it
            workspace_dir: Parent directory for the temporary workspace
        """
        self.config = config
        self.verbose = verbose
        self.keep_tmp_dir = keep_tmp_dir
        self.workspace_dir = workspace_dir
        self.provisioner = provisioner or ToolchainProvisioner(config.resolve_cache_dir(), verbose=verbose)
        self.runner_factory = runner_factory or self._default_runner

    def _default_runner(self, toolchain: ToolchainHandle) -> ProtocRunner:
        return ProtocRunner(
            toolchain.compiler,
            language=self.config.language,
            plugin=toolchain.plugin,
            verbose=self.verbose,
            timeout=self.config.subprocess_timeout,
        )

    def validate_output_path(self) -> None:
        """
        Require an output path and warn when it is not a known source root.

        Raises:
            OutputPathNotConfigured: If no output path is configured
        """
        output_path = self.config.output_path
        if not output_path:
            raise OutputPathNotConfigured()

        if not any(
            strip_trailing_slash(source_path).endswith(strip_trailing_slash(output_path))
            for source_path in self.config.source_paths
        ):
            logger.warning(f"output-path {output_path} not found in source paths")

    def provision(self) -> ToolchainHandle:
        if not self.config.compiler_version:
            raise ConfigurationError("compiler version not defined")
        return self.provisioner.provision(
            self.config.compiler_version,
            plugin_version=self.config.grpc_version,
            compile_grpc=self.config.compile_grpc,
        )

    def generate(self) -> GenerationReport:
        """
        Compile every configured dependency and its import closure.

        Raises:
            ProtodepsError: On the first failure; the workspace is still cleaned up
        """
        report = GenerationReport()
        if not self.config.has_dependencies:
            logger.info("no dependencies configured, nothing to generate")
            return report

        self.validate_output_path()
        report.toolchain = self.provision()
        runner = self.runner_factory(report.toolchain)

        with TemporaryWorkspace(keep=self.keep_tmp_dir, base_dir=self.workspace_dir) as workspace:
            report.workspace = workspace.path
            resolver = RepositoryResolver(workspace.path, verbose=self.verbose,
                                          timeout=self.config.subprocess_timeout)
            repositories = [resolver.resolve(repo) for repo in self.config.repos]

            report.include_paths = build_include_paths(repositories)
            expander = DependencyExpander(runner.list_dependencies, verbose=self.verbose)

            for repository in repositories:
                for dependency in repository.config.dependencies:
                    output_path = Path(dependency.output_path or self.config.output_path)
                    try:
                        output_path.mkdir(parents=True, exist_ok=True)
                    except OSError as e:
                        raise ConfigurationError(f"cannot create output path {output_path}: {e}") from e

                    seeds = discover(repository.root, dependency.path, repository.name,
                                     repository.include_roots)
                    logger.info(f"found {len(seeds)} proto files in {repository.name}/{dependency.path}")

                    closure = expander.expand(report.include_paths, seeds)
                    for proto_file in closure:
                        runner.compile_file(report.include_paths, output_path, proto_file)
                        report.compiled.append(proto_file)

        return report
