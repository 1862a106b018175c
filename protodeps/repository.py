#!/usr/bin/env python3
"""
Materializes configured repositories into local directories.

Git repositories are cloned into the run's temporary workspace; filesystem
repositories are used in place and never copied.
"""

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from .config import FilesystemRepository, GitRepository, RepositoryConfig
from .errors import ConfigurationError, MissingRevision, RepositoryCloneFailed


logger = logging.getLogger(__name__)

# Full commit hashes are checked out after a full clone; anything else is
# treated as a branch or tag and cloned shallowly.
COMMIT_PATTERN = re.compile(r"^[0-9A-Za-z]{40}$")


def is_commit(revision: str) -> bool:
    return bool(COMMIT_PATTERN.match(revision))


@dataclass(frozen=True)
class ResolvedRepository:
    """A configured repository together with its local root directory."""
    config: RepositoryConfig
    root: Path
    temporary: bool = False

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def include_roots(self) -> List[Path]:
        return [self.root / proto_path for proto_path in self.config.proto_paths]


class RepositoryResolver:
    """Resolves each repository name at most once per run."""

    def __init__(self, workspace_root: Union[str, Path], verbose: bool = False,
                 timeout: Optional[float] = None):
        """
        Initialize the resolver.

        Args:
            workspace_root: Temporary workspace shared by all git clones
            verbose: Enable verbose logging
            timeout: Optional timeout in seconds for each git subprocess
        """
        self.workspace_root = Path(workspace_root)
        self.verbose = verbose
        self.timeout = timeout
        self._resolved: Dict[str, ResolvedRepository] = {}

    def log(self, message: str) -> None:
        """Log a message if verbose mode is enabled."""
        if self.verbose:
            logger.info(message)

    @property
    def resolved(self) -> Dict[str, ResolvedRepository]:
        return dict(self._resolved)

    def resolve(self, config: RepositoryConfig) -> ResolvedRepository:
        """Return the local checkout of config, resolving it on first request."""
        cached = self._resolved.get(config.name)
        if cached is not None:
            self.log(f"Reusing {cached.root} for repository '{config.name}'")
            return cached

        spec = config.spec
        if isinstance(spec, GitRepository):
            resolved = ResolvedRepository(config, self._clone(config.name, spec), temporary=True)
        elif isinstance(spec, FilesystemRepository):
            root = Path(spec.path).expanduser().resolve()
            self.log(f"Using local repository '{config.name}' at {root}")
            resolved = ResolvedRepository(config, root)
        else:
            raise ConfigurationError(f"repository '{config.name}': unsupported spec {spec!r}")

        self._resolved[config.name] = resolved
        return resolved

    def _git(self, name: str, args: List[str], cwd: Optional[Path] = None) -> None:
        self.log(f"Running git {' '.join(args)}")
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=str(cwd) if cwd else None,
                env=os.environ.copy(),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise RepositoryCloneFailed(name, None, f"timed out after {e.timeout}s") from e
        except FileNotFoundError as e:
            raise RepositoryCloneFailed(name, None, "git executable not found") from e

        if result.returncode != 0:
            raise RepositoryCloneFailed(name, result.returncode, result.stderr)

    def _clone(self, name: str, spec: GitRepository) -> Path:
        if not spec.revision:
            raise MissingRevision(name)

        self.workspace_root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=f"{name}-", dir=str(self.workspace_root)))
        logger.info(f"cloning {spec.clone_url} at {spec.revision} ...")

        if is_commit(spec.revision):
            self._git(name, ["clone", spec.clone_url, str(path)])
            self._git(name, ["checkout", spec.revision], cwd=path)
        else:
            self._git(name, ["clone", spec.clone_url, "--branch", spec.revision,
                             "--single-branch", "--depth", "1", str(path)])
        return path
