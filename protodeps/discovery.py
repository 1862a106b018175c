#!/usr/bin/env python3
"""
Proto file discovery and include path bookkeeping.
"""

import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Union

from .errors import DependencyPathNotFound


PROTO_SUFFIX = ".proto"


def canonical(path: Union[str, Path]) -> Path:
    """Filesystem identity of path: absolute, symlinks and '..' resolved."""
    return Path(path).resolve()


class ProtoFile:
    """
    A proto file on disk.

    Two ProtoFiles are equal when they name the same file, however the path
    was spelled when the file was found.
    """

    __slots__ = ("path", "repository", "import_path")

    def __init__(self, path: Union[str, Path], repository: Optional[str] = None,
                 import_path: Optional[str] = None):
        self.path = canonical(path)
        self.repository = repository
        self.import_path = import_path if import_path is not None else self.path.name

    @property
    def name(self) -> str:
        return self.path.name

    def __eq__(self, other) -> bool:
        if not isinstance(other, ProtoFile):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __repr__(self) -> str:
        return f"ProtoFile({str(self.path)!r}, repository={self.repository!r}, import_path={self.import_path!r})"


class IncludePathSet:
    """Ordered, duplicate-free list of protoc import roots."""

    def __init__(self, paths: Iterable[Union[str, Path]] = ()):
        self._paths: List[Path] = []
        for path in paths:
            self.add(path)

    def add(self, path: Union[str, Path]) -> bool:
        """Append path unless already present. Returns True when appended."""
        path = canonical(path)
        if path in self._paths:
            return False
        self._paths.append(path)
        return True

    def root_for(self, path: Union[str, Path]) -> Optional[Path]:
        """First include root containing path, matching protoc's search order."""
        path = canonical(path)
        for root in self._paths:
            if root == path or root in path.parents:
                return root
        return None

    def as_args(self) -> List[str]:
        return [f"--proto_path={path}" for path in self._paths]

    def __iter__(self) -> Iterator[Path]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path) -> bool:
        return canonical(path) in self._paths

    def __repr__(self) -> str:
        return f"IncludePathSet({[str(p) for p in self._paths]!r})"


def import_path_for(path: Path, include_roots: Sequence[Path]) -> Optional[str]:
    for root in include_roots:
        root = canonical(root)
        if root in path.parents:
            return path.relative_to(root).as_posix()
    return None


def _raise_walk_error(error: OSError) -> None:
    # os.walk skips unreadable directories unless told otherwise
    raise error


def discover(root: Union[str, Path], sub_path: str = ".", repository: Optional[str] = None,
             include_roots: Sequence[Path] = ()) -> List[ProtoFile]:
    """
    List every .proto file below root/sub_path.

    Args:
        root: Repository root directory
        sub_path: Directory relative to root to search recursively
        repository: Owning repository name recorded on each file
        include_roots: Import roots used to compute import-relative paths;
            files outside all of them are made relative to root

    Returns:
        Discovered files in filesystem walk order

    Raises:
        DependencyPathNotFound: If root/sub_path is not a directory or cannot be walked
    """
    base = Path(root) / sub_path
    if not base.is_dir():
        raise DependencyPathNotFound(base)

    roots = list(include_roots) + [Path(root)]
    files = []
    try:
        for dirpath, dirnames, filenames in os.walk(base, onerror=_raise_walk_error):
            dirnames.sort()
            for filename in sorted(filenames):
                candidate = Path(dirpath) / filename
                if filename.endswith(PROTO_SUFFIX) and candidate.is_file():
                    resolved = canonical(candidate)
                    files.append(ProtoFile(resolved, repository, import_path_for(resolved, roots)))
    except OSError as e:
        raise DependencyPathNotFound(base, str(e)) from e
    return files
