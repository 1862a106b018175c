#!/usr/bin/env python3
"""
Transitive import closure of proto files, using protoc as the oracle.

protoc already knows how to parse imports and resolve them against the
include paths, so each file in the closure is queried with protoc's
dependency-listing mode and newly reported files are queued in turn.
"""

import logging
from collections import deque
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List

from .discovery import IncludePathSet, ProtoFile, canonical, import_path_for


logger = logging.getLogger(__name__)

DependencyLister = Callable[[IncludePathSet, ProtoFile], List[Path]]


class DependencyClosure:
    """Insertion-ordered set of ProtoFiles keyed by filesystem identity."""

    def __init__(self, files: Iterable[ProtoFile] = ()):
        self._files: Dict[Path, ProtoFile] = {}
        for proto_file in files:
            self.add(proto_file)

    def add(self, proto_file: ProtoFile) -> bool:
        if proto_file.path in self._files:
            return False
        self._files[proto_file.path] = proto_file
        return True

    @property
    def paths(self) -> List[Path]:
        return list(self._files)

    def __contains__(self, item) -> bool:
        if isinstance(item, ProtoFile):
            return item.path in self._files
        return canonical(item) in self._files

    def __iter__(self) -> Iterator[ProtoFile]:
        return iter(self._files.values())

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"DependencyClosure({[str(p) for p in self._files]!r})"


class DependencyExpander:
    """Breadth-first expansion over compiler-reported imports."""

    def __init__(self, list_dependencies: DependencyLister, verbose: bool = False):
        self.list_dependencies = list_dependencies
        self.verbose = verbose

    def log(self, message: str) -> None:
        """Log a message if verbose mode is enabled."""
        if self.verbose:
            logger.info(message)

    def expand(self, include_paths: IncludePathSet, seeds: Iterable[ProtoFile]) -> DependencyClosure:
        """
        Compute the closure of seeds under protoc-reported imports.

        Seeds are included. A file is queried exactly once; cycles terminate
        because membership is checked before enqueueing. A reported file that
        does not exist is not checked here: probing it fails instead.
        """
        closure = DependencyClosure(seeds)
        worklist = deque(closure)

        while worklist:
            proto_file = worklist.popleft()
            for dep in self.list_dependencies(include_paths, proto_file):
                dep_path = canonical(dep)
                if dep_path in closure:
                    continue
                dep_file = ProtoFile(dep_path, import_path=import_path_for(dep_path, list(include_paths)))
                closure.add(dep_file)
                worklist.append(dep_file)
                self.log(f"{proto_file.name} depends on {dep_file.import_path}")

        self.log(f"Expanded {len(closure)} files from seeds")
        return closure
