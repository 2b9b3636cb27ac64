import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .exceptions import InvalidProjectError

DEFAULT_MANIFEST_NAME = "Forc.toml"

PathLike = Union[str, os.PathLike]


def contains_manifest(directory: Path, manifest_name: str = DEFAULT_MANIFEST_NAME) -> bool:
    """Check whether a directory carries the project manifest marker"""
    return (Path(directory) / manifest_name).is_file()


@dataclass(frozen=True)
class Project:
    """
    A compilable unit rooted at a directory holding a manifest file.

    Identity is the canonical (fully resolved) root path, so two raw paths
    that resolve to the same directory compare and hash equal.
    """
    path: Path

    @classmethod
    def from_path(cls, path: PathLike, manifest_name: str = DEFAULT_MANIFEST_NAME) -> 'Project':
        """
        Validate and canonicalize a project directory.

        Args:
            path: Project root directory (may be relative or contain '..')
            manifest_name: Marker file that must exist in the root

        Returns:
            Project

        Raises:
            InvalidProjectError: If the manifest is missing
        """
        raw_path = Path(path)
        if not contains_manifest(raw_path, manifest_name):
            raise InvalidProjectError(f"{raw_path} does not contain a {manifest_name}")

        try:
            canonical = raw_path.resolve(strict=True)
        except OSError as e:
            raise InvalidProjectError(f"Could not canonicalize {raw_path}: {e}") from e

        return cls(path=canonical)

    @property
    def name(self) -> str:
        return self.path.name

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class CompiledProject:
    """A project together with the directory holding its build artifacts"""
    project: Project
    build_path: Path

    @classmethod
    def from_paths(cls, project: Project, build_path: PathLike) -> 'CompiledProject':
        """
        Pair a project with an existing build directory.

        Raises:
            InvalidProjectError: If build_path is not a directory
        """
        build_path = Path(build_path)
        if not build_path.is_dir():
            raise InvalidProjectError(
                f"Failed to construct a compiled project! {build_path} is not a directory!"
            )
        return cls(project=project, build_path=build_path.resolve())

    @property
    def name(self) -> str:
        return self.project.name

    @property
    def path(self) -> Path:
        return self.project.path


@dataclass(frozen=True)
class FileMetadata:
    """A filesystem entry and its modification time in nanoseconds"""
    path: Path
    modified: int
