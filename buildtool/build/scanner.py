"""
Discovers projects and enumerates the files that make up their state.
"""
import asyncio
import os
from pathlib import Path
from typing import Iterable, List, Sequence
import logging

from ..core.exceptions import DiscoveryError, FingerprintIOError
from ..core.models import Project, FileMetadata, contains_manifest, DEFAULT_MANIFEST_NAME


def list_entries_in(directory: Path) -> List[Path]:
    """List immediate entries (files and directories) of a directory"""
    with os.scandir(directory) as entries:
        return [Path(entry.path) for entry in entries]


def read_metadata(paths: Iterable[Path]) -> List[FileMetadata]:
    """Stat every path and pair it with its modification time"""
    return [FileMetadata(path=path, modified=path.stat().st_mtime_ns) for path in paths]


class ProjectScanner:
    """Scans a projects directory and the files of individual projects"""

    def __init__(
        self,
        projects_dir: Path,
        manifest_name: str = DEFAULT_MANIFEST_NAME,
        source_dir: str = "src",
        source_extensions: Sequence[str] = (".sw",),
        metadata_files: Sequence[str] = ("Forc.lock", "Forc.toml")
    ):
        """
        Initialize scanner.

        Args:
            projects_dir: Directory whose immediate subdirectories are projects
            manifest_name: Marker file identifying a project root
            source_dir: Subdirectory holding source files
            source_extensions: Suffixes recognized as source files
            metadata_files: Top-level files tracked alongside sources if present
        """
        self.projects_dir = Path(projects_dir)
        self.manifest_name = manifest_name
        self.source_dir = source_dir
        self.source_extensions = tuple(source_extensions)
        self.metadata_files = tuple(metadata_files)
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, global_config) -> 'ProjectScanner':
        layout = global_config.layout
        return cls(
            projects_dir=Path(global_config.build.projects_dir),
            manifest_name=layout.manifest_name,
            source_dir=layout.source_dir,
            source_extensions=layout.source_extensions,
            metadata_files=layout.metadata_files
        )

    def load_project(self, path: Path) -> Project:
        """Validate a project root using the configured manifest name"""
        return Project.from_path(path, self.manifest_name)

    def _scan_projects(self) -> List[Project]:
        projects = []
        for entry in list_entries_in(self.projects_dir):
            if not entry.is_dir() or not contains_manifest(entry, self.manifest_name):
                self.logger.debug(f"Skipping non-project entry: {entry}")
                continue
            projects.append(self.load_project(entry))
        return projects

    async def discover_projects(self) -> List[Project]:
        """
        Find projects among the immediate subdirectories of projects_dir.

        Returns:
            Projects sorted by name

        Raises:
            DiscoveryError: If projects_dir cannot be listed
        """
        try:
            projects = await asyncio.to_thread(self._scan_projects)
        except OSError as e:
            raise DiscoveryError(
                f"Could not list projects directory {self.projects_dir}: {e}"
            ) from e

        projects.sort(key=lambda project: project.name)
        self.logger.info(f"Discovered {len(projects)} projects in {self.projects_dir}")
        return projects

    def _source_paths(self, project: Project) -> List[Path]:
        src_dir = project.path / self.source_dir
        source_files = [
            path for path in list_entries_in(src_dir)
            if path.is_file() and path.suffix in self.source_extensions
        ]

        for filename in self.metadata_files:
            path = project.path / filename
            if path.exists():
                source_files.append(path)

        return source_files

    async def source_files(self, project: Project) -> List[FileMetadata]:
        """
        Source files of a project with their modification times.

        Raises:
            FingerprintIOError: If listing or stat'ing fails
        """
        try:
            return await asyncio.to_thread(
                lambda: read_metadata(self._source_paths(project))
            )
        except OSError as e:
            raise FingerprintIOError(
                f"Failed to read source files of project '{project.name}': {e}"
            ) from e

    async def build_entries(self, build_dir: Path) -> List[FileMetadata]:
        """
        Immediate entries of a build directory with their modification times.
        A missing directory yields no entries.

        Raises:
            FingerprintIOError: If listing or stat'ing fails
        """
        build_dir = Path(build_dir)

        def scan() -> List[FileMetadata]:
            if not build_dir.exists():
                return []
            return read_metadata(list_entries_in(build_dir))

        try:
            return await asyncio.to_thread(scan)
        except OSError as e:
            raise FingerprintIOError(
                f"Failed to read build artifacts in {build_dir}: {e}"
            ) from e

    async def tracked_files(self, projects: List[Project]) -> List[Path]:
        """
        Every source file tracked across the given projects.

        Raises:
            FingerprintIOError: Listing every project that could not be scanned
        """
        results = await asyncio.gather(
            *[self.source_files(project) for project in projects],
            return_exceptions=True
        )

        errors = []
        for result in results:
            if isinstance(result, FingerprintIOError):
                errors.append(result)
            elif isinstance(result, BaseException):
                raise result
        if errors:
            details = "; ".join(str(error) for error in errors)
            raise FingerprintIOError(
                f"Errors occurred while scanning for project files: {details}"
            )

        return [metadata.path for files in results for metadata in files]

