"""
Fingerprint computation for projects.
Summarizes file paths and modification times into CRC-32 checksums.
"""
import asyncio
import zlib
from pathlib import Path
from typing import Dict, Iterable, List, Union
import logging

from ..core.models import Project, CompiledProject, FileMetadata
from .models import Fingerprint
from .scanner import ProjectScanner


def fingerprint_files(files: Iterable[FileMetadata]) -> int:
    """
    Checksum a set of files independent of enumeration order.

    Entries are sorted by path, rendered as "path:mtime" lines joined by
    newlines and hashed with CRC-32. An empty set hashes to 0.

    Args:
        files: File metadata entries

    Returns:
        Unsigned 32-bit checksum
    """
    ordered = sorted(files, key=lambda metadata: str(metadata.path))
    canonical = "\n".join(f"{metadata.path}:{metadata.modified}" for metadata in ordered)
    return zlib.crc32(canonical.encode('utf-8')) & 0xFFFFFFFF


class FingerprintCalculator:
    """Computes fingerprints of projects from their on-disk state"""

    def __init__(self, scanner: ProjectScanner, target_dir: Path):
        """
        Initialize fingerprint calculator.

        Args:
            scanner: ProjectScanner used to enumerate files
            target_dir: Root of the per-project build directories
        """
        self.scanner = scanner
        self.target_dir = Path(target_dir).resolve()
        self.logger = logging.getLogger(__name__)

    def build_dir_for(self, project: Union[Project, CompiledProject]) -> Path:
        if isinstance(project, CompiledProject):
            return project.build_path
        return self.target_dir / project.name

    async def fingerprint(self, project: Union[Project, CompiledProject]) -> Fingerprint:
        """
        Compute the current fingerprint of a project.

        Args:
            project: Project (build dir taken from target_dir) or CompiledProject

        Returns:
            Fingerprint

        Raises:
            FingerprintIOError: If listing or stat'ing files fails
        """
        source_project = project.project if isinstance(project, CompiledProject) else project

        source_files = await self.scanner.source_files(source_project)
        build_files = await self.scanner.build_entries(self.build_dir_for(project))

        fingerprint = Fingerprint(
            source=fingerprint_files(source_files),
            build=fingerprint_files(build_files)
        )
        self.logger.debug(
            f"Fingerprint for {source_project.name}: "
            f"source={fingerprint.source:08x} build={fingerprint.build:08x}"
        )
        return fingerprint

    async def fingerprint_many(
        self,
        projects: Iterable[CompiledProject]
    ) -> Dict[CompiledProject, Fingerprint]:
        """Fingerprint many compiled projects concurrently"""
        projects = list(projects)
        fingerprints: List[Fingerprint] = await asyncio.gather(
            *[self.fingerprint(project) for project in projects]
        )
        return dict(zip(projects, fingerprints))
