"""Pytest configuration and fixtures for build tool tests."""

import asyncio
import os
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Set
import pytest
import logging

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from buildtool.build.compiler import Compiler
from buildtool.build.dependencies import ManifestDependencyResolver
from buildtool.build.manager import BuildPipeline
from buildtool.build.scanner import ProjectScanner
from buildtool.core.exceptions import CompilationError
from buildtool.core.models import Project, CompiledProject

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def manifest_with_deps(name: str, deps: Iterable[str] = ()) -> str:
    """Render a Forc.toml declaring path dependencies on sibling projects"""
    lines = [
        "[project]",
        f'name = "{name}"',
        'entry = "main.sw"',
        'license = "Apache-2.0"',
        "",
        "[dependencies]",
    ]
    for dep in deps:
        lines.append(f'{dep} = {{ path = "../{dep}" }}')
    return "\n".join(lines) + "\n"


def generate_project(parent_dir: Path, name: str, manifest: Optional[str] = None,
                     sources: Iterable[str] = ("main.sw",)) -> Project:
    """Create a project directory with a manifest and source files"""
    project_dir = Path(parent_dir) / name
    (project_dir / "src").mkdir(parents=True, exist_ok=True)
    (project_dir / "Forc.toml").write_text(
        manifest if manifest is not None else manifest_with_deps(name)
    )
    for source in sources:
        (project_dir / "src" / source).write_text(f"// {source}\n")
    return Project.from_path(project_dir)


def generate_compiled_project(sources_dir: Path, name: str, build_dir: Path) -> CompiledProject:
    project = generate_project(sources_dir, name)
    output = Path(build_dir) / name
    output.mkdir(parents=True, exist_ok=True)
    return CompiledProject.from_paths(project, output)


def ensure_files_exist(basedir: Path, relative_paths: Iterable[str]) -> List[Path]:
    """Create every file (and missing parent directories) under basedir"""
    paths = []
    for rel_path in relative_paths:
        path = Path(basedir) / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch()
        paths.append(path)
    return paths


def bump_mtime(path: Path, seconds: int = 10):
    """Move a file's mtime forward so the change is visible at any resolution"""
    stat = Path(path).stat()
    new_ns = stat.st_mtime_ns + seconds * 1_000_000_000
    os.utime(path, ns=(new_ns, new_ns))


class FakeCompiler(Compiler):
    """Compiler double that writes an artifact per project"""

    def __init__(self, failing: Optional[Set[str]] = None, delay: float = 0.0):
        super().__init__()
        self.failing = failing or set()
        self.delay = delay
        self.calls: List[str] = []
        self.prepared = 0
        self.active = 0
        self.max_active = 0

    async def prepare(self):
        self.prepared += 1

    async def run(self, source_path: Path, output_dir: Path):
        name = Path(source_path).name
        self.calls.append(name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if name in self.failing:
                raise CompilationError(f"error: could not compile {name}")
            output_dir.mkdir(parents=True, exist_ok=True)
            (output_dir / f"{name}.bin").write_bytes(name.encode())
        finally:
            self.active -= 1


@pytest.fixture
def workspace(tmp_path) -> Path:
    """Workspace with an empty projects directory"""
    (tmp_path / "projects").mkdir()
    return tmp_path


@pytest.fixture
def projects_dir(workspace) -> Path:
    return workspace / "projects"


@pytest.fixture
def target_dir(workspace) -> Path:
    return workspace / "target"


@pytest.fixture
def scanner(projects_dir) -> ProjectScanner:
    return ProjectScanner(projects_dir)


@pytest.fixture
def fake_compiler() -> FakeCompiler:
    return FakeCompiler()


@pytest.fixture
def make_pipeline(scanner, target_dir):
    """Factory building a pipeline around a given compiler"""
    def factory(compiler: Compiler, **kwargs) -> BuildPipeline:
        return BuildPipeline(
            scanner=scanner,
            resolver=ManifestDependencyResolver(),
            compiler=compiler,
            target_dir=target_dir,
            store_path=target_dir / "fingerprints.json",
            **kwargs
        )
    return factory
