"""
Main build pipeline that sequences detection, compilation and persistence.
"""
import asyncio
import shutil
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..core.enums import ProjectState
from ..core.exceptions import BuildFailedError, CleanError
from ..core.models import Project, CompiledProject
from .change_detector import DirtDetector
from .compiler import Compiler, create_compiler
from .dependencies import DependencyGraph, DependencyResolver, ManifestDependencyResolver
from .hasher import FingerprintCalculator
from .lock import TargetLock
from .models import BuildFailure, Fingerprint, RunReport
from .orchestrator import BuildOrchestrator
from .scanner import ProjectScanner
from .store import FingerprintStore


class BuildPipeline:
    """
    Main orchestrator for incremental builds.
    """

    def __init__(
        self,
        scanner: ProjectScanner,
        resolver: DependencyResolver,
        compiler: Compiler,
        target_dir: Path,
        store_path: Path,
        max_concurrent: Optional[int] = None,
        lock_timeout: int = 30,
        on_dirty: Optional[Callable[[List[str]], None]] = None,
        on_failures: Optional[Callable[[List[Dict[str, str]]], None]] = None
    ):
        """
        Initialize build pipeline.

        Args:
            scanner: Discovers projects and enumerates their files
            resolver: Supplies direct dependencies of projects
            compiler: External compiler backend
            target_dir: Directory holding one build directory per project
            store_path: Fingerprint store file
            max_concurrent: Bound on concurrent compiler invocations
            lock_timeout: Seconds to wait for another build to finish
            on_dirty: Called with dirty project names before compiling
            on_failures: Called with {name, reason} dicts after compiling
        """
        self.target_dir = Path(target_dir)
        self.on_dirty = on_dirty
        self.on_failures = on_failures

        self.logger = logging.getLogger(__name__)

        self.scanner = scanner
        self.resolver = resolver
        self.calculator = FingerprintCalculator(scanner, self.target_dir)
        self.store = FingerprintStore(store_path, scanner.manifest_name)
        self.orchestrator = BuildOrchestrator(compiler, max_concurrent)
        self.lock = TargetLock(self.target_dir, lock_timeout)

    @classmethod
    def from_config(cls, global_config, **callbacks) -> 'BuildPipeline':
        """Create a pipeline with the backends named in configuration"""
        build = global_config.build
        return cls(
            scanner=ProjectScanner.from_config(global_config),
            resolver=ManifestDependencyResolver(
                global_config.layout.manifest_name,
                global_config.layout.dependency_table
            ),
            compiler=create_compiler(global_config.compiler, build.compile_timeout),
            target_dir=Path(build.target_dir),
            store_path=build.get_store_path(),
            max_concurrent=build.get_max_concurrent_compiles(),
            lock_timeout=build.lock_timeout,
            **callbacks
        )

    async def detect(self) -> Tuple[List[CompiledProject], List[Project]]:
        """
        Classify discovered projects without compiling anything.

        Returns:
            (clean compiled projects, dirty projects)
        """
        projects = await self.scanner.discover_projects()
        stored = self.store.load()

        # stored projects that are no longer discovered are not rebuilt or kept
        discovered = set(projects)
        stored = {
            compiled: fingerprint for compiled, fingerprint in stored.items()
            if compiled.project in discovered
        }

        # either failing must not leave the other running
        resolve_task = asyncio.create_task(DependencyGraph.resolve(projects, self.resolver))
        fingerprint_task = asyncio.create_task(self.calculator.fingerprint_many(stored.keys()))
        try:
            graph, current = await asyncio.gather(resolve_task, fingerprint_task)
        except BaseException:
            for task in (resolve_task, fingerprint_task):
                task.cancel()
            await asyncio.gather(resolve_task, fingerprint_task, return_exceptions=True)
            raise

        detector = DirtDetector(stored, current, graph)
        return detector.partition(projects)

    async def run(self) -> RunReport:
        """
        Run one incremental build.

        Returns:
            RunReport when every dirty project compiled

        Raises:
            BuildFailedError: If any project failed; the store is already
                updated for everything that succeeded
        """
        self.logger.info("Starting build process...")

        async with self.lock:
            clean, dirty = await self.detect()

            report = RunReport(
                dirty=[project.name for project in dirty],
                clean=[compiled.name for compiled in clean],
                store_path=str(self.store.store_path)
            )
            for compiled in clean:
                report.states[compiled.name] = ProjectState.CLEAN

            if dirty:
                self.logger.info(f"Dirty projects: {', '.join(report.dirty)}")
            else:
                self.logger.info("No projects require building")
            if self.on_dirty:
                self.on_dirty(report.dirty)

            outcome = await self.orchestrator.compile(dirty, self.target_dir)
            report.compiled = [compiled.name for compiled in outcome.compiled]
            report.failures = [failure.to_dict() for failure in outcome.failures]
            for project in dirty:
                report.states[project.name] = self.orchestrator.states.get(
                    project.name, ProjectState.DIRTY
                )

            if outcome.failures:
                self._log_failures(outcome.failures)
                if self.on_failures:
                    self.on_failures(report.failures)

            await self._persist(outcome.compiled + clean)

        if outcome.failures:
            raise BuildFailedError(outcome.failures, report)

        self.logger.info("Build process complete")
        return report

    async def _persist(self, keep: List[CompiledProject]):
        fingerprints: Dict[CompiledProject, Fingerprint] = await self.calculator.fingerprint_many(keep)
        self.store.save(fingerprints.items())

    def _log_failures(self, failures: List[BuildFailure]):
        for failure in failures:
            self.logger.error(str(failure))

    async def tracked_files(self) -> List[Path]:
        """Source files of every discovered project"""
        projects = await self.scanner.discover_projects()
        return await self.scanner.tracked_files(projects)

    def active_build(self) -> Optional[str]:
        """Pid of a run currently holding the target lock, if any"""
        return self.lock.holder()

    def _remove_outputs(self) -> bool:
        removed = False
        for entry in self.target_dir.iterdir():
            if entry == self.lock.lock_path:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed = True
        return removed

    async def clean(self) -> bool:
        """
        Remove the fingerprint store and all build outputs.

        Runs under the target lock so it never races a build.

        Returns:
            True if anything was removed

        Raises:
            CleanError: If outputs cannot be removed
            LockTimeoutError: If a build holds the lock past the timeout
        """
        async with self.lock:
            try:
                removed = self.store.delete()
                removed = await asyncio.to_thread(self._remove_outputs) or removed
            except OSError as e:
                raise CleanError(f"Failed to clean {self.target_dir}: {e}") from e

        self.logger.info(f"Cleaned {self.target_dir}")
        return removed
