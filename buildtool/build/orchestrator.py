import asyncio
import shutil
import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..core.enums import ProjectState
from ..core.exceptions import CompilationError, InvalidProjectError
from ..core.models import Project, CompiledProject
from ..config.global_config_loader import default_max_concurrent_compiles
from .compiler import Compiler
from .models import BuildFailure, BuildResult, BuildSuccess, CompileOutcome


class BuildOrchestrator:
    """Compile dirty projects concurrently, isolating failures per project"""

    def __init__(self, compiler: Compiler, max_concurrent: Optional[int] = None):
        self.compiler = compiler
        self.max_concurrent = max_concurrent or default_max_concurrent_compiles()
        self.states: Dict[str, ProjectState] = {}
        self.logger = logging.getLogger(f"{__name__}.BuildOrchestrator")

    async def _prepare_output_dir(self, project: Project, target_root: Path) -> Path:
        build_dir = target_root / project.name
        if build_dir.exists():
            try:
                await asyncio.to_thread(shutil.rmtree, build_dir)
            except OSError as e:
                raise CompilationError(
                    f"Could not remove existing target dir for project '{build_dir}': {e}"
                ) from e
        return build_dir

    async def _compile_one(
        self,
        project: Project,
        target_root: Path,
        semaphore: asyncio.Semaphore
    ) -> BuildResult:
        async with semaphore:
            self.states[project.name] = ProjectState.COMPILING
            self.logger.info(f"Compiling project: {project.name}")

            try:
                build_dir = await self._prepare_output_dir(project, target_root)
                await self.compiler.run(project.path, build_dir)
                compiled = CompiledProject.from_paths(project, build_dir)

            except (CompilationError, InvalidProjectError) as e:
                reason = e.reason if isinstance(e, CompilationError) else str(e)
                self.states[project.name] = ProjectState.FAILED
                self.logger.error(f"Project {project.name} failed to compile: {reason}")
                return BuildFailure(project=project, reason=reason)

            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
                self.states[project.name] = ProjectState.FAILED
                self.logger.exception(f"Project {project.name} failed with an unexpected error")
                return BuildFailure(project=project, reason=reason)

            self.states[project.name] = ProjectState.COMPILED
            self.logger.info(f"Finished building {project.path}")
            return BuildSuccess(compiled_project=compiled)

    async def compile(self, dirty_projects: List[Project], target_root: Path) -> CompileOutcome:
        """
        Compile every dirty project.

        Args:
            dirty_projects: Projects to compile
            target_root: Directory holding one output directory per project

        Returns:
            CompileOutcome partitioning successes from failures
        """
        if not dirty_projects:
            return CompileOutcome()

        target_root = Path(target_root)
        target_root.mkdir(parents=True, exist_ok=True)

        for project in dirty_projects:
            self.states[project.name] = ProjectState.DIRTY

        try:
            await self.compiler.prepare()
        except Exception as e:
            reason = e.reason if isinstance(e, CompilationError) else f"{type(e).__name__}: {e}"
            self.logger.error(f"Compiler preparation failed: {reason}")
            for project in dirty_projects:
                self.states[project.name] = ProjectState.FAILED
            return CompileOutcome(
                failures=[BuildFailure(project=project, reason=reason) for project in dirty_projects]
            )

        semaphore = asyncio.Semaphore(self.max_concurrent)
        self.logger.info(
            f"Compiling {len(dirty_projects)} projects (max_concurrent={self.max_concurrent})"
        )

        tasks = [
            asyncio.create_task(self._compile_one(project, target_root, semaphore))
            for project in dirty_projects
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # cancelling the tasks kills any compiler process still running
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        outcome = CompileOutcome.from_results(results)
        self.logger.info(
            f"Compilation complete: compiled={len(outcome.compiled)}, failed={len(outcome.failures)}"
        )
        return outcome
