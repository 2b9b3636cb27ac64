"""
Detects which projects must be recompiled.
"""
from typing import Dict, List, Optional, Set, Tuple
import logging

from ..core.models import Project, CompiledProject
from .dependencies import DependencyGraph
from .models import Fingerprint


class DirtDetector:
    """
    Classifies projects as clean or dirty.

    A project is dirty if its current fingerprint differs from the stored
    one (or none is stored), if any direct dependency is dirty, or if any
    direct dependency was not previously compiled.
    """

    def __init__(
        self,
        stored_fingerprints: Dict[CompiledProject, Fingerprint],
        current_fingerprints: Dict[CompiledProject, Fingerprint],
        graph: DependencyGraph
    ):
        """
        Initialize dirt detector.

        Args:
            stored_fingerprints: Fingerprints persisted by the previous run
            current_fingerprints: Fingerprints computed now for every stored project
            graph: Dependency graph resolved during this run
        """
        self.stored_fingerprints = stored_fingerprints
        self.current_fingerprints = current_fingerprints
        self.graph = graph
        self.logger = logging.getLogger(__name__)

        self._compiled_by_project: Dict[Project, CompiledProject] = {
            compiled.project: compiled for compiled in stored_fingerprints
        }
        self._dirty: Dict[Project, bool] = self._evaluate()

    def _fingerprint_changed(self, project: Project) -> bool:
        compiled = self._compiled_by_project.get(project)
        if compiled is None:
            return True

        current = self.current_fingerprints.get(compiled)
        if current is None:
            return True

        return current != self.stored_fingerprints[compiled]

    def _dirty_reason(self, project: Project, dirty: Dict[Project, bool]) -> Optional[str]:
        if project not in self._compiled_by_project:
            return "never compiled"
        if self._fingerprint_changed(project):
            return "files changed"

        for dep in self.graph.dependencies(project):
            if dep not in self._compiled_by_project:
                return f"dependency '{dep.name}' was never compiled"
            if dirty[dep]:
                return f"dependency '{dep.name}' is dirty"

        return None

    def _evaluate(self) -> Dict[Project, bool]:
        """Evaluate every node once, dependencies before dependents"""
        dirty: Dict[Project, bool] = {}

        for index in self.graph.topological_order():
            project = self.graph.nodes[index]
            reason = self._dirty_reason(project, dirty)
            dirty[project] = reason is not None
            if reason:
                self.logger.debug(f"Project {project.name} is dirty: {reason}")
            else:
                self.logger.debug(f"Project {project.name} is clean")

        # stored projects outside the graph have no known dependencies
        for project in self._compiled_by_project:
            if project not in dirty:
                dirty[project] = self._fingerprint_changed(project)

        return dirty

    def is_dirty(self, project: Project) -> bool:
        """Whether a project must be recompiled"""
        if project in self._dirty:
            return self._dirty[project]
        return self._dirty_reason(project, self._dirty) is not None

    def get_clean_projects(self) -> Set[CompiledProject]:
        """Previously-compiled projects that can be reused as is"""
        return {
            compiled for project, compiled in self._compiled_by_project.items()
            if not self.is_dirty(project)
        }

    def partition(self, projects: List[Project]) -> Tuple[List[CompiledProject], List[Project]]:
        """
        Split discovered projects into clean and dirty.

        Args:
            projects: Projects discovered this run

        Returns:
            (clean compiled projects, dirty projects) both in discovery order
        """
        clean: List[CompiledProject] = []
        dirty: List[Project] = []

        for project in projects:
            if self.is_dirty(project):
                dirty.append(project)
            else:
                clean.append(self._compiled_by_project[project])

        self.logger.info(
            f"Dirt detection complete: clean={len(clean)}, dirty={len(dirty)}"
        )
        return clean, dirty
