"""
Dependency resolution and the per-run dependency graph.
"""
import asyncio
import tomllib
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import Dict, Iterable, List
import logging

from ..core.exceptions import DependencyCycleError, DiscoveryError
from ..core.models import Project, DEFAULT_MANIFEST_NAME


class DependencyResolver(ABC):
    """Supplies the direct dependencies of a project"""

    @abstractmethod
    async def dependencies(self, project: Project) -> List[Project]:
        """
        Direct dependencies of a project, ordered and without duplicates.

        Raises:
            DiscoveryError: If the dependencies cannot be determined
        """


class ManifestDependencyResolver(DependencyResolver):
    """Reads path dependencies from a project's TOML manifest"""

    def __init__(self, manifest_name: str = DEFAULT_MANIFEST_NAME, dependency_table: str = "dependencies"):
        self.manifest_name = manifest_name
        self.dependency_table = dependency_table
        self.logger = logging.getLogger(__name__)

    def _read_manifest(self, project: Project) -> dict:
        manifest_path = project.path / self.manifest_name
        try:
            with open(manifest_path, 'rb') as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise DiscoveryError(f"Failed to parse manifest {manifest_path}: {e}") from e

    def _dependency_paths(self, project: Project, manifest: dict) -> List[Path]:
        table = manifest.get(self.dependency_table, {})
        if not isinstance(table, dict):
            raise DiscoveryError(
                f"[{self.dependency_table}] in {project.path / self.manifest_name} is not a table"
            )

        paths = []
        for name, entry in table.items():
            # registry and git dependencies are not built locally
            if not isinstance(entry, dict) or 'path' not in entry:
                self.logger.debug(f"Ignoring non-path dependency '{name}' of {project.name}")
                continue
            paths.append(project.path / entry['path'])
        return paths

    def _resolve_dependencies(self, project: Project) -> List[Project]:
        manifest = self._read_manifest(project)

        deps: List[Project] = []
        for path in self._dependency_paths(project, manifest):
            try:
                dep = Project.from_path(path, self.manifest_name)
            except DiscoveryError as e:
                raise DiscoveryError(
                    f"Invalid dependency of project '{project.name}': {e}"
                ) from e
            if dep not in deps:
                deps.append(dep)

        return deps

    async def dependencies(self, project: Project) -> List[Project]:
        return await asyncio.to_thread(self._resolve_dependencies, project)


class DependencyGraph:
    """
    Projects and their direct dependencies stored as an arena.

    Nodes are addressed by index; edges point from a project to the indices
    of its direct dependencies.
    """

    def __init__(self):
        self.nodes: List[Project] = []
        self.edges: List[List[int]] = []
        self._index: Dict[Project, int] = {}

    def __contains__(self, project: Project) -> bool:
        return project in self._index

    def __len__(self) -> int:
        return len(self.nodes)

    def add_project(self, project: Project) -> int:
        """Add a node if absent and return its index"""
        index = self._index.get(project)
        if index is None:
            index = len(self.nodes)
            self.nodes.append(project)
            self.edges.append([])
            self._index[project] = index
        return index

    def set_dependencies(self, project: Project, dependencies: Iterable[Project]):
        index = self.add_project(project)
        dep_indices: List[int] = []
        for dep in dependencies:
            dep_index = self.add_project(dep)
            if dep_index not in dep_indices:
                dep_indices.append(dep_index)
        self.edges[index] = dep_indices

    def dependencies(self, project: Project) -> List[Project]:
        index = self._index.get(project)
        if index is None:
            return []
        return [self.nodes[dep] for dep in self.edges[index]]

    def topological_order(self) -> List[int]:
        """
        Node indices ordered so every dependency precedes its dependents.

        Raises:
            DependencyCycleError: If the graph has a cycle
        """
        # in-degree counts unresolved dependencies of each node
        remaining = [len(deps) for deps in self.edges]
        dependents: List[List[int]] = [[] for _ in self.nodes]
        for index, deps in enumerate(self.edges):
            for dep in deps:
                dependents[dep].append(index)

        queue = deque(index for index, count in enumerate(remaining) if count == 0)
        order: List[int] = []
        while queue:
            index = queue.popleft()
            order.append(index)
            for dependent in dependents[index]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    queue.append(dependent)

        if len(order) != len(self.nodes):
            raise DependencyCycleError(self._find_cycle(set(order)))

        return order

    def _find_cycle(self, acyclic: set) -> List[str]:
        """Walk unresolved nodes until one repeats and return that loop by name"""
        start = next(index for index in range(len(self.nodes)) if index not in acyclic)
        path: List[int] = []
        position: Dict[int, int] = {}
        index = start
        while index not in position:
            position[index] = len(path)
            path.append(index)
            # every unresolved node has at least one unresolved dependency
            index = next(dep for dep in self.edges[index] if dep not in acyclic)
        loop = path[position[index]:] + [index]
        return [self.nodes[node].name for node in loop]

    @classmethod
    async def resolve(
        cls,
        roots: Iterable[Project],
        resolver: DependencyResolver
    ) -> 'DependencyGraph':
        """
        Resolve the graph reachable from roots, one breadth level at a time.

        Raises:
            DiscoveryError: If any project's dependencies cannot be resolved
            DependencyCycleError: If the resolved graph has a cycle
        """
        graph = cls()
        frontier = []
        for root in roots:
            if root not in graph:
                graph.add_project(root)
                frontier.append(root)

        resolved = set()
        while frontier:
            level = await asyncio.gather(
                *[resolver.dependencies(project) for project in frontier]
            )
            next_frontier = []
            for project, deps in zip(frontier, level):
                resolved.add(project)
                graph.set_dependencies(project, deps)
                for dep in deps:
                    if dep not in resolved and dep not in next_frontier and dep not in frontier:
                        next_frontier.append(dep)
            frontier = next_frontier

        graph.topological_order()
        return graph
