"""
Models for the incremental build domain.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Any, Union

from ..core.enums import ProjectState, RunOutcome
from ..core.models import Project, CompiledProject


@dataclass(frozen=True)
class Fingerprint:
    """Checksums of a project's source files and build artifacts"""
    source: int
    build: int

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary"""
        return {'source': self.source, 'build': self.build}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Fingerprint':
        """Create from dictionary"""
        source = data['source']
        build = data['build']
        for value in (source, build):
            if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 0xFFFFFFFF:
                raise ValueError(f"Not a 32-bit checksum: {value!r}")
        return cls(source=source, build=build)


@dataclass
class FingerprintRecord:
    """Persisted form of a compiled project's fingerprint"""
    project_source_path: str
    project_build_path: str
    fingerprint: Fingerprint

    @classmethod
    def from_compiled(cls, compiled: CompiledProject, fingerprint: Fingerprint) -> 'FingerprintRecord':
        return cls(
            project_source_path=str(compiled.project.path),
            project_build_path=str(compiled.build_path),
            fingerprint=fingerprint
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'project_source_path': self.project_source_path,
            'project_build_path': self.project_build_path,
            'fingerprint': self.fingerprint.to_dict()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FingerprintRecord':
        """Create from dictionary"""
        source_path = data['project_source_path']
        build_path = data['project_build_path']
        if not isinstance(source_path, str) or not isinstance(build_path, str):
            raise ValueError("Record paths must be strings")
        return cls(
            project_source_path=source_path,
            project_build_path=build_path,
            fingerprint=Fingerprint.from_dict(data['fingerprint'])
        )


@dataclass(frozen=True)
class BuildSuccess:
    compiled_project: CompiledProject

    @property
    def name(self) -> str:
        return self.compiled_project.name


@dataclass(frozen=True)
class BuildFailure:
    """A project that failed to compile and why"""
    project: Project
    reason: str

    @property
    def name(self) -> str:
        return self.project.name

    def to_dict(self) -> Dict[str, str]:
        return {'name': self.name, 'reason': self.reason}

    def __str__(self) -> str:
        return f"Project '{self.name}' failed to compile! Reason: {self.reason}"


BuildResult = Union[BuildSuccess, BuildFailure]


@dataclass
class CompileOutcome:
    """Partition of a compile batch into successes and failures"""
    compiled: List[CompiledProject] = field(default_factory=list)
    failures: List[BuildFailure] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[BuildResult]) -> 'CompileOutcome':
        outcome = cls()
        for result in results:
            if isinstance(result, BuildSuccess):
                outcome.compiled.append(result.compiled_project)
            else:
                outcome.failures.append(result)
        return outcome


@dataclass
class RunReport:
    """Structured report of a single build run"""
    dirty: List[str] = field(default_factory=list)
    clean: List[str] = field(default_factory=list)
    compiled: List[str] = field(default_factory=list)
    failures: List[Dict[str, str]] = field(default_factory=list)
    states: Dict[str, ProjectState] = field(default_factory=dict)
    store_path: Optional[str] = None

    @property
    def outcome(self) -> RunOutcome:
        if self.failures:
            return RunOutcome.FAILED
        if self.compiled:
            return RunOutcome.REBUILT
        return RunOutcome.ALL_CLEAN

    def print_summary(self):
        """Print human-readable summary"""
        print(f"\n{'='*80}")
        print(f"BUILD REPORT ({self.outcome.value})")
        print(f"{'='*80}")
        print(f"Compiled: {len(self.compiled)} projects")
        for name in self.compiled:
            print(f"   - {name}")

        if self.failures:
            print(f"\nFailed: {len(self.failures)} projects")
            for item in self.failures:
                print(f"   - {item['name']}: {item['reason']}")

        print(f"\nUp to date: {len(self.clean)} projects")
        print(f"{'='*80}\n")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        data = asdict(self)
        data['states'] = {name: state.value for name, state in self.states.items()}
        data['outcome'] = self.outcome.value
        return data
