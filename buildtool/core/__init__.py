from .enums import ProjectState, RunOutcome, CompilerType
from .models import Project, CompiledProject, FileMetadata, contains_manifest, DEFAULT_MANIFEST_NAME
from .exceptions import (
    BuildToolError,
    DiscoveryError,
    InvalidProjectError,
    DependencyCycleError,
    FingerprintIOError,
    CompilationError,
    PersistError,
    CleanError,
    LockTimeoutError,
    BuildFailedError,
)

__all__ = [
    'ProjectState',
    'RunOutcome',
    'CompilerType',
    'Project',
    'CompiledProject',
    'FileMetadata',
    'contains_manifest',
    'DEFAULT_MANIFEST_NAME',
    'BuildToolError',
    'DiscoveryError',
    'InvalidProjectError',
    'DependencyCycleError',
    'FingerprintIOError',
    'CompilationError',
    'PersistError',
    'CleanError',
    'LockTimeoutError',
    'BuildFailedError',
]
