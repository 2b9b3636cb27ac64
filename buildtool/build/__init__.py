"""
Incremental build system for projects.
Handles fingerprinting, dirt detection, compilation and persistence.
"""

from .models import (
    Fingerprint,
    FingerprintRecord,
    BuildSuccess,
    BuildFailure,
    BuildResult,
    CompileOutcome,
    RunReport
)
from .scanner import ProjectScanner
from .hasher import FingerprintCalculator, fingerprint_files
from .store import FingerprintStore
from .dependencies import DependencyResolver, ManifestDependencyResolver, DependencyGraph
from .change_detector import DirtDetector
from .compiler import (
    Compiler,
    BinaryCompiler,
    CargoCompiler,
    CommandCompiler,
    create_compiler,
    run_checked_command
)
from .orchestrator import BuildOrchestrator
from .lock import TargetLock
from .manager import BuildPipeline

__all__ = [
    'Fingerprint',
    'FingerprintRecord',
    'BuildSuccess',
    'BuildFailure',
    'BuildResult',
    'CompileOutcome',
    'RunReport',
    'ProjectScanner',
    'FingerprintCalculator',
    'fingerprint_files',
    'FingerprintStore',
    'DependencyResolver',
    'ManifestDependencyResolver',
    'DependencyGraph',
    'DirtDetector',
    'Compiler',
    'BinaryCompiler',
    'CargoCompiler',
    'CommandCompiler',
    'create_compiler',
    'run_checked_command',
    'BuildOrchestrator',
    'TargetLock',
    'BuildPipeline',
]
