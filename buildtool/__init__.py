"""
Build Tool - incremental build orchestrator for dependent projects

Main modules:
- core: Project models, enums and errors
- build: Fingerprinting, dirt detection, compilation and the build pipeline
- config: Configuration loading
- cli: Command-line interface
"""

from .core.models import Project, CompiledProject
from .build.models import Fingerprint, RunReport
from .build.manager import BuildPipeline
from .config.global_config_loader import GlobalConfig, load_global_config

__version__ = "1.0.0"
__all__ = [
    'Project',
    'CompiledProject',
    'Fingerprint',
    'RunReport',
    'BuildPipeline',
    'GlobalConfig',
    'load_global_config',
]
