from .global_config_loader import (
    GlobalConfig,
    BuildConfig,
    ProjectLayoutConfig,
    CompilerConfig,
    LoggingConfig,
    load_global_config,
    get_global_config,
)

__all__ = [
    'GlobalConfig',
    'BuildConfig',
    'ProjectLayoutConfig',
    'CompilerConfig',
    'LoggingConfig',
    'load_global_config',
    'get_global_config',
]
