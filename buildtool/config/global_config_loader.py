import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field


def default_max_concurrent_compiles() -> int:
    """Twice the number of available CPUs"""
    return 2 * (os.cpu_count() or 1)


@dataclass
class BuildConfig:
    """Where projects live and where their artifacts and state go"""
    projects_dir: str = "./projects"
    target_dir: str = "./target/compiled_projects"
    store_path: Optional[str] = None  # defaults to <target_dir>/fingerprints.json
    max_concurrent_compiles: Optional[int] = None  # defaults to 2 * cpu_count
    compile_timeout: Optional[float] = None  # seconds per compiler invocation
    lock_timeout: int = 30

    def get_store_path(self) -> Path:
        if self.store_path:
            return Path(self.store_path)
        return Path(self.target_dir) / "fingerprints.json"

    def get_max_concurrent_compiles(self) -> int:
        if self.max_concurrent_compiles:
            return self.max_concurrent_compiles
        return default_max_concurrent_compiles()


@dataclass
class ProjectLayoutConfig:
    """What a project looks like on disk"""
    manifest_name: str = "Forc.toml"
    source_dir: str = "src"
    source_extensions: List[str] = field(default_factory=lambda: [".sw"])
    metadata_files: List[str] = field(default_factory=lambda: ["Forc.lock", "Forc.toml"])
    dependency_table: str = "dependencies"


@dataclass
class CompilerConfig:
    """External compiler backend"""
    type: str = "binary"  # "binary" | "cargo" | "command"
    executable: str = "forc"
    cargo_executable: str = "cargo"
    package: str = "local_forc"
    command: List[str] = field(default_factory=list)  # argv template for "command"
    extra_args: List[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class GlobalConfig:
    """Global configuration for the build tool"""
    build: BuildConfig
    layout: ProjectLayoutConfig
    compiler: CompilerConfig
    logging: LoggingConfig

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GlobalConfig':
        """Create GlobalConfig from dictionary"""
        return cls(
            build=BuildConfig(**data.get('build', {})),
            layout=ProjectLayoutConfig(**data.get('layout', {})),
            compiler=CompilerConfig(**data.get('compiler', {})),
            logging=LoggingConfig(**data.get('logging', {}))
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'GlobalConfig':
        """Load GlobalConfig from YAML file"""
        path = Path(yaml_path)
        if not path.exists():
            # Return default config if file doesn't exist
            return cls.default()

        with open(path, 'r') as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def default(cls) -> 'GlobalConfig':
        """Return default configuration"""
        return cls(
            build=BuildConfig(),
            layout=ProjectLayoutConfig(),
            compiler=CompilerConfig(),
            logging=LoggingConfig()
        )


# Global instance - can be overridden
_global_config: Optional[GlobalConfig] = None


def load_global_config(config_path: Optional[str] = None) -> GlobalConfig:
    """
    Load global configuration from YAML file.
    If no path provided, looks for buildtool.yaml in standard locations.
    """
    global _global_config

    if config_path:
        _global_config = GlobalConfig.from_yaml(config_path)
        return _global_config

    search_paths = [
        Path("./buildtool.yaml"),
        Path("./config/buildtool.yaml"),
        Path("/etc/buildtool/buildtool.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            _global_config = GlobalConfig.from_yaml(str(path))
            return _global_config

    # Return default if no config found
    _global_config = GlobalConfig.default()
    return _global_config


def get_global_config() -> GlobalConfig:
    """Get the loaded global configuration"""
    global _global_config
    if _global_config is None:
        _global_config = load_global_config()
    return _global_config
