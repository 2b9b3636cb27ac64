"""
Error hierarchy for the build tool.
"""
from typing import Any, List, Optional


class BuildToolError(Exception):
    """Base class for all build tool errors"""


class DiscoveryError(BuildToolError):
    """Projects or their dependency manifests could not be enumerated"""


class InvalidProjectError(DiscoveryError):
    """A path does not point to a well-formed project or build directory"""


class DependencyCycleError(DiscoveryError):
    """The dependency graph contains a cycle"""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}"
        )


class FingerprintIOError(BuildToolError):
    """Listing or stat'ing files for a fingerprint failed"""


class CompilationError(BuildToolError):
    """The external compiler failed or could not be spawned"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class PersistError(BuildToolError):
    """Writing the fingerprint store failed"""


class CleanError(BuildToolError):
    """Removing build outputs failed"""


class LockTimeoutError(BuildToolError):
    """Another build holds the target directory lock"""


class BuildFailedError(BuildToolError):
    """
    Aggregate error raised when one or more projects failed to compile.

    The fingerprint store has already been updated for every project that
    did compile when this is raised.
    """

    def __init__(self, failures: List[Any], report: Optional[Any] = None):
        self.failures = failures
        self.report = report
        details = "\n".join(
            f"Project '{failure.name}' failed to compile! Reason: {failure.reason}"
            for failure in failures
        )
        super().__init__(
            f"{len(failures)} project(s) failed to compile:\n{details}"
        )
