from enum import Enum


class ProjectState(str, Enum):
    UNKNOWN = "unknown"
    CLEAN = "clean"
    DIRTY = "dirty"
    COMPILING = "compiling"
    COMPILED = "compiled"
    FAILED = "failed"


class RunOutcome(str, Enum):
    """Overall result of a build run"""
    ALL_CLEAN = "all_clean"
    REBUILT = "rebuilt"
    FAILED = "failed"


class CompilerType(str, Enum):
    BINARY = "binary"
    CARGO = "cargo"
    COMMAND = "command"
