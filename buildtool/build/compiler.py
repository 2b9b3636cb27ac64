"""
External compiler backends.
"""
import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence
import logging

from ..core.enums import CompilerType
from ..core.exceptions import CompilationError

MAX_REASON_OUTPUT = 4000


async def _terminate(proc: asyncio.subprocess.Process):
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


async def run_checked_command(
    command: str,
    args: Sequence[str],
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None
) -> str:
    """
    Run a process and fail on an unsuccessful exit.

    The process is killed if the awaiting task is cancelled or the timeout
    expires, so no child outlives its caller.

    Args:
        command: Executable to run
        args: Arguments to pass
        cwd: Working directory of the child
        timeout: Seconds to wait before killing the child

    Returns:
        Captured stdout

    Raises:
        CompilationError: On spawn failure, timeout or non-zero exit
    """
    command_line = " ".join([command, *args])

    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=str(cwd) if cwd else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CompilationError(f"Could not spawn '{command_line}': {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _terminate(proc)
        raise CompilationError(f"Running command: '{command_line}' timed out after {timeout}s")
    except asyncio.CancelledError:
        await _terminate(proc)
        raise

    if proc.returncode != 0:
        reason = f"Running command: '{command_line}' failed with status: {proc.returncode}"
        error_output = stderr.decode('utf-8', errors='replace').strip()
        if error_output:
            reason += f"\n{error_output[-MAX_REASON_OUTPUT:]}"
        raise CompilationError(reason)

    return stdout.decode('utf-8', errors='replace')


class Compiler(ABC):
    """Compiles one project's sources into an output directory"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    async def prepare(self):
        """Run once before any compilation in a batch"""

    @abstractmethod
    async def run(self, source_path: Path, output_dir: Path):
        """
        Compile a project.

        Args:
            source_path: Project root directory
            output_dir: Directory to write artifacts into

        Raises:
            CompilationError: With the reason text on failure
        """


def forc_build_args(source_path: Path, output_dir: Path, extra_args: Sequence[str] = ()) -> List[str]:
    return [
        "build",
        "--silent",
        "--output-directory",
        str(output_dir),
        "--path",
        str(source_path),
        *extra_args,
    ]


class BinaryCompiler(Compiler):
    """Runs a compiler executable found on PATH"""

    def __init__(self, executable: str = "forc", extra_args: Sequence[str] = (), timeout: Optional[float] = None):
        super().__init__(timeout)
        self.executable = executable
        self.extra_args = list(extra_args)

    async def run(self, source_path: Path, output_dir: Path):
        await run_checked_command(
            self.executable,
            forc_build_args(source_path, output_dir, self.extra_args),
            timeout=self.timeout
        )


class CargoCompiler(Compiler):
    """Builds the compiler from source with cargo and runs it"""

    def __init__(
        self,
        package: str = "local_forc",
        cargo: str = "cargo",
        extra_args: Sequence[str] = (),
        timeout: Optional[float] = None
    ):
        super().__init__(timeout)
        self.package = package
        self.cargo = cargo
        self.extra_args = list(extra_args)

    async def prepare(self):
        # concurrent `cargo run` calls would otherwise race on building the package
        self.logger.info(f"Building compiler package {self.package}")
        await run_checked_command(
            self.cargo,
            ["build", "--quiet", "--package", self.package]
        )

    async def run(self, source_path: Path, output_dir: Path):
        await run_checked_command(
            self.cargo,
            [
                "run",
                "--quiet",
                "--package",
                self.package,
                "--",
                *forc_build_args(source_path, output_dir, self.extra_args),
            ],
            timeout=self.timeout
        )


class CommandCompiler(Compiler):
    """Runs an arbitrary argv template with {source} and {output} placeholders"""

    def __init__(self, command: Sequence[str], timeout: Optional[float] = None):
        super().__init__(timeout)
        if not command:
            raise ValueError("CommandCompiler requires a non-empty command template")
        self.command = list(command)

    async def run(self, source_path: Path, output_dir: Path):
        try:
            argv = [
                part.format(source=source_path, output=output_dir)
                for part in self.command
            ]
        except (KeyError, IndexError, ValueError) as e:
            # literal braces must be doubled: {{ }}
            raise CompilationError(
                f"Invalid command template {self.command!r}: {type(e).__name__}: {e}"
            ) from e
        await run_checked_command(argv[0], argv[1:], timeout=self.timeout)


def create_compiler(compiler_config, timeout: Optional[float] = None) -> Compiler:
    """
    Build a compiler backend from configuration.

    Raises:
        ValueError: If the compiler type is unknown
    """
    try:
        compiler_type = CompilerType(compiler_config.type)
    except ValueError:
        raise ValueError(f"Unknown compiler type: {compiler_config.type}")

    if compiler_type == CompilerType.BINARY:
        return BinaryCompiler(compiler_config.executable, compiler_config.extra_args, timeout)
    if compiler_type == CompilerType.CARGO:
        return CargoCompiler(
            compiler_config.package,
            compiler_config.cargo_executable,
            compiler_config.extra_args,
            timeout
        )
    return CommandCompiler([*compiler_config.command, *compiler_config.extra_args], timeout)
