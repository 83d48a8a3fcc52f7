"""
Base classes for wrapping external bioinformatics tools.

Provides a consistent interface for executing samtools, kraken2 and
deacon with error handling, timeout support, dry-run capability and
line streaming for tools whose output is consumed record by record.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from micrite.core.exceptions import ErrorKind, InputNotFoundError, MicriteError

logger = logging.getLogger(__name__)

# Alphanumeric, underscore, hyphen, dot, slash
_SAFE_PATH_PATTERN = re.compile(r"^[\w\-./]+$")


def validate_path_safe(
    path: Path,
    *,
    must_exist: bool = False,
    resolve: bool = True,
) -> Path:
    """Validate that a path is usable as a subprocess argument.

    Args:
        path: Path to validate
        must_exist: If True, raise error if path doesn't exist
        resolve: If True, resolve the path to its absolute form

    Returns:
        The validated (and optionally resolved) path

    Raises:
        InputNotFoundError: If must_exist=True and path doesn't exist
    """
    if resolve:
        path = path.expanduser().resolve()

    if "\x00" in str(path):
        raise MicriteError(
            message=f"Unsafe path detected: {path}: contains null byte",
            kind=ErrorKind.CONFIGURATION,
        )

    if not _SAFE_PATH_PATTERN.match(str(path)):
        logger.warning(
            "Path contains unusual characters (may cause issues): %s",
            path,
        )

    if must_exist and not path.exists():
        raise InputNotFoundError(path)

    return path


class ToolNotFoundError(MicriteError):
    """Raised when a required external tool is not installed or not in PATH."""

    kind = ErrorKind.MISSING_TOOL

    def __init__(self, tool_name: str, install_hint: str = ""):
        suggestion = f"Install {tool_name} and ensure it is in your PATH."
        if install_hint:
            suggestion = f"{suggestion}\n\nInstallation:\n  {install_hint}"

        super().__init__(
            message=f"Required tool '{tool_name}' not found in PATH",
            suggestion=suggestion,
        )
        self.tool_name = tool_name


class ToolExecutionError(MicriteError):
    """Raised when an external tool returns a non-zero exit code."""

    kind = ErrorKind.TOOL_FAILED

    def __init__(
        self,
        tool_name: str,
        command: list[str],
        return_code: int,
        stderr: str,
    ):
        cmd_str = " ".join(command)
        if len(cmd_str) > 200:
            cmd_str = cmd_str[:200] + "..."

        stderr_display = stderr.strip()
        if len(stderr_display) > 500:
            stderr_display = stderr_display[:500] + "\n...[truncated]"

        super().__init__(
            message=(
                f"{tool_name} failed with exit code {return_code}\n\n"
                f"Command: {cmd_str}\n\n"
                f"--- STDERR ---\n{stderr_display}\n---------------"
            ),
            suggestion=(
                "Check the command parameters and input files. "
                "Run with --verbose for detailed output."
            ),
        )
        self.tool_name = tool_name
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class ToolTimeoutError(MicriteError):
    """Raised when an external tool exceeds the specified timeout."""

    kind = ErrorKind.TOOL_FAILED

    def __init__(self, tool_name: str, timeout_seconds: float, command: list[str]):
        cmd_str = " ".join(command)
        if len(cmd_str) > 200:
            cmd_str = cmd_str[:200] + "..."

        super().__init__(
            message=(
                f"{tool_name} timed out after {timeout_seconds:.0f} seconds\n\n"
                f"Command: {cmd_str}"
            ),
            suggestion="Increase the timeout or check if the tool is hanging.",
        )
        self.tool_name = tool_name
        self.timeout_seconds = timeout_seconds
        self.command = command


@dataclass(frozen=True)
class ToolResult:
    """Result from running an external tool.

    Attributes:
        command: The command that was executed.
        return_code: Exit code from the process.
        stdout: Standard output from the process.
        stderr: Standard error from the process.
        elapsed_seconds: Wall-clock time for execution.
    """

    command: tuple[str, ...]
    return_code: int
    stdout: str
    stderr: str
    elapsed_seconds: float

    @property
    def success(self) -> bool:
        """Return True if the tool exited with code 0."""
        return self.return_code == 0

    @property
    def command_string(self) -> str:
        """Return the command as a space-separated string."""
        return " ".join(self.command)


class ExternalTool(ABC):
    """Abstract base class for wrapping external command-line tools.

    Subclasses must define:
        TOOL_NAME: Primary executable name (e.g., "kraken2")
        build_command: Method to construct the command arguments

    Optional class attributes:
        TOOL_ALIASES: Alternative executable names to search
        INSTALL_HINT: Instructions for installing the tool

    Use set_executable_resolver() to inject a custom resolver for testing.
    """

    TOOL_NAME: ClassVar[str]
    TOOL_ALIASES: ClassVar[tuple[str, ...]] = ()
    INSTALL_HINT: ClassVar[str] = ""

    _executable_cache: ClassVar[dict[str, Path | None]] = {}
    _executable_resolver: ClassVar[Callable[[str], str | None]] = staticmethod(
        shutil.which
    )

    @classmethod
    def check_available(cls) -> bool:
        """Return True if the tool can be found in PATH."""
        try:
            cls.get_executable()
            return True
        except ToolNotFoundError:
            return False

    @classmethod
    def get_executable(cls) -> Path:
        """Find the tool executable in PATH.

        Returns:
            Path to the executable.

        Raises:
            ToolNotFoundError: If the tool cannot be found.
        """
        if cls.TOOL_NAME in cls._executable_cache:
            cached = cls._executable_cache[cls.TOOL_NAME]
            if cached is not None:
                return cached
            raise ToolNotFoundError(cls.TOOL_NAME, cls.INSTALL_HINT)

        for name in (cls.TOOL_NAME, *cls.TOOL_ALIASES):
            exe_path = cls._executable_resolver(name)
            if exe_path:
                path = Path(exe_path)
                cls._executable_cache[cls.TOOL_NAME] = path
                return path

        cls._executable_cache[cls.TOOL_NAME] = None
        raise ToolNotFoundError(cls.TOOL_NAME, cls.INSTALL_HINT)

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the executable location cache."""
        cls._executable_cache.clear()

    @classmethod
    def set_executable_resolver(
        cls,
        resolver: Callable[[str], str | None],
    ) -> None:
        """Inject a custom executable resolver for testing.

        Example:
            ExternalTool.set_executable_resolver(lambda name: f"/usr/bin/{name}")
            # Run tests...
            ExternalTool.reset_executable_resolver()
        """
        cls._executable_resolver = staticmethod(resolver)
        cls.clear_cache()

    @classmethod
    def reset_executable_resolver(cls) -> None:
        """Reset the executable resolver to the default (shutil.which)."""
        cls._executable_resolver = staticmethod(shutil.which)
        cls.clear_cache()

    @abstractmethod
    def build_command(self, **kwargs: object) -> list[str]:
        """Build the command-line arguments for this tool.

        Returns:
            List of command-line arguments (including the executable).
        """
        ...

    def _execute(
        self,
        command: list[str],
        *,
        timeout: float | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        """Run an already-built command and capture its output."""
        command_tuple = tuple(command)

        if dry_run:
            return ToolResult(
                command=command_tuple,
                return_code=0,
                stdout="[dry-run] Command not executed",
                stderr="",
                elapsed_seconds=0.0,
            )

        logger.debug("Running %s: %s", self.TOOL_NAME, " ".join(command))
        start_time = time.perf_counter()

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolTimeoutError(self.TOOL_NAME, timeout or 0, command) from e
        except FileNotFoundError as e:
            # Executable disappeared between lookup and execution
            raise ToolNotFoundError(self.TOOL_NAME, self.INSTALL_HINT) from e

        return ToolResult(
            command=command_tuple,
            return_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            elapsed_seconds=time.perf_counter() - start_time,
        )

    def run(
        self,
        *,
        timeout: float | None = None,
        dry_run: bool = False,
        **kwargs: object,
    ) -> ToolResult:
        """Execute the tool with the specified arguments.

        Args:
            timeout: Maximum execution time in seconds (None for no limit).
            dry_run: If True, return command without execution.
            **kwargs: Arguments passed to build_command().

        Raises:
            ToolNotFoundError: If the tool is not installed.
            ToolTimeoutError: If execution exceeds timeout.
        """
        return self._execute(
            self.build_command(**kwargs),
            timeout=timeout,
            dry_run=dry_run,
        )

    def run_or_raise(
        self,
        *,
        timeout: float | None = None,
        dry_run: bool = False,
        **kwargs: object,
    ) -> ToolResult:
        """Execute the tool and raise ToolExecutionError on a non-zero exit."""
        result = self.run(timeout=timeout, dry_run=dry_run, **kwargs)
        self._check(result, dry_run=dry_run)
        return result

    def _check(self, result: ToolResult, *, dry_run: bool = False) -> None:
        if not result.success and not dry_run:
            raise ToolExecutionError(
                self.TOOL_NAME,
                list(result.command),
                result.return_code,
                result.stderr,
            )

    def stream_lines(self, command: list[str]) -> Iterator[str]:
        """Yield stdout lines of a command as they are produced.

        Stderr is spooled to a temporary file so a chatty tool cannot fill
        the pipe and stall while stdout is still being read. The process is
        waited on once stdout is exhausted and a non-zero exit raises
        ToolExecutionError. If the consumer stops iterating early the
        process is terminated.
        """
        logger.debug("Streaming %s: %s", self.TOOL_NAME, " ".join(command))

        with tempfile.TemporaryFile(mode="w+", errors="replace") as stderr_file:
            try:
                process = subprocess.Popen(
                    command,
                    stdout=subprocess.PIPE,
                    stderr=stderr_file,
                    text=True,
                )
            except FileNotFoundError as e:
                raise ToolNotFoundError(self.TOOL_NAME, self.INSTALL_HINT) from e

            finished = False
            try:
                if process.stdout is not None:
                    yield from process.stdout
                finished = True
            finally:
                if not finished:
                    process.kill()
                if process.stdout is not None:
                    process.stdout.close()
                return_code = process.wait()

            stderr_file.seek(0)
            stderr = stderr_file.read()

        if return_code != 0:
            raise ToolExecutionError(self.TOOL_NAME, command, return_code, stderr)
