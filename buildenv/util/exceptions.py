"""Exceptions raised by buildenv operations that need to bubble up to callers."""

import subprocess
from pathlib import Path
from typing import Optional, Sequence


class BuildEnvError(Exception):
    """Base exception for buildenv failures"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(BuildEnvError):
    """Raised when buildenv.toml contains invalid settings"""


class ToolchainResolutionError(BuildEnvError):
    """Raised when the active toolchain or one of its paths cannot be determined"""


class LibraryDirMissingError(ToolchainResolutionError):
    """The runtime library directory derived from the sysroot does not exist."""

    def __init__(self, libdir: Path):
        super().__init__(
            f"Something went wrong determining the library dir.\n"
            f"I got {libdir} but that does not exist."
        )
        self.libdir = libdir


class ProcessError(BuildEnvError):
    """Base exception for external command failures"""

    def __init__(self, message: str, command: Sequence[str]):
        super().__init__(message)
        self.command = list(command)

    def get_command_str(self) -> str:
        return subprocess.list2cmdline(self.command)


class ProcessSpawnError(ProcessError):
    """The executable could not be located or started"""

    def __init__(self, command: Sequence[str], reason: str):
        super().__init__(f"Failed to run `{command[0]}`: {reason}", command)
        self.reason = reason


class ProcessExitError(ProcessError):
    """The process ran but exited with a non-zero status"""

    def __init__(
        self, command: Sequence[str], returncode: int, output: Optional[str] = None
    ):
        super().__init__(
            f"Command failed with exit code {returncode}: "
            f"{subprocess.list2cmdline(list(command))}",
            command,
        )
        self.returncode = returncode
        self.output = output or ""


class ProcessOutputError(ProcessError):
    """Captured output was not valid UTF-8"""

    def __init__(self, command: Sequence[str], reason: str):
        super().__init__(f"Could not decode output of `{command[0]}`: {reason}", command)
        self.reason = reason


class PathRelativizationError(BuildEnvError):
    """A file handed to the formatter lies outside the project root"""

    def __init__(self, path: Path, root: Path):
        super().__init__(f"{path} is not inside {root}")
        self.path = path
        self.root = root


class FormatFailure(BuildEnvError):
    """The formatter exited non-zero; its own diagnostics were already shown"""
