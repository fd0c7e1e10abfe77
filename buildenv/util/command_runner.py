"""Synchronous external command execution with a per-session cwd and environment."""

import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from buildenv.util.exceptions import (
    ProcessExitError,
    ProcessOutputError,
    ProcessSpawnError,
)
from buildenv.util.locked_print import locked_print


logger = logging.getLogger(__name__)

Arg = Union[str, os.PathLike[str]]


@dataclass
class CommandResult:
    """Outcome of a finished command"""

    command: list[str]
    returncode: int
    stdout: str = ""


class CommandRunner:
    """
    A session for running external commands.

    Holds a working directory and an overlay of environment variables that is
    applied on top of the parent process environment for every command. Output
    is inherited from the parent unless captured. Each command line is echoed
    to stderr as `$ cmd ...` unless the call is quiet.

    Sessions are not shared between threads; use clone() to get an
    independent copy for each worker.
    """

    def __init__(
        self,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.cwd: Path = Path(cwd) if cwd is not None else Path.cwd()
        self._env: dict[str, str] = dict(env) if env else {}

    def clone(self) -> "CommandRunner":
        return CommandRunner(cwd=self.cwd, env=self._env)

    def change_dir(self, path: Path) -> None:
        self.cwd = self.cwd / path

    def set_var(self, name: str, value: Union[str, os.PathLike[str]]) -> None:
        self._env[name] = os.fspath(value)

    def get_var(self, name: str) -> Optional[str]:
        if name in self._env:
            return self._env[name]
        return os.environ.get(name)

    @property
    def env_overlay(self) -> dict[str, str]:
        return dict(self._env)

    def _full_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self._env)
        return env

    def run(
        self,
        command: Sequence[Arg],
        *,
        quiet: bool = False,
        capture: bool = False,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            command: Executable followed by its arguments.
            quiet: Do not echo the command line before running it.
            capture: Capture stdout instead of letting it through to ours.

        Returns:
            CommandResult with the exit code (always 0) and captured stdout.

        Raises:
            ProcessSpawnError: The executable could not be started.
            ProcessExitError: The process exited with a non-zero status.
            ProcessOutputError: Captured stdout was not valid UTF-8.
        """
        argv = [os.fspath(arg) for arg in command]
        if not quiet:
            locked_print(f"$ {subprocess.list2cmdline(argv)}", file=sys.stderr)
        logger.debug("Running %s in %s", argv, self.cwd)

        try:
            proc = subprocess.run(
                argv,
                cwd=self.cwd,
                env=self._full_env(),
                stdout=subprocess.PIPE if capture else None,
                encoding="utf-8",
            )
        except OSError as e:
            raise ProcessSpawnError(argv, e.strerror or str(e)) from e
        except UnicodeDecodeError as e:
            raise ProcessOutputError(argv, str(e)) from e

        stdout = proc.stdout if capture and proc.stdout is not None else ""
        if proc.returncode != 0:
            logger.debug("%s exited with %d", argv[0], proc.returncode)
            raise ProcessExitError(argv, proc.returncode, stdout)
        return CommandResult(command=argv, returncode=proc.returncode, stdout=stdout)

    def read(self, command: Sequence[Arg]) -> str:
        """Run quietly and return stdout with surrounding whitespace stripped."""
        return self.run(command, quiet=True, capture=True).stdout.strip()
