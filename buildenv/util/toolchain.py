"""Toolchain discovery.

Queries the toolchain manager and compiler for the pieces the build
environment needs:

- the active toolchain name, passed as `+toolchain` to every tool
- the compiler sysroot
- the host target triple, which locates the runtime library directory
"""

import logging
from pathlib import Path

from buildenv.util.command_runner import CommandRunner
from buildenv.util.config import ToolConfig
from buildenv.util.exceptions import ProcessError, ToolchainResolutionError


logger = logging.getLogger(__name__)


def resolve_active_toolchain(
    runner: CommandRunner, root: Path, config: ToolConfig | None = None
) -> str:
    """Get the toolchain that is active for `root`.

    Raises:
        ToolchainResolutionError: If the toolchain manager fails or prints nothing.
    """
    config = config or ToolConfig()
    # The active toolchain depends on override files in the project directory.
    local = runner.clone()
    local.cwd = root
    try:
        stdout = local.read([config.toolchain_manager, "show", "active-toolchain"])
    except ProcessError as e:
        raise ToolchainResolutionError(
            f"Could not obtain active toolchain: {e.message}"
        ) from e

    tokens = stdout.split()
    if not tokens:
        raise ToolchainResolutionError("Could not obtain active toolchain")
    logger.debug("Active toolchain: %s", tokens[0])
    return tokens[0]


def query_sysroot(
    runner: CommandRunner, toolchain: str, config: ToolConfig | None = None
) -> Path:
    config = config or ToolConfig()
    try:
        sysroot = runner.read([config.compiler, f"+{toolchain}", "--print", "sysroot"])
    except ProcessError as e:
        raise ToolchainResolutionError(f"Could not query sysroot: {e.message}") from e
    if not sysroot:
        raise ToolchainResolutionError("Compiler reported an empty sysroot")
    return Path(sysroot)


def parse_host_triple(version_output: str) -> str:
    """Extract the `host:` entry from verbose compiler version output."""
    for line in version_output.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "host" and value.strip():
            return value.strip()
    raise ToolchainResolutionError(
        "Could not find the host triple in the compiler version output"
    )


def query_host_triple(
    runner: CommandRunner, toolchain: str, config: ToolConfig | None = None
) -> str:
    config = config or ToolConfig()
    try:
        output = runner.read([config.compiler, f"+{toolchain}", "--version", "--verbose"])
    except ProcessError as e:
        raise ToolchainResolutionError(
            f"Could not query compiler version: {e.message}"
        ) from e
    return parse_host_triple(output)


def runtime_libdir(sysroot: Path, host: str) -> Path:
    return sysroot / "lib" / "rustlib" / host / "lib"
