"""Build environment: toolchain, flags and the commands run against them."""

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional, Sequence

from buildenv.util import batch_format, parallel
from buildenv.util.command_runner import Arg, CommandRunner
from buildenv.util.config import (
    COMPILER_FLAGS_VAR,
    OPT_LEVEL_VAR,
    TARGET_DIR_VAR,
    EnvSettings,
    ToolConfig,
)
from buildenv.util.exceptions import LibraryDirMissingError
from buildenv.util.flags import build_flags
from buildenv.util.toolchain import (
    query_host_triple,
    query_sysroot,
    resolve_active_toolchain,
    runtime_libdir,
)


logger = logging.getLogger(__name__)


class BuildEnv:
    """
    Extra state tracked for building the project, such as the right compiler
    flags.

    Attributes:
        root: Root of the project checkout we are working in.
        toolchain: Passed as `+toolchain` to every tool invocation.
        sysroot: The compiler sysroot; `install_to_sysroot` installs here.
        cargo_extra_flags: Extra flags passed to every build tool invocation.
        sh: The session all commands run through.
        config: Tool names and formatting defaults.
    """

    def __init__(
        self,
        root: Path,
        toolchain: str,
        sysroot: Path,
        cargo_extra_flags: Sequence[str],
        sh: CommandRunner,
        config: Optional[ToolConfig] = None,
    ):
        self.root = root
        self.toolchain = toolchain
        self.sysroot = sysroot
        self.cargo_extra_flags = list(cargo_extra_flags)
        self.sh = sh
        self.config = config or ToolConfig()

    @classmethod
    def create(
        cls,
        root: Path,
        environ: Optional[Mapping[str, str]] = None,
        runner: Optional[CommandRunner] = None,
        config: Optional[ToolConfig] = None,
    ) -> "BuildEnv":
        """
        Resolve the toolchain and prepare the session environment.

        Raises:
            ToolchainResolutionError: The toolchain, its sysroot or host could
                not be determined.
            LibraryDirMissingError: The runtime library directory derived from
                the sysroot does not exist.
        """
        config = config or ToolConfig()
        settings = EnvSettings.from_environ(environ)
        # The session keeps the caller's working directory so relative paths
        # given on the command line resolve properly.
        sh = runner or CommandRunner()

        toolchain = resolve_active_toolchain(sh, root, config)
        sysroot = query_sysroot(sh, toolchain, config)
        host = query_host_triple(sh, toolchain, config)
        libdir = runtime_libdir(sysroot, host)
        if not libdir.exists():
            raise LibraryDirMissingError(libdir)
        logger.debug("Toolchain %s, sysroot %s, libdir %s", toolchain, sysroot, libdir)

        # Share the target dir between all invocations.
        target_dir = settings.target_dir
        if target_dir is None:
            target_dir = os.fspath(root / "target")
        sh.set_var(TARGET_DIR_VAR, target_dir)
        sh.set_var(OPT_LEVEL_VAR, settings.opt_level)

        rustflags = build_flags(libdir, settings.rustflags, config.lint_flags)
        sh.set_var(COMPILER_FLAGS_VAR, " ".join(rustflags))
        logger.debug("%s=%s", COMPILER_FLAGS_VAR, " ".join(rustflags))

        return cls(
            root=root,
            toolchain=toolchain,
            sysroot=sysroot,
            cargo_extra_flags=settings.cargo_extra_flags,
            sh=sh,
            config=config,
        )

    def _cargo(self, subcommand: str) -> list[Arg]:
        return [
            self.config.build_tool,
            f"+{self.toolchain}",
            subcommand,
        ]

    def install_to_sysroot(self, path: Arg, args: Sequence[Arg] = ()) -> None:
        # Install into this toolchain's sysroot so other toolchains are unaffected.
        self.sh.run(
            [
                *self._cargo("install"),
                *self.cargo_extra_flags,
                "--path",
                path,
                "--force",
                "--root",
                self.sysroot,
                *args,
            ]
        )

    def build(
        self, manifest_path: Arg, args: Sequence[Arg] = (), quiet: bool = False
    ) -> None:
        quiet_flag = ["--quiet"] if quiet else []
        # Tests are built as well so running them later does not rebuild.
        self.sh.run(
            [
                *self._cargo("build"),
                "--bins",
                "--tests",
                *self.cargo_extra_flags,
                "--manifest-path",
                manifest_path,
                *quiet_flag,
                *args,
            ],
            quiet=quiet,
        )

    def check(self, manifest_path: Arg, args: Sequence[Arg] = ()) -> None:
        self.sh.run(
            [
                *self._cargo("check"),
                *self.cargo_extra_flags,
                "--manifest-path",
                manifest_path,
                "--all-targets",
                *args,
            ]
        )

    def clippy(self, manifest_path: Arg, args: Sequence[Arg] = ()) -> None:
        self.sh.run(
            [
                *self._cargo("clippy"),
                *self.cargo_extra_flags,
                "--manifest-path",
                manifest_path,
                "--all-targets",
                *args,
            ]
        )

    def test(self, manifest_path: Arg, args: Sequence[Arg] = ()) -> None:
        self.sh.run(
            [
                *self._cargo("test"),
                *self.cargo_extra_flags,
                "--manifest-path",
                manifest_path,
                *args,
            ]
        )

    def format_files(
        self,
        files: Iterable[Path],
        toolchain: str,
        config_path: Path,
        flags: Sequence[str] = (),
    ) -> None:
        batch_format.format_files(
            self.sh,
            self.root,
            files,
            toolchain,
            config_path,
            flags,
            config=self.config,
        )

    def run_many_times(
        self,
        seeds: range,
        run: Callable[[CommandRunner, int], None],
        workers: Optional[int] = None,
    ) -> None:
        """Run `run` once for each value in `seeds`, in parallel."""
        parallel.run_many(self.sh, seeds, run, workers=workers)
