#!/usr/bin/env python3
"""Command line entry point for buildenv."""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from typeguard import typechecked

from buildenv.environment import BuildEnv
from buildenv.util.batch_format import iter_source_files
from buildenv.util.command_runner import CommandRunner
from buildenv.util.config import load_tool_config
from buildenv.util.exceptions import BuildEnvError, LibraryDirMissingError
from buildenv.util.locked_print import locked_print


EXIT_FAILURE = 1
EXIT_TOOLCHAIN_BROKEN = 2
EXIT_INTERRUPTED = 130

BUG_REPORT_HINT = "Please report a bug in the buildenv issue tracker."

console = Console(stderr=True)


@typechecked
@dataclass
class CliArgs:
    """Type-safe command line arguments"""

    command: str
    root: Path
    verbose: bool = False
    quiet: bool = False
    seed_from: int = 0
    seed_to: int = 0
    seed_var: str = "SEED"
    passthrough: list[str] = field(default_factory=lambda: list[str]())


def _split_separator(argv: list[str]) -> tuple[list[str], Optional[list[str]]]:
    # The tail is None when no literal `--` was given.
    if "--" in argv:
        index = argv.index("--")
        return argv[:index], argv[index + 1 :]
    return argv, None


def parse_args(argv: Optional[list[str]] = None) -> CliArgs:
    """
    Parse command-line arguments.

    Options the subcommand does not know are passed through to the underlying
    tool, as is everything after a literal `--`.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    head, tail = _split_separator(argv)

    parser = argparse.ArgumentParser(
        prog="buildenv",
        description="Build, check, test and format the project with the active toolchain",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Project root (defaults to the current directory)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("install", help="Install the project into the sysroot")
    build = subparsers.add_parser("build", help="Build binaries and tests")
    build.add_argument("--quiet", action="store_true", help="Do not echo commands")
    subparsers.add_parser("check", help="Type-check all targets")
    subparsers.add_parser("clippy", help="Lint all targets")
    subparsers.add_parser("test", help="Run the test suite")
    subparsers.add_parser("fmt", help="Format all sources under the root")
    seeds = subparsers.add_parser(
        "many-seeds", help="Run a command once per seed, in parallel"
    )
    seeds.add_argument("--from", dest="seed_from", type=int, default=0)
    seeds.add_argument("--to", dest="seed_to", type=int, required=True)
    seeds.add_argument(
        "--var",
        dest="seed_var",
        default="SEED",
        help="Environment variable the seed is exported in (default: SEED)",
    )

    known, unknown = parser.parse_known_args(head)
    root = (known.root or Path.cwd()).resolve()
    if tail is None:
        passthrough = unknown
    elif known.command in ("many-seeds", "fmt"):
        # A seed command template, or formatter flags placed ahead of the files.
        passthrough = [*unknown, *tail]
    else:
        # The build tool needs the separator to hand the rest to the test binary.
        passthrough = [*unknown, "--", *tail]
    return CliArgs(
        command=known.command,
        root=root,
        verbose=known.verbose,
        quiet=getattr(known, "quiet", False),
        seed_from=getattr(known, "seed_from", 0),
        seed_to=getattr(known, "seed_to", 0),
        seed_var=getattr(known, "seed_var", "SEED"),
        passthrough=passthrough,
    )


def _run_many_seeds(env: BuildEnv, args: CliArgs) -> None:
    if not args.passthrough:
        raise BuildEnvError("many-seeds needs a command to run after `--`")
    template = args.passthrough

    def run_seed(sh: CommandRunner, seed: int) -> None:
        locked_print(f"Trying seed: {seed}")
        sh.set_var(args.seed_var, str(seed))
        sh.run([part.replace("{seed}", str(seed)) for part in template], quiet=True)

    env.run_many_times(range(args.seed_from, args.seed_to), run_seed)


def run_command(args: CliArgs, runner: Optional[CommandRunner] = None) -> None:
    config = load_tool_config(args.root)
    env = BuildEnv.create(args.root, runner=runner, config=config)
    manifest = args.root / "Cargo.toml"

    if args.command == "install":
        env.install_to_sysroot(args.root, args.passthrough)
    elif args.command == "build":
        env.build(manifest, args.passthrough, quiet=args.quiet)
    elif args.command == "check":
        env.check(manifest, args.passthrough)
    elif args.command == "clippy":
        env.clippy(manifest, args.passthrough)
    elif args.command == "test":
        env.test(manifest, args.passthrough)
    elif args.command == "fmt":
        env.format_files(
            iter_source_files(args.root),
            env.toolchain,
            args.root / "rustfmt.toml",
            args.passthrough,
        )
    elif args.command == "many-seeds":
        _run_many_seeds(env, args)
    else:
        raise BuildEnvError(f"Unknown command: {args.command}")


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        run_command(args)
    except LibraryDirMissingError as e:
        console.print(e.message, markup=False)
        console.print(BUG_REPORT_HINT, markup=False)
        return EXIT_TOOLCHAIN_BROKEN
    except BuildEnvError as e:
        console.print(f"[bold red]error:[/bold red] {escape(e.message)}", highlight=False)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        console.print("Interrupted", style="yellow")
        return EXIT_INTERRUPTED
    return 0


if __name__ == "__main__":
    sys.exit(main())
