"""Run the source formatter over many files in bounded-size batches.

Not all files fit into one command line (Windows has a tight argument
length limit), so files are grouped and each group gets one formatter
invocation.
"""

import logging
import os
import subprocess
import sys
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, Sequence, TypeVar

from buildenv.util.command_runner import CommandRunner
from buildenv.util.config import ToolConfig
from buildenv.util.exceptions import (
    FormatFailure,
    PathRelativizationError,
    ProcessError,
)
from buildenv.util.locked_print import locked_print


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 256


def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Lazily group `items` into lists of at most `size`, preserving order."""
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    it = iter(items)
    while True:
        batch = list(islice(it, size))
        if not batch:
            return
        yield batch


def iter_source_files(
    root: Path,
    suffixes: Sequence[str] = (".rs",),
    exclude_dirs: Sequence[str] = ("target",),
) -> Iterator[Path]:
    """Walk `root` lazily, yielding files with one of `suffixes`.

    Hidden directories and `exclude_dirs` are not descended into. Errors from
    the walk are raised rather than skipped.
    """

    def _raise(err: OSError) -> None:
        raise err

    for dirpath, dnames, fnames in os.walk(root, onerror=_raise):
        # os.walk() supports trimming down the dnames list in-place
        dnames[:] = sorted(
            d for d in dnames if not d.startswith(".") and d not in exclude_dirs
        )
        for fname in sorted(fnames):
            if os.path.splitext(fname)[1] in suffixes:
                yield Path(dirpath) / fname


def _relative_to_root(file: Path, root: Path) -> Path:
    # Relative paths keep us immune to someone cloning the repo 50 directories deep.
    try:
        return Path(file).relative_to(root)
    except ValueError:
        raise PathRelativizationError(Path(file), root) from None


def format_files(
    runner: CommandRunner,
    root: Path,
    files: Iterable[Path],
    toolchain: str,
    config_path: Path,
    flags: Sequence[str] = (),
    batch_size: int | None = None,
    config: ToolConfig | None = None,
) -> None:
    """
    Format each file with the project's formatter config.

    Does not recursively format modules. `files` is consumed lazily and only
    once; an exception raised while producing it aborts the whole run.

    Raises:
        PathRelativizationError: A file lies outside `root`.
        FormatFailure: The formatter failed on a batch.
    """
    config = config or ToolConfig()
    if batch_size is None:
        batch_size = config.format_batch_size
    base = [
        config.formatter,
        f"+{toolchain}",
        f"--edition={config.format_edition}",
        "--config-path",
        os.fspath(config_path),
        "--unstable-features",
        "--skip-children",
        *flags,
    ]
    local = runner.clone()
    local.cwd = root

    first = True
    for index, batch in enumerate(chunked(files, batch_size)):
        if first:
            # Log an abbreviated command, and only once.
            locked_print(f"$ {subprocess.list2cmdline(base)} ...", file=sys.stderr)
            first = False
        args = [os.fspath(_relative_to_root(file, root)) for file in batch]
        logger.debug("Formatting batch %d (%d files)", index, len(args))
        try:
            local.run([*base, *args], quiet=True)
        except ProcessError as e:
            # Our own message; repeating the command is too much.
            raise FormatFailure(f"`{config.formatter}` failed") from e
