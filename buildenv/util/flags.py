"""Compiler/linker flag assembly and CLI flag lookup."""

from pathlib import Path
from typing import Iterable, Optional, Union


# Enable compiler-internal lints (ignored without `-Zunstable-options`).
LINT_FLAGS: tuple[str, ...] = (
    "-Zunstable-options",
    "-Wrustc::internal",
    "-Wrust_2018_idioms",
    "-Wunused_lifetimes",
)

Token = Union[str, bytes]


def flagsplit(flags: str) -> list[str]:
    """Split a flags environment variable into tokens.

    Splits on spaces, trims each piece and drops empty ones, the same way the
    build tool reads its own flag variables.

        >>> flagsplit("  -a  -b ")
        ['-a', '-b']
    """
    return [piece.strip() for piece in flags.split(" ") if piece.strip()]


def build_flags(
    libdir: Path,
    existing_env_flags: Optional[str] = None,
    lint_flags: Iterable[str] = LINT_FLAGS,
) -> list[str]:
    """Compose the compiler flags installed into the session.

    Synthesized flags come first so anything inherited from the caller's
    environment is appended last and wins.
    """
    # rpath so the built binaries find the toolchain's private runtime libraries
    flags = ["-C", f"link-args=-Wl,-rpath,{libdir}"]
    flags.extend(lint_flags)
    if existing_env_flags:
        flags.extend(flagsplit(existing_env_flags))
    return flags


def _as_text(arg: Token) -> Optional[str]:
    if isinstance(arg, bytes):
        try:
            return arg.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        # os.fsdecode() smuggles undecodable bytes through as lone surrogates
        arg.encode("utf-8")
    except UnicodeEncodeError:
        return None
    return arg


def arg_flag_value(args: Iterable[Token], flag: str) -> Optional[Token]:
    """Return the value given for `flag` in `args`, or None.

    Accepts both `--flag value` and `--flag=value`. Scanning stops at a
    literal `--`. Tokens that are not valid UTF-8 are skipped.
    """
    it = iter(args)
    for arg in it:
        if arg == "--" or arg == b"--":
            return None
        text = _as_text(arg)
        if text is None:
            continue
        if text == flag:
            # Next one is the value.
            return next(it, None)
        prefix = f"{flag}="
        if text.startswith(prefix):
            return text[len(prefix) :]
    return None
