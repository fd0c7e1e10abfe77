"""buildenv: toolchain-aware build, lint, test and format orchestration."""

__version__ = "0.1.0"
