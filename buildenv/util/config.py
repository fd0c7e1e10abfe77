"""Settings read from the environment and the optional buildenv.toml."""

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from typeguard import TypeCheckError, check_type, typechecked

from buildenv.util.exceptions import ConfigError
from buildenv.util.flags import LINT_FLAGS, flagsplit


logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "buildenv.toml"

# Environment variables consumed when building a session
TARGET_DIR_VAR = "CARGO_TARGET_DIR"
OPT_LEVEL_VAR = "CARGO_PROFILE_DEV_OPT_LEVEL"
COMPILER_FLAGS_VAR = "RUSTFLAGS"
EXTRA_FLAGS_VAR = "CARGO_EXTRA_FLAGS"

# Dev builds are unusably slow without some optimization.
DEFAULT_OPT_LEVEL = "2"


@typechecked
@dataclass
class EnvSettings:
    """Overrides taken from the invoking process's environment"""

    target_dir: Optional[str] = None
    opt_level: str = DEFAULT_OPT_LEVEL
    rustflags: Optional[str] = None
    cargo_extra_flags: list[str] = field(default_factory=lambda: list[str]())

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "EnvSettings":
        env = os.environ if environ is None else environ
        return cls(
            target_dir=env.get(TARGET_DIR_VAR),
            opt_level=env.get(OPT_LEVEL_VAR, DEFAULT_OPT_LEVEL),
            rustflags=env.get(COMPILER_FLAGS_VAR),
            cargo_extra_flags=flagsplit(env.get(EXTRA_FLAGS_VAR, "")),
        )


@typechecked
@dataclass
class ToolConfig:
    """Names of the external tools and formatting defaults"""

    toolchain_manager: str = "rustup"
    build_tool: str = "cargo"
    compiler: str = "rustc"
    formatter: str = "rustfmt"
    format_edition: str = "2021"
    format_batch_size: int = 256
    lint_flags: list[str] = field(default_factory=lambda: list(LINT_FLAGS))


# buildenv.toml table -> {toml key: ToolConfig field}
_TABLES: dict[str, dict[str, str]] = {
    "tools": {
        "toolchain_manager": "toolchain_manager",
        "build_tool": "build_tool",
        "compiler": "compiler",
        "formatter": "formatter",
    },
    "format": {
        "edition": "format_edition",
        "batch_size": "format_batch_size",
    },
    "flags": {
        "lint": "lint_flags",
    },
}


def _collect_overrides(data: Mapping[str, Any], source: Path) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for table_name, table in data.items():
        if table_name not in _TABLES:
            raise ConfigError(f"{source}: unknown table [{table_name}]")
        if not isinstance(table, dict):
            raise ConfigError(f"{source}: [{table_name}] must be a table")
        known = _TABLES[table_name]
        for key, value in table.items():
            if key not in known:
                raise ConfigError(f"{source}: unknown key '{key}' in [{table_name}]")
            overrides[known[key]] = value
    return overrides


def load_tool_config(root: Path) -> ToolConfig:
    """Load ToolConfig from `<root>/buildenv.toml`, or defaults if absent."""
    config_path = root / CONFIG_FILE_NAME
    if not config_path.is_file():
        return ToolConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{config_path}: {e}") from e

    overrides = _collect_overrides(data, config_path)
    logger.debug("Loaded %s: %s", config_path, overrides)
    types = {f.name: f.type for f in fields(ToolConfig)}
    for name, value in overrides.items():
        try:
            check_type(value, types[name])
        except TypeCheckError as e:
            raise ConfigError(f"{config_path}: {name} {e}") from e
    config = ToolConfig(**overrides)
    if config.format_batch_size < 1:
        raise ConfigError(f"{config_path}: [format] batch_size must be at least 1")
    return config
