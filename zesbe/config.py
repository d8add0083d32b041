"""Configuration file loading and merging for zesbe.

Reads TOML config from ~/.config/zesbe/config.toml (global) and
<base_dir>/zesbe.toml (project). Precedence: CLI > project > global > defaults.
"""

import argparse
import os
import sys
import tomllib
from pathlib import Path
from typing import Any

from .providers import DEFAULT_PROVIDER, Provider, get_provider
from .report import ConfigError

_UNSET = object()  # Sentinel for "not set by CLI"


# --- Schema ---

CONFIG_KEYS: dict[str, type | tuple[type, ...]] = {
    "provider": str,
    "model": str,
    "api_key": str,
    "base_url": str,
    "system_prompt": str,
    "max_tokens": int,
    "temperature": (int, float),
    "max_iterations": int,
    "request_timeout": (int, float),
    "max_retries": int,
    "initial_wait": (int, float),
    "max_wait": (int, float),
    "multiplier": (int, float),
    "color": bool,
    "quiet": bool,
    "no_history": bool,
    "log_level": str,
    "log_file": str,
    "data_dir": str,
}

_POSITIVE_KEYS = {"max_tokens", "max_iterations", "request_timeout", "multiplier"}
_NON_NEGATIVE_KEYS = {"max_retries", "initial_wait", "max_wait"}

# Argparse dest -> hardcoded default
_ARGPARSE_DEFAULTS: dict[str, Any] = {
    "provider": DEFAULT_PROVIDER,
    "model": None,
    "api_key": None,
    "base_url": None,
    "system_prompt": None,
    "max_tokens": None,
    "temperature": None,
    "max_iterations": 10,
    "request_timeout": 120.0,
    "max_retries": 3,
    "initial_wait": 1.0,
    "max_wait": 30.0,
    "multiplier": 2.0,
    "color": False,
    "no_color": False,
    "quiet": False,
    "no_history": False,
    "log_level": "INFO",
    "log_file": None,
    "data_dir": None,
}


# --- Internal helpers ---


def global_config_dir() -> Path:
    """Return the global config directory, respecting XDG_CONFIG_HOME."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "zesbe"
    return Path.home() / ".config" / "zesbe"


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _validate_config(config: dict, source: str) -> None:
    """Validate types and ranges in a parsed config dict.

    Raises ConfigError for type mismatches. Prints warnings for unknown keys.
    """
    for key, value in config.items():
        if key not in CONFIG_KEYS:
            print(f"warning: {source}: unknown config key {key!r}", file=sys.stderr)
            continue

        expected = CONFIG_KEYS[key]
        # bool is a subclass of int; reject it for numeric fields.
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got bool"
            )
        if not isinstance(value, expected):
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got {type(value).__name__}"
            )
        if key in _POSITIVE_KEYS and value <= 0:
            raise ConfigError(f"{source}: {key!r} must be positive, got {value}")
        if key in _NON_NEGATIVE_KEYS and value < 0:
            raise ConfigError(f"{source}: {key!r} must not be negative, got {value}")

    if "provider" in config:
        try:
            get_provider(config["provider"])
        except ConfigError as e:
            raise ConfigError(f"{source}: {e}") from None


def _check_api_key_in_git(config: dict, config_path: Path) -> None:
    """Warn if api_key is set in a project config inside a git repo."""
    if "api_key" not in config:
        return
    parent = config_path.parent
    while parent != parent.parent:
        if (parent / ".git").exists():
            print(
                f"warning: {config_path}: 'api_key' in a git-tracked project config "
                f"may be committed accidentally. Consider using an environment variable.",
                file=sys.stderr,
            )
            return
        parent = parent.parent


def _load_single(path: Path, label: str) -> dict:
    """Load and validate a single TOML config file. Returns empty dict if missing."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{label}: invalid TOML: {e}") from e

    _validate_config(config, label)
    known = {k: v for k, v in config.items() if k in CONFIG_KEYS}
    for key in ("log_file", "data_dir"):
        if key in known:
            p = Path(known[key]).expanduser()
            known[key] = str(p if p.is_absolute() else path.parent / p)
    return known


# --- Public API ---


def load_config(base_dir: Path) -> dict:
    """Load and merge global + project config.

    Returns a flat dict with only the keys that were actually set in
    config files (no defaults injected).
    """
    config_dir = global_config_dir()
    global_path = config_dir / "config.toml"
    global_config = _load_single(global_path, str(global_path))

    project_path = Path(base_dir).resolve() / "zesbe.toml"
    project_config = _load_single(project_path, str(project_path))
    if project_config:
        _check_api_key_in_git(project_config, project_path)

    return {**global_config, **project_config}


def apply_config_to_args(args: argparse.Namespace, config: dict) -> None:
    """Apply config values to argparse namespace where CLI didn't set a value.

    Remaining _UNSET sentinels are replaced with hardcoded defaults from
    _ARGPARSE_DEFAULTS.
    """

    def _is_unset(dest: str) -> bool:
        return getattr(args, dest, _UNSET) is _UNSET

    if "color" in config:
        if _is_unset("color") and _is_unset("no_color"):
            args.color = config["color"]
            args.no_color = not config["color"]

    for key, value in config.items():
        if key == "color":
            continue
        if _is_unset(key):
            setattr(args, key, value)

    for dest, default in _ARGPARSE_DEFAULTS.items():
        if _is_unset(dest):
            setattr(args, dest, default)


def resolve_api_key(
    provider: Provider,
    explicit: str | None = None,
    *,
    environ: dict | None = None,
    home: Path | None = None,
) -> str | None:
    """Find the API key: explicit value, then $<PROVIDER>_API_KEY, then ~/.<provider>_api_key."""
    if explicit:
        return explicit
    environ = os.environ if environ is None else environ
    value = environ.get(provider.env_var, "").strip()
    if value:
        return value
    key_file = (home or Path.home()) / f".{provider.name}_api_key"
    try:
        value = key_file.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return value or None


def require_api_key(provider: Provider, explicit: str | None = None, **kwargs) -> str | None:
    """Like resolve_api_key, but a provider that needs a key must have one."""
    key = resolve_api_key(provider, explicit, **kwargs)
    if key is None and provider.needs_key:
        raise ConfigError(
            f"no API key for provider {provider.name!r}: pass --api-key, "
            f"set ${provider.env_var}, or write it to ~/.{provider.name}_api_key"
        )
    return key


def generate_config(project: bool = False) -> str:
    """Return a commented-out template config string."""
    lines = [
        "# Zesbe configuration file",
        f"# {'Project' if project else 'Global'} config: "
        f"{'<project>/zesbe.toml' if project else '~/.config/zesbe/config.toml'}",
        "#",
        "# CLI flags override these values. Only uncomment what you need.",
        "",
        "# --- Provider / model ---",
        '# provider = "minimax"   # minimax | openai | anthropic | google | groq | deepseek | openrouter | ollama',
        '# model = "MiniMax-M2"',
        '# api_key = "sk-..."      # prefer $<PROVIDER>_API_KEY or ~/.<provider>_api_key',
        '# base_url = "https://..."',
        "",
        "# --- Generation parameters ---",
        "# max_tokens = 4096",
        "# temperature = 0.7",
        '# system_prompt = "You are a helpful assistant."',
        "",
        "# --- Agent loop ---",
        "# max_iterations = 10",
        "# request_timeout = 120",
        "",
        "# --- Retry policy ---",
        "# max_retries = 3",
        "# initial_wait = 1.0",
        "# max_wait = 30.0",
        "# multiplier = 2.0",
        "",
        "# --- Storage and logs ---",
        "# no_history = false",
        '# data_dir = "~/.local/share/zesbe"',
        '# log_level = "INFO"',
        '# log_file = "~/.local/share/zesbe/logs/zesbe.log"',
        "",
        "# --- UI ---",
        "# color = true       # true = force color, false = force no-color, absent = auto",
        "# quiet = false",
        "",
    ]
    return "\n".join(lines)
