"""
Configuration loader for webchat-driver.

This module loads the package defaults (defaults.yaml), deep-merges an
optional user YAML file on top, resolves ${ENV_VAR} references, expands
``~`` in filesystem paths, and validates the result with DriverConfig.

User file resolution order:
1. Explicit path passed to load_config()
2. $WEBCHAT_DRIVER_CONFIG
3. ~/.config/webchat-driver/config.yaml (only if it exists)

Functions:
    load_config: Main entrypoint returning a validated DriverConfig
    deep_merge: Recursive dict merge used for user overrides
"""

import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from webchat_driver.exceptions import ConfigFileNotFoundError, ConfigValidationError

from .constants import CONFIG_ENV_VAR
from .schema import DriverConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# Pattern to match ${ENV_VAR_NAME}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def _get_user_config_path() -> Path:
    """Return ~/.config/webchat-driver/config.yaml (may not exist)."""
    return Path.home() / ".config" / "webchat-driver" / "config.yaml"


def _read_yaml(path: Path) -> dict:
    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(f"Failed to read configuration file {path}: {e}") from e

    if raw is None:
        return {}

    if not isinstance(raw, dict):
        raise ConfigValidationError(
            f"Configuration file {path} must contain a mapping at the top level"
        )

    return raw


def deep_merge(base: dict, override: dict) -> dict:
    """
    Merge ``override`` into a copy of ``base``.

    Nested dicts merge key by key; every other value (lists included)
    replaces the base value outright.

    Example:
        >>> deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}})
        {'a': {'x': 1, 'y': 3}}
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve_env_vars_recursive(obj):
    """
    Recursively resolve ${ENV_VAR} references in nested dicts/lists.

    Raises:
        ConfigValidationError: If a referenced env var is not set
    """
    if isinstance(obj, dict):
        return {key: _resolve_env_vars_recursive(value) for key, value in obj.items()}

    if isinstance(obj, list):
        return [_resolve_env_vars_recursive(item) for item in obj]

    if isinstance(obj, str):
        for env_var_name in ENV_VAR_PATTERN.findall(obj):
            if os.environ.get(env_var_name) is None:
                raise ConfigValidationError(
                    f"Environment variable ${{{env_var_name}}} not set. "
                    f"Please set it in your environment or remove the reference."
                )
        return ENV_VAR_PATTERN.sub(lambda m: os.environ[m.group(1)], obj)

    return obj


def _expand_paths(raw: dict) -> dict:
    """Expand ``~`` in browser path settings."""
    browser = raw.get("browser")
    if not isinstance(browser, dict):
        return raw

    browser = dict(browser)
    if isinstance(browser.get("profile_dir"), str):
        browser["profile_dir"] = os.path.expanduser(browser["profile_dir"])
    for key in ("executable_candidates", "source_profile_candidates"):
        if isinstance(browser.get(key), list):
            browser[key] = [
                os.path.expanduser(p) if isinstance(p, str) else p for p in browser[key]
            ]

    return {**raw, "browser": browser}


def _select_user_config(config_path: str | Path | None) -> Path | None:
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigFileNotFoundError(f"Configuration file not found: {path}")
        return path

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = Path(env_path)
        if not path.exists():
            raise ConfigFileNotFoundError(
                f"Configuration file not found: {path} (from ${CONFIG_ENV_VAR})"
            )
        return path

    default_user_path = _get_user_config_path()
    if default_user_path.exists():
        return default_user_path

    return None


def load_config(config_path: str | Path | None = None) -> DriverConfig:
    """
    Load the driver configuration.

    Args:
        config_path: Optional path to a YAML file overriding package defaults

    Returns:
        Validated DriverConfig

    Raises:
        ConfigFileNotFoundError: If an explicitly requested file doesn't exist
        ConfigValidationError: If YAML is invalid or config validation fails

    Example:
        >>> config = load_config()
        >>> config.browser.debug_port
        9222
        >>> config = load_config("my-selectors.yaml")  # only overrides selectors

    Security:
        - Uses yaml.safe_load() to prevent code injection
    """
    raw_config = _read_yaml(DEFAULTS_PATH)

    user_path = _select_user_config(config_path)
    if user_path is not None:
        raw_config = deep_merge(raw_config, _read_yaml(user_path))

    raw_config = _expand_paths(_resolve_env_vars_recursive(raw_config))

    source = user_path or DEFAULTS_PATH
    try:
        return DriverConfig.model_validate(raw_config)
    except ValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(
            f"Configuration validation failed in {source}:\n" + "\n".join(error_messages)
        ) from e
