"""
Layered configuration loading.

Sources, later ones winning:
1. Package defaults: cbx_terminal/config/defaults/settings.yaml, security.yaml
2. User files: config.yaml, security.yaml in --config-dir or ~/.cbx-terminal/
3. Environment: CBX_TERMINAL_<SECTION>__<KEY>, e.g.
   CBX_TERMINAL_COMMAND__DEFAULT_TIMEOUT_MS=5000

The deny-pattern and allow-prefix lists are only settable from YAML.
"""

import os
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

import yaml

from cbx_terminal.config.models import TerminalConfig
from cbx_terminal.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".cbx-terminal"
PACKAGE_DEFAULTS_DIR = Path(__file__).parent / "defaults"

DEFAULT_FILES = ("settings.yaml", "security.yaml")
USER_FILES = ("config.yaml", "security.yaml")

ENV_PREFIX = "CBX_TERMINAL_"
ENV_DELIMITER = "__"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Merge override into a copy of base.

    Sections merge key by key; a list such as security.allow_prefixes is
    replaced wholesale, so a user file can shrink the allow list.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Read one YAML file; missing, empty or unparsable files contribute nothing."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Ignoring unparsable config file {path}: {e}")
        return {}


def _yaml_sources(config_dir: Optional[Path]) -> Iterator[Path]:
    for name in DEFAULT_FILES:
        yield PACKAGE_DEFAULTS_DIR / name
    user_dir = config_dir or DEFAULT_CONFIG_DIR
    for name in USER_FILES:
        yield user_dir / name


def _get_env_overrides(environ: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """
    Collect CBX_TERMINAL_* variables as a nested override dict.

    CBX_TERMINAL_COMMAND__MAX_OUTPUT_BYTES=2048 -> {"command": {"max_output_bytes": 2048}}
    CBX_TERMINAL_TEXTGEN__MODEL=m               -> {"textgen": {"model": "m"}}
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        *sections, field_name = key[len(ENV_PREFIX):].lower().split(ENV_DELIMITER)
        current = overrides
        for section in sections:
            current = current.setdefault(section, {})
        current[field_name] = _parse_env_value(value)

    return overrides


def _parse_env_value(value: str) -> Any:
    """
    Coerce an environment string.

    Only true/yes/false/no become booleans; "0" and "1" stay integers so
    numeric settings are never read as flags.
    """
    lowered = value.lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False

    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue

    return value


def load_config(config_dir: Optional[str | Path] = None) -> TerminalConfig:
    """
    Load and validate the terminal configuration.

    Args:
        config_dir: Directory holding user config.yaml / security.yaml
                    (default ~/.cbx-terminal/)

    Returns:
        TerminalConfig: Validated configuration object

    Raises:
        pydantic.ValidationError: If the merged configuration is invalid
    """
    config_data: dict[str, Any] = {}
    for path in _yaml_sources(Path(config_dir) if config_dir else None):
        config_data = _deep_merge(config_data, _load_yaml_file(path))

    config_data = _deep_merge(config_data, _get_env_overrides())
    return TerminalConfig.model_validate(config_data)
