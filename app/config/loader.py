"""Configuration loader: YAML file plus environment variables."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CONFIG_CANDIDATES = (Path("config.yaml"), Path("config") / "config.yaml")

_CONFIG_SUGGESTIONS = [
    "Review config.example.yaml for correct format",
    "Check that field types match the expected schema",
]


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and validate configuration from a YAML file and the environment.

    Config file lookup order:
    1. ``config_path`` if given
    2. ./config.yaml
    3. ./config/config.yaml

    A missing file is an error only when ``config_path`` was given; otherwise
    built-in defaults are used.

    Raises:
        ConfigurationError: If the file or the environment is invalid
    """
    config_file = _find_config_file(config_path)
    config_dict = _read_yaml(config_file) if config_file else {}

    messages = check_for_warnings(config_dict)
    if messages:
        emit_warnings(messages)

    app_config = parse_app_config(config_dict)
    env_config = load_environment_config(require_mapbox=app_config.geocoding.enabled)
    return app_config, env_config


def parse_app_config(config_dict: Dict[str, Any]) -> AppConfig:
    """Validate a raw mapping, translating pydantic errors into ConfigurationError."""
    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=_describe_errors(e),
            suggestions=_CONFIG_SUGGESTIONS,
        ) from e


def _describe_errors(error: ValidationError) -> List[str]:
    described = []
    for item in error.errors():
        path = " -> ".join(str(loc) for loc in item["loc"]) or "config"
        kind = item["type"]
        if kind == "missing":
            described.append(f"Missing required field: {path}")
        elif kind.endswith("_type"):
            described.append(
                f"Invalid type for '{path}': expected {kind[:-5]}, got {item.get('input')!r}"
            )
        elif kind == "extra_forbidden":
            described.append(f"Unknown field: {path}")
        else:
            described.append(f"{path}: {item['msg']}")
    return described


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Check YAML syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file {config_file}: {e}",
            suggestions=[f"Ensure {config_file} is readable"],
        ) from e

    if config_dict is None:
        return {}
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration root must be a mapping, got {type(config_dict).__name__}",
            suggestions=_CONFIG_SUGGESTIONS,
        )
    return config_dict


def _find_config_file(config_path: Optional[Path] = None) -> Optional[Path]:
    if config_path:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[
                    f"Ensure {config_path} exists",
                    "Copy config.example.yaml to config.yaml",
                ],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_CANDIDATES:
        if candidate.exists():
            return candidate
    return None


def validate_config_file(config_path: Path) -> bool:
    """Validate a config file without touching the environment.

    Prints the outcome and returns True when the file is valid.
    """
    try:
        parse_app_config(_read_yaml(Path(config_path)))
    except ConfigurationError as e:
        print(f"✗ Configuration validation failed:\n{e}")
        return False
    print(f"✓ Configuration file {config_path} is valid")
    return True
