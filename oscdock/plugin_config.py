"""
Plugin configuration.

Loads an optional YAML file and merges it over the built-in defaults. A
missing file is not an error; invalid values are.

Example (oscdock/config/oscdock.yaml):

    device:
      host: localhost       # device host WebSocket interface
    defaults:
      host: 127.0.0.1       # OSC destination when a control names none
      port: 8000
    logging:
      level: INFO
      dir: logs             # relative to the working directory
      file: events.log
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from oscdock.osc import validate_port
from oscdock.settings import Destination


PACKAGE_ROOT = Path(__file__).parent
DEFAULT_CONFIG_PATH = PACKAGE_ROOT / "config" / "oscdock.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "device": {
        "host": "localhost",
    },
    "defaults": {
        "host": "127.0.0.1",
        "port": 8000,
    },
    "logging": {
        "level": "INFO",
        "dir": "logs",
        "file": "events.log",
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration values.

    Raises:
        ValueError: If the default destination or logging section is invalid
    """
    defaults = config.get("defaults", {})

    host = defaults.get("host")
    if not isinstance(host, str) or not host:
        raise ValueError(
            f"Invalid defaults.host: {host!r}\n"
            f"Must be a non-empty host name or IP address"
        )

    validate_port(defaults.get("port"))

    level = config.get("logging", {}).get("level")
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        raise ValueError(
            f"Invalid logging.level: {level!r}\n"
            f"Must be one of DEBUG, INFO, WARNING, ERROR"
        )


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from a YAML file merged over the defaults.

    Args:
        path: Path to YAML file (default: packaged oscdock.yaml)

    Returns:
        Validated configuration dictionary

    Raises:
        yaml.YAMLError: If YAML syntax is invalid
        ValueError: If the file is not a mapping or a value is invalid
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, 'r') as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration must be a mapping: {config_path}")

    config = _merge(DEFAULT_CONFIG, loaded)
    validate_config(config)
    return config


def default_destination(config: Dict[str, Any]) -> Destination:
    """OSC destination used when a control's settings name none."""
    defaults = config["defaults"]
    return Destination(defaults["host"], defaults["port"])


def log_file_path(config: Dict[str, Any]) -> Path:
    logging_config = config["logging"]
    return Path(logging_config["dir"]) / logging_config["file"]
