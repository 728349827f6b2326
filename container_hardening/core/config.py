"""
Configuration loading for the container hardening tool.

Built-in defaults are merged with an optional YAML file. The defaults
describe the retail-store layout the tool was written for: five services
under ``src/`` each carrying a ``Dockerfile`` and ``Dockerfile.secure``.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import RegistryError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "container-hardening.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "project_root": ".",
    "services": ["ui", "catalog", "cart", "orders", "checkout"],
    "paths": {
        "services_dir": "src",
        "active_name": "Dockerfile",
        "hardened_name": "Dockerfile.secure",
        "backup_dir": None,  # None keeps backups next to the Dockerfile
    },
    "runtime": {
        "docker_binary": "docker",
        "command_timeout": 600,
        "health_timeout": 30,
        "poll_interval": 1.0,
        "poll_backoff": 2.0,
        "poll_max_interval": 8.0,
        "shell_check": True,
        "expected_port": None,
    },
    "scanner": {
        "binary": "trivy",
        "timeout": 900,
    },
    "reporting": {
        "output_dir": "reports/security-scan",
    },
    "validation": {
        "best_practices": False,
        "rules": [],
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file or use defaults.

    Args:
        config_path: Path to a YAML configuration file. When None, the
            default file in the current directory is used if present.

    Returns:
        Dict: Merged configuration

    Raises:
        RegistryError: If an explicit file is missing or the YAML is invalid
    """
    if config_path is None:
        candidate = Path(DEFAULT_CONFIG_FILE)
        if not candidate.exists():
            logger.debug("No %s found, using built-in defaults", DEFAULT_CONFIG_FILE)
            return copy.deepcopy(DEFAULT_CONFIG)
        path = candidate
    else:
        path = Path(config_path)
        if not path.exists():
            raise RegistryError(f"Configuration file not found: {config_path}")

    try:
        with open(path, 'r') as f:
            user_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise RegistryError(f"Invalid YAML in {path}: {e}")

    if not isinstance(user_config, dict):
        raise RegistryError(f"Configuration in {path} must be a mapping")

    config = _merge(DEFAULT_CONFIG, user_config)

    # Relative project roots are resolved against the config file location
    root = Path(config["project_root"])
    if not root.is_absolute():
        config["project_root"] = str((path.parent / root).resolve())

    logger.debug("Loaded configuration from %s", path)
    return config
