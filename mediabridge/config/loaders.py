"""
Configuration file loaders and path resolution.

This module handles:
- Path resolution (relative paths are anchored at the project root)
- YAML file loading with environment variable expansion
"""

import os
from pathlib import Path

import yaml

# Project root directory (parent of mediabridge/)
_PROJ_DIR = Path(__file__).parent.parent.parent.resolve()


def resolve_config_path(path: str) -> str:
    """
    Resolve a configuration file path to an absolute path.

    Relative paths are resolved against the project root so the bridge can be
    started from any working directory.
    """
    if not os.path.isabs(path):
        return os.path.join(_PROJ_DIR, path)
    return path


def load_yaml_with_env_expansion(path: str) -> dict:
    """
    Load a YAML file, expanding ${VAR} and $VAR references first.

    Returns an empty dict for an empty file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    try:
        with open(path, "r") as f:
            config_str = f.read()
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found at: {path}")

    try:
        config_data = yaml.safe_load(os.path.expandvars(config_str))
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML configuration: {e}")

    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        raise yaml.YAMLError(f"Top-level YAML value must be a mapping, got {type(config_data).__name__}")
    return config_data
