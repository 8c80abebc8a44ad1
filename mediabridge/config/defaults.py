"""
Default value application for configuration.

Environment variables override the YAML values for the listening sockets and
the log level, so container deployments can move ports without editing the
config file.
"""

import os
from typing import Any, Dict


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config_data.get(name)
    if not isinstance(section, dict):
        section = {}
    config_data[name] = section
    return section


def _int_env(name: str, fallback: Any) -> Any:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


def apply_server_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply media-stream server defaults.

    Environment variables:
    - MEDIABRIDGE_HOST: bind address (default: 0.0.0.0)
    - MEDIABRIDGE_PORT: bind port (default: 5000)
    - MEDIABRIDGE_WS_PATH: WebSocket path Twilio connects to (default: /ws)
    """
    server_cfg = _section(config_data, "server")
    server_cfg["host"] = os.getenv("MEDIABRIDGE_HOST") or server_cfg.get("host", "0.0.0.0")
    server_cfg["port"] = _int_env("MEDIABRIDGE_PORT", server_cfg.get("port", 5000))
    server_cfg["path"] = os.getenv("MEDIABRIDGE_WS_PATH") or server_cfg.get("path", "/ws")


def apply_health_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply health/metrics server defaults.

    Environment variables:
    - HEALTH_BIND_HOST: bind address (default: 127.0.0.1)
    - HEALTH_BIND_PORT: bind port (default: 15000)
    """
    health_cfg = _section(config_data, "health")
    health_cfg["host"] = os.getenv("HEALTH_BIND_HOST") or health_cfg.get("host", "127.0.0.1")
    health_cfg["port"] = _int_env("HEALTH_BIND_PORT", health_cfg.get("port", 15000))


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply logging defaults.

    Environment variables:
    - LOG_LEVEL: overrides the YAML level (default: info)
    """
    logging_cfg = _section(config_data, "logging")
    logging_cfg["level"] = os.getenv("LOG_LEVEL") or logging_cfg.get("level", "info")
