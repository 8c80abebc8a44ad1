"""
Configuration package for the media bridge.

This package contains:
- models: pydantic models for every config section
- loaders: YAML file loading and parsing
- security: API key injection from the environment
- defaults: environment overrides for listening sockets and logging
"""

import os
from typing import List, Tuple

import structlog

from mediabridge.config.defaults import (
    apply_health_defaults,
    apply_logging_defaults,
    apply_server_defaults,
)
from mediabridge.config.loaders import load_yaml_with_env_expansion, resolve_config_path
from mediabridge.config.models import (
    AppConfig,
    CallPolicyConfig,
    GeminiLiveConfig,
    HealthConfig,
    LoggingConfig,
    ScriptConfig,
    ServerConfig,
)
from mediabridge.config.security import inject_provider_api_keys

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/media-bridge.yaml"


def load_config(path: str = None) -> AppConfig:
    """
    Load and validate configuration from a YAML file.

    The path defaults to MEDIABRIDGE_CONFIG or config/media-bridge.yaml,
    relative to the project root.

    Raises:
        FileNotFoundError: If the configuration file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If a value has the wrong type
    """
    path = resolve_config_path(path or os.getenv("MEDIABRIDGE_CONFIG", DEFAULT_CONFIG_PATH))
    config_data = load_yaml_with_env_expansion(path)

    inject_provider_api_keys(config_data)

    apply_server_defaults(config_data)
    apply_health_defaults(config_data)
    apply_logging_defaults(config_data)

    logger.debug("Configuration loaded", path=path, sections=sorted(config_data.keys()))
    return AppConfig(**config_data)


def validate_production_config(config: AppConfig) -> Tuple[List[str], List[str]]:
    """
    Validate configuration before the bridge starts accepting calls.

    Returns:
        (errors, warnings): errors block startup, warnings are only logged
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not config.gemini.api_key:
        errors.append("No Gemini API key configured (set GOOGLE_API_KEY or GEMINI_API_KEY)")

    for name, port in (("server", config.server.port), ("health", config.health.port)):
        if not 1 <= port <= 65535:
            errors.append(f"Invalid {name} port: {port}")
    if config.health.enabled and config.health.port == config.server.port and config.health.host == config.server.host:
        errors.append("Health server and media-stream server cannot share a port")

    if not config.server.path.startswith("/"):
        errors.append(f"WebSocket path must start with '/': {config.server.path}")

    policy = config.call_policy
    for field_name in (
        "max_call_duration_sec",
        "silence_timeout_sec",
        "receive_poll_interval_sec",
    ):
        if getattr(policy, field_name) <= 0:
            errors.append(f"call_policy.{field_name} must be positive")
    if policy.max_ai_turns < 1:
        errors.append("call_policy.max_ai_turns must be at least 1")
    if not 0 < policy.barge_in_threshold <= 32768:
        warnings.append(
            f"call_policy.barge_in_threshold={policy.barge_in_threshold} is outside the PCM16 RMS range; "
            "barge-in will never (or always) trigger"
        )
    if policy.silence_timeout_sec >= policy.max_call_duration_sec:
        warnings.append("Silence timeout is not shorter than max call duration")

    if config.gemini.input_sample_rate_hz != 24000 or config.gemini.output_sample_rate_hz != 24000:
        warnings.append("Gemini sample rates other than 24000 Hz use the slow generic resampler")

    if "AUDIO" not in [m.upper() for m in config.gemini.response_modalities]:
        errors.append("gemini.response_modalities must include AUDIO")

    return errors, warnings


__all__ = [
    "AppConfig",
    "CallPolicyConfig",
    "GeminiLiveConfig",
    "HealthConfig",
    "LoggingConfig",
    "ScriptConfig",
    "ServerConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "validate_production_config",
]
