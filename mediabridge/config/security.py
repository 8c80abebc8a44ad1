"""
Credential injection for configuration.

SECURITY POLICY:
- The Gemini API key MUST NEVER be stored in YAML files
- It is read from the environment only and overwrites any YAML value
"""

import os
from typing import Any, Dict

API_KEY_ENV_VARS = ("GOOGLE_API_KEY", "GEMINI_API_KEY")


def _is_nonempty_string(val: Any) -> bool:
    return isinstance(val, str) and val.strip() != ""


def inject_provider_api_keys(config_data: Dict[str, Any]) -> None:
    """
    Inject the Gemini API key from environment variables ONLY.

    GOOGLE_API_KEY wins over GEMINI_API_KEY. When neither is set the key is
    cleared, so a key accidentally committed to YAML is never used.
    """
    gemini_cfg = config_data.get("gemini")
    if not isinstance(gemini_cfg, dict):
        gemini_cfg = {}

    api_key = None
    for env_var in API_KEY_ENV_VARS:
        value = os.getenv(env_var)
        if _is_nonempty_string(value):
            api_key = value.strip()
            break

    gemini_cfg["api_key"] = api_key
    config_data["gemini"] = gemini_cfg
