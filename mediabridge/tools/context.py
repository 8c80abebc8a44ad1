"""
Tool execution context - what a tool can see about the call it runs in.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ToolExecutionContext:
    """
    Context provided to tools during execution.
    """

    call_id: str
    session: Any = None          # CallSession of the running call
    config: Optional[dict] = None  # Plain dict view of the app config

    def get_config_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            key: Config key (supports dot notation, e.g., "call_policy.max_ai_turns")
            default: Default value if key not found
        """
        if not self.config:
            return default

        value = self.config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value
