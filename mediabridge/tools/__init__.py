"""
Tools the AI can call during a conversation.

- base: Tool, ToolDefinition, ToolParameter, ToolCategory
- context: ToolExecutionContext handed to every tool
- registry: process-wide ToolRegistry singleton (``tool_registry``)
- telephony: call-control tools (end_call)
"""

from mediabridge.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from mediabridge.tools.context import ToolExecutionContext
from mediabridge.tools.registry import ToolRegistry, tool_registry

__all__ = [
    "Tool",
    "ToolCategory",
    "ToolDefinition",
    "ToolExecutionContext",
    "ToolParameter",
    "ToolRegistry",
    "tool_registry",
]
