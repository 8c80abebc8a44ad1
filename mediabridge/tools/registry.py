"""
Tool registry - central repository for the tools offered to Gemini.

Singleton pattern ensures only one registry exists across the application.
"""

from typing import Any, Dict, List, Optional, Type
from mediabridge.tools.base import Tool, ToolDefinition
from mediabridge.tools.context import ToolExecutionContext
import logging

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Singleton registry for all available tools.

    Manages tool registration, lookup, schema export and invocation.
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern - only one instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._tools: Dict[str, Tool] = {}
            cls._instance._initialized = False
        return cls._instance

    def register(self, tool_class: Type[Tool]) -> None:
        """
        Register a tool class.

        Example:
            registry.register(EndCallTool)
        """
        tool = tool_class()
        tool_name = tool.definition.name

        if tool_name in self._tools:
            logger.warning(f"Tool {tool_name} already registered, overwriting")

        self._tools[tool_name] = tool
        logger.info(f"Registered tool: {tool_name} ({tool.definition.category.value})")

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def declarations(self) -> List[ToolDefinition]:
        """All tool definitions, in registration order."""
        return [tool.definition for tool in self._tools.values()]

    def to_gemini_schema(self) -> List[Dict[str, Any]]:
        """
        Export all tools as Gemini Live function declarations.

        Returns an empty list when nothing is registered; the caller then
        omits ``tools`` from the setup message.
        """
        return [definition.to_gemini_schema() for definition in self.declarations()]

    async def invoke(
        self,
        name: str,
        args: Dict[str, Any],
        context: ToolExecutionContext,
    ) -> Dict[str, Any]:
        """
        Run a tool by name.

        Never raises for tool failures: an unknown name, invalid arguments or
        an exception inside the tool all come back as an error-shaped result
        so the model can be told what went wrong.
        """
        tool = self.get(name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {name} (call {context.call_id})")
            return {
                "status": "error",
                "error": f"Unknown tool: {name}",
                "message": f"The tool '{name}' is not available.",
            }

        args = args if args is not None else {}
        try:
            tool.validate_parameters(args)
            result = await tool.execute(args, context)
        except ValueError as e:
            logger.warning(f"Invalid arguments for tool {name}: {e}")
            return {
                "status": "error",
                "error": str(e),
                "message": f"Invalid arguments for {name}.",
            }
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}", exc_info=True)
            return {
                "status": "error",
                "error": str(e),
                "message": f"The tool '{name}' failed.",
            }

        if not isinstance(result, dict):
            logger.error(f"Tool {name} returned {type(result).__name__}, expected dict")
            return {
                "status": "error",
                "error": "Tool returned an invalid result",
                "message": f"The tool '{name}' failed.",
            }
        return result

    def initialize_default_tools(self) -> None:
        """
        Register all built-in tools.

        Called once during server startup.
        """
        if self._initialized:
            logger.info("Tools already initialized, skipping")
            return

        from mediabridge.tools.telephony.end_call import EndCallTool
        self.register(EndCallTool)

        self._initialized = True
        logger.info(f"Initialized {len(self._tools)} tools")

    def list_tools(self) -> List[str]:
        return list(self._tools.keys())

    def clear(self) -> None:
        """
        Clear all registered tools.

        Mainly for testing purposes.
        """
        self._tools.clear()
        self._initialized = False
        logger.info("Cleared all registered tools")


# Global singleton instance
tool_registry = ToolRegistry()
