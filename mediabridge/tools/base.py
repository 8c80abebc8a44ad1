"""
Base classes for tools the AI can call during a conversation.

A tool describes itself with a ``ToolDefinition`` (advertised to Gemini as a
function declaration) and implements ``execute``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from enum import Enum


class ToolCategory(Enum):
    """Category of tool."""
    TELEPHONY = "telephony"  # Acts on the phone call itself


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "number", "array", "object"
    description: str
    required: bool = False
    enum: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "description": self.description
        }
        if self.enum:
            result["enum"] = self.enum
        return result


@dataclass
class ToolDefinition:
    """
    Tool metadata, independent of how the tool is executed.
    """
    name: str
    description: str
    category: ToolCategory
    parameters: List[ToolParameter] = field(default_factory=list)

    def to_gemini_schema(self) -> Dict[str, Any]:
        """
        Convert to a Gemini Live function declaration.

        Gemini format (one entry of tools[].functionDeclarations):
        {
            "name": "tool_name",
            "description": "Tool description",
            "parameters": {
                "type": "object",
                "properties": {...},
                "required": [...]
            }
        }
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {
                    p.name: p.to_dict()
                    for p in self.parameters
                },
                "required": [p.name for p in self.parameters if p.required]
            }
        }


class Tool(ABC):
    """
    Abstract base class for all tools.

    Subclasses implement:
    - definition property: Returns ToolDefinition with metadata
    - execute method: Performs the actual tool action
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return tool definition with metadata."""

    @abstractmethod
    async def execute(
        self,
        parameters: Dict[str, Any],
        context: 'ToolExecutionContext'
    ) -> Dict[str, Any]:
        """
        Execute the tool with given parameters and context.

        Returns:
            Result dictionary with:
            - status: "success" | "error"
            - message: Human-readable message for the AI
            - Additional tool-specific fields
        """

    def validate_parameters(self, parameters: Dict[str, Any]) -> bool:
        """
        Validate parameters before execution.

        Raises:
            ValueError: If validation fails with specific error message
        """
        if not isinstance(parameters, dict):
            raise ValueError("Tool arguments must be an object")

        for param in self.definition.parameters:
            if param.required and param.name not in parameters:
                raise ValueError(f"Missing required parameter: {param.name}")

            if param.enum and param.name in parameters:
                if parameters[param.name] not in param.enum:
                    raise ValueError(
                        f"Invalid value for {param.name}. "
                        f"Must be one of: {', '.join(param.enum)}"
                    )

        return True
