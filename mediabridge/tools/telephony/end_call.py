"""
End Call Tool - lets the AI finish the conversation.
"""

from typing import Dict, Any
from mediabridge.tools.base import Tool, ToolDefinition, ToolParameter, ToolCategory
from mediabridge.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)

END_CALL_ACTION = "end_call"


class EndCallTool(Tool):
    """
    End the current call.

    The tool itself only reports the intent; the call handler sees
    ``action == "end_call"`` in the result and hangs up after a short grace
    period so the model can finish its farewell.
    """

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="end_call",
            description="End the call gracefully when conversation is complete",
            category=ToolCategory.TELEPHONY,
            parameters=[
                ToolParameter(
                    name="reason",
                    type="string",
                    description="Reason for ending call (completed, user_request)",
                    required=True
                )
            ]
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        """
        Returns:
            {
                status: "success",
                action: "end_call",
                reason: <reason given by the model>,
                message: "Ending call..."
            }
        """
        reason = str(parameters.get("reason") or "completed")

        logger.info("End of call requested by AI",
                    call_id=context.call_id,
                    reason=reason)

        return {
            "status": "success",
            "action": END_CALL_ACTION,
            "reason": reason,
            "message": "Ending call...",
        }
