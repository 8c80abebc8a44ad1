"""
Call scripts: the system instruction Gemini runs with and the opening line
it is asked to say when the call connects.
"""

from dataclasses import dataclass

DEMO_INSTRUCTIONS = """You are an AI assistant for a demo calling system. Your goal is to have a brief, friendly conversation.

RULES:
1. Keep responses SHORT - max 2 sentences
2. Be conversational and friendly
3. Listen carefully and acknowledge their answers
4. If they want to end the call, use the end_call tool

TOOLS AVAILABLE:
- end_call: Ends the call gracefully

EXAMPLE CONVERSATION:
1. Start with the greeting provided
2. Ask 1-2 simple questions (e.g., "How are you today?", "What brings you here?")
3. Acknowledge their responses naturally
4. Thank them and say goodbye

Be natural and conversational!"""

DEMO_GREETING = "Hi! This is an AI demo calling system. How are you today?"


@dataclass(frozen=True)
class CallScript:
    system_instruction: str
    opening_message: str


def get_call_script(script_config=None) -> CallScript:
    """Build the call script from the ``script`` config section, falling back to the demo script."""
    instructions = getattr(script_config, "instructions", None) or DEMO_INSTRUCTIONS
    greeting = getattr(script_config, "greeting", None) or DEMO_GREETING
    return CallScript(system_instruction=instructions.strip(), opening_message=greeting.strip())
