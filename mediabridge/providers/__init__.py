from .errors import LiveConnectionError, LiveProviderError, NotConnectedError
from .events import AudioPart, LiveResponse, TextPart, ToolInvocation
from .gemini_live import GEMINI_VOICES, GeminiLiveClient, LinkState, resolve_voice

__all__ = [
    "AudioPart",
    "GEMINI_VOICES",
    "GeminiLiveClient",
    "LinkState",
    "LiveConnectionError",
    "LiveProviderError",
    "LiveResponse",
    "NotConnectedError",
    "TextPart",
    "ToolInvocation",
    "resolve_voice",
]
