"""Exceptions raised by the Gemini Live conversation link."""


class LiveProviderError(Exception):
    """Base class for conversation link failures."""


class LiveConnectionError(LiveProviderError, ConnectionError):
    """The link could not be opened or the setup handshake failed."""


class NotConnectedError(LiveProviderError):
    """A send was attempted while the link is not ready."""
