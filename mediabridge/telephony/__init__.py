from .media_stream import (
    DEFAULT_PHONE_NUMBER,
    MediaEvent,
    MediaStreamConnection,
    StartEvent,
    StopEvent,
    parse_event,
    parse_query_params,
)

__all__ = [
    "DEFAULT_PHONE_NUMBER",
    "MediaEvent",
    "MediaStreamConnection",
    "StartEvent",
    "StopEvent",
    "parse_event",
    "parse_query_params",
]
