"""
Structured Logging Configuration

Configures structlog on top of the stdlib logging module. Every record gets a
timestamp, level, component name and, while a call is being handled, the
call id as correlation id. Output is JSON by default or colorized console
output when LOG_FORMAT=console.
"""

import contextvars
import logging
import os
import re
import sys
import time
from logging.handlers import RotatingFileHandler

import structlog
from structlog import dev as structlog_dev

SERVICE_NAME = "media-bridge"

# Correlation id for the call currently being handled by this task
correlation_id_var = contextvars.ContextVar("correlation_id", default=None)

SENSITIVE_KEYS = frozenset({
    "api_key", "apikey", "api_keys",
    "token", "access_token", "refresh_token", "auth_token", "bearer",
    "password", "passwd", "pwd",
    "authorization", "auth",
    "credential", "credentials", "secret", "secrets",
    "private_key", "client_secret",
    "key",
})

_NORMALIZED_SENSITIVE_KEYS = frozenset(
    k.replace("_", "").replace("-", "") for k in SENSITIVE_KEYS
)

# Gemini Live authenticates with ?key=... on the WebSocket URL
_URL_KEY_PATTERN = re.compile(r"([?&]key=)[^&\s]+")


def get_correlation_id():
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(value):
    """Bind the correlation ID (the call id) for the current task and its children."""
    correlation_id_var.set(value)


def add_correlation_id(logger, method_name, event_dict):
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["call_id"] = event_dict.get("call_id", correlation_id)
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_service_context(logger, method_name, event_dict):
    event_dict["service"] = SERVICE_NAME
    component = event_dict.get("logger")
    if not component:
        component = getattr(getattr(logger, "logger", None), "name", None) or getattr(logger, "name", "unknown")
    event_dict["component"] = component
    return event_dict


def _is_sensitive_key(key) -> bool:
    normalized = str(key).lower().replace("_", "").replace("-", "")
    if normalized in _NORMALIZED_SENSITIVE_KEYS:
        return True
    # "google_api_key", "user_password", ... but not "passthrough" or "keyframe"
    return any(
        normalized.endswith(pattern) and pattern != "key"
        for pattern in _NORMALIZED_SENSITIVE_KEYS
    )


def _redact_value(value):
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        if not value:
            return ""
        # Keep a short prefix so operators can tell which credential was used
        if len(value) > 4:
            return f"{value[:2]}***REDACTED***"
        return "***REDACTED***"
    if isinstance(value, (list, tuple)):
        return [_redact_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _redact_value(v) for k, v in value.items()}
    return "***REDACTED***"


def _sanitize(value):
    if isinstance(value, dict):
        return {
            k: _redact_value(v) if _is_sensitive_key(k) else _sanitize(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]
    if isinstance(value, str) and "key=" in value:
        return _URL_KEY_PATTERN.sub(r"\1***REDACTED***", value)
    return value


def sanitize_secrets(logger, method_name, event_dict):
    """
    Redact credentials from log events.

    Values under sensitive keys (api_key, token, password, authorization,
    secret, ...) are replaced with a redaction marker that keeps the first two
    characters. API keys embedded in URLs as ``?key=...`` are also masked,
    since that is how the Gemini Live endpoint is authenticated.
    """
    return _sanitize(event_dict)


def configure_logging(log_level="INFO", log_to_file=False, log_file_path="media-bridge.log", service_name=SERVICE_NAME):
    """
    Set up structured logging.

    Environment overrides (optional):
      - LOG_LEVEL: debug|info|warning|error|critical (default: INFO)
      - LOG_FORMAT: json|console (default: json)
      - LOG_COLOR:  0|1 (console only; default: 1)
      - LOG_TO_FILE: 0|1 (default: 0)
      - LOG_FILE_PATH: path (default: media-bridge.log)
      - LOG_SHOW_TRACEBACKS: auto|always|never (default: auto, debug only)
    """
    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        log_level = env_level.upper()
    if os.getenv("LOG_TO_FILE") is not None:
        log_to_file = os.getenv("LOG_TO_FILE", "0").strip() in ("1", "true", "True")
    log_file_path = os.getenv("LOG_FILE_PATH", log_file_path)
    log_format = os.getenv("LOG_FORMAT", "json").strip().lower()
    log_color = os.getenv("LOG_COLOR", "1").strip() not in ("0", "false", "False")

    log_level_upper = log_level.upper() if isinstance(log_level, str) else logging.getLevelName(log_level)
    tb_mode = os.getenv("LOG_SHOW_TRACEBACKS", "auto").strip().lower()
    if tb_mode == "always":
        show_tracebacks = True
    elif tb_mode == "never":
        show_tracebacks = False
    else:
        show_tracebacks = log_level_upper == "DEBUG"

    def suppress_exc_info_if_disabled(logger, method_name, event_dict):
        if not show_tracebacks and event_dict.get("exc_info"):
            event_dict.pop("exc_info", None)
        return event_dict

    if isinstance(log_level, int):
        level_value = log_level
    else:
        level_value = getattr(logging, log_level_upper, logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_context,
            add_correlation_id,
            sanitize_secrets,
            suppress_exc_info_if_disabled,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog_dev.ConsoleRenderer(colors=log_color)
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    processor_formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level_value)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(processor_formatter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        path = log_file_path
        if path.endswith(os.sep) or os.path.isdir(path):
            path = os.path.join(path, f"{service_name}-{time.strftime('%Y%m%d-%H%M%S')}.log")
        elif "{ts}" in path:
            path = path.replace("{ts}", time.strftime("%Y%m%d-%H%M%S"))
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5)
            file_handler.setFormatter(processor_formatter)
            root_logger.addHandler(file_handler)
            get_logger(__name__).info("File logging configured", log_file_path=path)
        except OSError as e:
            get_logger(__name__).warning(
                "File logging disabled due to error; continuing with console only",
                error=str(e),
                configured_path=log_file_path,
            )

    # websockets logs every frame at debug level
    for noisy in ("websockets", "websockets.client", "websockets.server", "aiohttp.access", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a structlog logger."""
    return structlog.get_logger(name)
