"""
Media-stream WebSocket server.

Twilio connects to ``ws://<host>:<port><path>?phoneNumber=...&voiceId=...``
(the ``<Stream url>`` of the call's TwiML); every connection gets its own
``CallHandler``.
"""

import asyncio
import signal
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

from websockets.asyncio.server import serve

from .config import AppConfig, load_config, validate_production_config
from .core.call_handler import CallHandler
from .core.session_store import SessionStore
from .health import HealthServer
from .logging_config import configure_logging, get_logger
from .telephony import MediaStreamConnection, parse_query_params
from .tools import tool_registry

logger = get_logger(__name__)


class MediaBridgeServer:
    def __init__(
        self,
        config: AppConfig,
        session_store: Optional[SessionStore] = None,
        link_factory: Optional[Callable[[str], Any]] = None,
    ):
        self.config = config
        self.session_store = session_store or SessionStore()
        self._link_factory = link_factory
        self._server = None
        self._health: Optional[HealthServer] = None
        if config.health.enabled:
            self._health = HealthServer(
                self.session_store,
                host=config.health.host,
                port=config.health.port,
                ready_check=self.is_serving,
            )

    def is_serving(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        tool_registry.initialize_default_tools()

        self._server = await serve(
            self.handle_connection,
            self.config.server.host,
            self.config.server.port,
        )
        logger.info(
            "Media stream server listening",
            host=self.config.server.host,
            port=self.config.server.port,
            path=self.config.server.path,
        )

        if self._health is not None:
            try:
                await self._health.start()
            except OSError as exc:
                logger.error("Failed to start health endpoint", error=str(exc), exc_info=True)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        if self._health is not None:
            await self._health.stop()
        logger.info("Media stream server stopped", active_calls=len(self.session_store))

    async def handle_connection(self, websocket) -> None:
        connection = MediaStreamConnection(websocket)
        path = connection.path
        if urlsplit(path).path != self.config.server.path:
            logger.warning("Rejecting connection on unknown path", path=urlsplit(path).path)
            await connection.close(1008, "Unknown path")
            return

        params = parse_query_params(path, default_voice=self.config.gemini.default_voice)
        logger.info("Media stream connected", phone_number=params["phone_number"], voice_id=params["voice_id"])

        handler = CallHandler(
            connection,
            self.session_store,
            self.config,
            link_factory=self._link_factory,
            phone_number=params["phone_number"],
            voice_id=params["voice_id"],
        )
        await handler.run()


async def main():
    config = load_config()
    configure_logging(log_level=str(config.logging.level).upper())

    errors, warnings = validate_production_config(config)
    if errors:
        logger.error("Configuration validation FAILED", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)
    logger.info("Configuration validation passed")

    server = MediaBridgeServer(config)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    await server.start()
    await shutdown_event.wait()
    await server.stop()
