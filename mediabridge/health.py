"""
Health and metrics endpoint (aiohttp), bound to 127.0.0.1:15000 by default.

    GET /live     process is up
    GET /ready    media-stream server is accepting connections
    GET /health   active call statistics
    GET /metrics  Prometheus exposition
"""

from typing import Callable, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .core.session_store import SessionStore
from .logging_config import get_logger

logger = get_logger(__name__)


class HealthServer:
    def __init__(
        self,
        session_store: SessionStore,
        host: str = "127.0.0.1",
        port: int = 15000,
        ready_check: Optional[Callable[[], bool]] = None,
    ):
        self.session_store = session_store
        self.host = host
        self.port = port
        self._ready_check = ready_check or (lambda: True)
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/live", self._live_handler)
        app.router.add_get("/ready", self._ready_handler)
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/metrics", self._metrics_handler)
        return app

    async def start(self) -> None:
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner
        logger.info("Health endpoint started", host=self.host, port=self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def _live_handler(self, request):
        """Liveness probe: returns 200 if process is up."""
        return web.Response(text="ok", status=200)

    async def _ready_handler(self, request):
        ready = bool(self._ready_check())
        return web.json_response({"ready": ready}, status=200 if ready else 503)

    async def _health_handler(self, request):
        stats = self.session_store.get_session_stats()
        return web.json_response({"status": "ok", **stats}, status=200)

    async def _metrics_handler(self, request):
        """Expose Prometheus metrics."""
        data = generate_latest()
        # aiohttp forbids 'charset=' inside content_type arg; pass full header via headers.
        return web.Response(body=data, headers={"Content-Type": CONTENT_TYPE_LATEST})
