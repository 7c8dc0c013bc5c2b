"""
Lifecycle base class for long running services.

Subclasses fill in ``_startup_hook`` and ``_shutdown_hook``; the base
class owns the observability HTTP endpoints and stops the service when
the process receives SIGTERM or SIGINT.
"""

import asyncio
import signal
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from aiohttp import web

from .config import ServiceConfig
from .health import HealthChecker
from .metrics import MetricsCollector


logger = structlog.get_logger(__name__)

STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class AsyncService(ABC):
    """Startup, shutdown and the ``/health`` and ``/metrics`` endpoints."""

    def __init__(self, config: ServiceConfig, metrics: Optional[MetricsCollector] = None):
        self.config = config
        self.logger = logger.bind(service=config.service_name)
        self.health_checker = HealthChecker(config)
        self.metrics = metrics or MetricsCollector(config.service_name)

        self.runner: Optional[web.AppRunner] = None
        self.shutdown_event = asyncio.Event()
        self.is_running = False

    def build_app(self) -> web.Application:
        app = web.Application()
        app.add_routes([
            web.get("/health", self._health_handler),
            web.get("/health/ready", self._readiness_handler),
            web.get("/health/live", self._liveness_handler),
            web.get("/metrics", self._metrics_handler),
        ])
        return app

    async def startup(self, serve_http: bool = True) -> None:
        """Run the startup hook, then optionally open the HTTP endpoints."""
        await self._startup_hook()
        self.is_running = True

        if not serve_http:
            self.logger.info("Service started without HTTP endpoints")
            return

        port = self.config.observability.health_port
        self.runner = web.AppRunner(self.build_app())
        await self.runner.setup()
        await web.TCPSite(self.runner, host="0.0.0.0", port=port).start()
        self.logger.info("Service started", port=port)

    async def shutdown(self) -> None:
        if not self.is_running:
            return
        self.logger.info("Shutting down service")
        try:
            await self._shutdown_hook()
        finally:
            if self.runner is not None:
                await self.runner.cleanup()
                self.runner = None
            self.is_running = False
            self.shutdown_event.set()
        self.logger.info("Service shutdown complete")

    async def run(self) -> None:
        """Serve until a stop signal arrives."""
        loop = asyncio.get_running_loop()
        for sig in STOP_SIGNALS:
            loop.add_signal_handler(sig, self._request_stop, sig)
        try:
            await self.startup()
            await self.shutdown_event.wait()
        except Exception:
            self.logger.exception("Service failed")
            raise
        finally:
            for sig in STOP_SIGNALS:
                loop.remove_signal_handler(sig)
            await self.shutdown()

    def _request_stop(self, sig: signal.Signals) -> None:
        self.logger.info("Received shutdown signal", signal=sig.name)
        self.shutdown_event.set()

    async def _health_handler(self, request: web.Request) -> web.Response:
        report = await self.health_checker.check_health()
        self.metrics.set_health_status(report["healthy"])
        return web.json_response(report, status=200 if report["healthy"] else 503)

    async def _readiness_handler(self, request: web.Request) -> web.Response:
        report = await self.health_checker.check_readiness()
        return web.json_response(report, status=200 if report["ready"] else 503)

    async def _liveness_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"alive": True})

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        return web.Response(
            body=self.metrics.get_metrics(),
            headers={"Content-Type": self.metrics.get_content_type()},
        )

    @abstractmethod
    async def _startup_hook(self) -> None:
        """Create and start service components."""

    @abstractmethod
    async def _shutdown_hook(self) -> None:
        """Stop service components."""
