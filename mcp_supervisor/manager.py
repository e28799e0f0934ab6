"""
Top-level orchestration of the MCP supervisor.

Startup: ensure directories and source files, start all servers, aggregate
once. Watch mode then runs the file watcher (with its periodic aggregation
tick), the health checker and, optionally, the status API on the same event
loop until SIGTERM/SIGINT. Shutdown detaches the watcher first, then stops
every owned subprocess.
"""

import asyncio
import contextlib
import logging
import os
import signal

import httpx
import uvicorn

from .aggregator import Aggregator
from .api import create_app
from .config import Config, config
from .health import HealthChecker
from .models import ServerConfig
from .process import ProcessSupervisor
from .servers import default_server_configs
from .sources import SourceRegistry
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)


class StatusServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the manager."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self):
        pass


class MCPManager:
    """Wires the supervisor, health checker, watcher and aggregator together."""

    def __init__(
        self,
        cfg: Config = None,
        servers: list[ServerConfig] = None,
        sources: SourceRegistry = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.config = cfg or config
        self.sources = sources or SourceRegistry.default(self.config.data_dir)
        if servers is None:
            servers = default_server_configs(self.config)

        self.supervisor = ProcessSupervisor(
            servers,
            restart_delay=self.config.restart_delay,
            start_stagger=self.config.start_stagger,
            logs_dir=self.config.logs_dir,
            data_dir=self.config.data_dir,
            log_startup_events=self.config.log_startup_events,
        )
        self.aggregator = Aggregator(self.sources, self.config.snapshot_path)
        self.health = HealthChecker(
            self.supervisor,
            interval=self.config.health_interval,
            timeout=self.config.health_timeout,
            transport=transport,
        )
        self.watcher = ChangeWatcher(
            self.sources.paths(),
            self.aggregator.aggregate,
            poll_interval=self.config.watch_interval,
            tick_interval=self.config.aggregate_interval,
        )
        self._shut_down = False

    def prepare(self):
        """Create missing directories and source files so the watcher can attach."""
        logger.info("=== MCP Manager Starting ===")
        logger.info(f"Base path: {self.config.base_dir}")
        logger.info(f"Data path: {self.config.data_dir}")
        logger.info(f"Output path: {self.config.output_dir}")
        logger.info(f"Process PID: {os.getpid()}")

        self.config.ensure_dirs()
        self.sources.ensure_files()

    async def bootstrap(self):
        """Start servers and run the first aggregation pass."""
        self.prepare()
        await self.supervisor.start_all()
        self.aggregator.aggregate()

    async def start_background(self):
        """Start the watcher (with its periodic tick) and the health checker."""
        await self.watcher.start()
        await self.health.start()

    async def shutdown(self):
        """Detach watches, cancel the health loop and stop every subprocess."""
        if self._shut_down:
            return
        self._shut_down = True

        logger.info("=== Shutting down MCP Manager ===")
        self.watcher.unwatch_all()
        self.health.cancel()
        await self.supervisor.shutdown(self.config.stop_timeout)
        logger.info("MCP Manager stopped")

    async def run_once(self) -> dict:
        """Start servers, aggregate once, stop servers. Returns the snapshot."""
        try:
            await self.bootstrap()
            return self.aggregator.load_snapshot()
        finally:
            await self.shutdown()

    async def run_forever(self, serve_api: bool = None):
        """Run until SIGTERM/SIGINT, then shut down cleanly."""
        if serve_api is None:
            serve_api = self.config.api_enabled

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        handled = []
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, stop.set)
                handled.append(sig)
            except (NotImplementedError, RuntimeError):
                pass

        server = None
        server_task = None
        try:
            await self.bootstrap()
            await self.start_background()

            if serve_api:
                server = StatusServer(
                    uvicorn.Config(
                        create_app(self),
                        host=self.config.api_host,
                        port=self.config.api_port,
                        log_config=None,
                    )
                )
                server_task = asyncio.create_task(server.serve())
                logger.info(f"Status API on http://{self.config.api_host}:{self.config.api_port}")

            logger.info("=== MCP Manager Ready ===")

            waiters = [asyncio.create_task(stop.wait())]
            if server_task:
                waiters.append(server_task)
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            waiters[0].cancel()

            if server_task and server_task.done() and not stop.is_set():
                logger.error("Status API exited unexpectedly")
        finally:
            for sig in handled:
                loop.remove_signal_handler(sig)
            await self.shutdown()
            if server is not None:
                server.should_exit = True
                await asyncio.gather(server_task, return_exceptions=True)
