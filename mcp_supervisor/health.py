"""
Periodic liveness checks for supervised MCP servers.

HTTP providers get a bounded GET request; stdio providers are checked
against the supervisor's handle registry and restarted on the spot when
their handle has gone missing without an observed exit.
"""

import asyncio
import logging

import httpx
import psutil

from .models import HealthResult, HealthStatus, ServerConfig, ServerState
from .process import ProcessSupervisor

logger = logging.getLogger(__name__)


def classify_status(status_code: int) -> HealthStatus:
    """Map an HTTP status code to a health status."""
    if status_code == 401:
        return HealthStatus.AUTH_NEEDED
    if 200 <= status_code < 400:
        return HealthStatus.OK
    return HealthStatus.WARN


class HealthChecker:
    """Probes every configured server on a fixed interval."""

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        interval: float = 30.0,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.supervisor = supervisor
        self.interval = interval
        self.timeout = timeout
        self._transport = transport
        self._running = False
        self._task = None
        self.last_results: dict[str, HealthResult] = {}

    async def start(self):
        """Start the health check loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._check_loop())
        logger.info(f"Health checker started (every {self.interval:g}s)")

    def cancel(self):
        """Cancel the loop without waiting for it."""
        self._running = False
        if self._task:
            self._task.cancel()

    async def stop(self):
        """Stop the health check loop."""
        self.cancel()
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Health checker stopped")

    async def _check_loop(self):
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.check_all()
            except Exception as e:
                logger.error(f"Error in health check loop: {e}")

    async def check_all(self) -> list[HealthResult]:
        """Run one health check tick over all servers, in configuration order."""
        logger.info("Checking MCP servers...")

        servers = self.supervisor.servers
        http_servers = [s for s in servers if s.is_http]
        http_results = await asyncio.gather(*(self.probe_http(s) for s in http_servers))
        by_name = {r.name: r for r in http_results}

        results = []
        for server in servers:
            if server.is_http:
                result = by_name[server.name]
            else:
                result = await self.check_subprocess(server)
            self.last_results[server.name] = result
            self._log_result(result)
            results.append(result)
        return results

    async def probe_http(self, server: ServerConfig) -> HealthResult:
        """GET the server URL with a hard timeout and classify the outcome."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await asyncio.wait_for(
                    client.get(server.url, headers=server.headers or None),
                    self.timeout,
                )
        except asyncio.TimeoutError:
            return HealthResult(server.name, HealthStatus.DOWN, "TimeoutError")
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            return HealthResult(server.name, HealthStatus.DOWN, type(e).__name__)
        except Exception as e:
            logger.error(f"Unexpected error probing {server.name}: {e}")
            return HealthResult(server.name, HealthStatus.DOWN, type(e).__name__)

        status = classify_status(response.status_code)
        detail = "AUTH_NEEDED" if status is HealthStatus.AUTH_NEEDED else f"http {response.status_code}"
        return HealthResult(server.name, status, detail)

    async def check_subprocess(self, server: ServerConfig) -> HealthResult:
        """Check the registry entry of a stdio server, restarting it if it is gone."""
        supervisor = self.supervisor

        if supervisor.is_restart_pending(server.name):
            return HealthResult(server.name, HealthStatus.RESTARTING, "restart pending")

        handle = supervisor.handles.get(server.name)
        if handle is None:
            logger.warning(f"{server.name}: DEAD - restarting...")
            new_handle = await supervisor.start(server)
            detail = f"restarted (pid: {new_handle.pid})" if new_handle else "restart failed"
            return HealthResult(server.name, HealthStatus.DEAD, detail)

        if handle.state is ServerState.STOPPED:
            return HealthResult(server.name, HealthStatus.STOPPED, "exited cleanly")

        if not handle.is_alive:
            return HealthResult(server.name, HealthStatus.EXITED, "exit pending")

        memory_mb = None
        try:
            proc = psutil.Process(handle.pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                return HealthResult(server.name, HealthStatus.EXITED, f"zombie (pid: {handle.pid})")
            memory_mb = round(proc.memory_info().rss / 1024 / 1024, 1)
        except psutil.NoSuchProcess:
            return HealthResult(server.name, HealthStatus.EXITED, "exit pending")
        except psutil.AccessDenied:
            pass

        return HealthResult(server.name, HealthStatus.OK, f"pid: {handle.pid}", memory_mb=memory_mb)

    def _log_result(self, result: HealthResult):
        message = f"{result.name}: {result.status.value} ({result.detail})"
        if result.status in (HealthStatus.OK, HealthStatus.STOPPED, HealthStatus.RESTARTING):
            logger.info(message)
        elif result.status is HealthStatus.DOWN:
            logger.error(message)
        else:
            logger.warning(message)
