"""
Process supervisor for MCP servers.

Spawns stdio providers as child processes, captures their stdout/stderr to
the log and to per-server log files, and restarts them after a fixed delay
when they exit with a non-zero code. Remote HTTP providers are only
registered; there is nothing to spawn or stop for them.

All state here is touched from the event loop only, so there are no locks.
"""

import asyncio
import json
import logging
import os
import re
import signal
from datetime import datetime
from pathlib import Path

from .models import ServerConfig, ServerHandle, ServerState, format_timestamp

logger = logging.getLogger(__name__)

# Some MCP servers print their normal startup banner on stderr.
BENIGN_STDERR = re.compile(r"running on stdio", re.IGNORECASE)

# Max bytes per output line; longer lines are skipped.
STREAM_LIMIT = 4 * 1024 * 1024


def classify_output(stream_name: str, line: str) -> int:
    """Return the log level for one line of provider output."""
    if stream_name == "stdout":
        return logging.INFO
    if BENIGN_STDERR.search(line):
        return logging.INFO
    if "warn" in line.lower():
        return logging.WARNING
    return logging.ERROR


class ProcessSupervisor:
    """Owns the registry of running MCP servers.

    ``handles`` maps server name to its live handle. A crashed server is
    removed from it immediately and comes back after ``restart_delay``
    seconds; a server that exits with code 0 stays registered as STOPPED
    and is not restarted.
    """

    def __init__(
        self,
        servers: list[ServerConfig],
        *,
        restart_delay: float = 5.0,
        start_stagger: float = 1.0,
        logs_dir: Path = None,
        data_dir: Path = None,
        log_startup_events: bool = False,
    ):
        names = [s.name for s in servers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate server names: {', '.join(duplicates)}")

        self.servers = list(servers)
        self.restart_delay = restart_delay
        self.start_stagger = start_stagger
        self.logs_dir = Path(logs_dir) if logs_dir else None
        self.data_dir = Path(data_dir) if data_dir else None
        self.log_startup_events = log_startup_events

        self.handles: dict[str, ServerHandle] = {}
        self.restarting: dict[str, ServerHandle] = {}
        self._restart_tasks: dict[str, asyncio.Task] = {}
        self._restart_counts: dict[str, int] = {}
        self._starting: set[str] = set()
        self._logged_startup: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._stopping = False

    def get_config(self, name: str) -> ServerConfig | None:
        for server in self.servers:
            if server.name == name:
                return server
        return None

    def is_running(self, name: str) -> bool:
        handle = self.handles.get(name)
        if not handle:
            return False
        if handle.config.is_http:
            return True
        return handle.is_alive

    def is_restart_pending(self, name: str) -> bool:
        return name in self._restart_tasks or name in self._starting

    async def start(self, server: ServerConfig) -> ServerHandle | None:
        """Start (or register) one server. Returns its handle, or None on failure."""
        if self._stopping:
            logger.info(f"Supervisor is stopping, not starting {server.name}")
            return None

        if self.is_running(server.name):
            logger.info(f"Server {server.name} is already running")
            return self.handles[server.name]

        if server.is_http:
            logger.info(f"Registering HTTP MCP server: {server.name} -> {server.url}")
            handle = ServerHandle(name=server.name, config=server, state=ServerState.RUNNING)
            self.handles[server.name] = handle
            return handle

        if server.name in self._starting:
            logger.debug(f"Server {server.name} is already being started")
            return None

        self._starting.add(server.name)
        try:
            return await self._spawn(server)
        except Exception as e:
            logger.error(f"Failed to start server {server.name}: {e}")
            return None
        finally:
            self._starting.discard(server.name)

    async def start_all(self):
        """Start every configured server, one after another with a fixed stagger."""
        logger.info("=== Starting all MCP servers ===")
        for index, server in enumerate(self.servers):
            await self.start(server)
            if self.start_stagger and index < len(self.servers) - 1:
                await asyncio.sleep(self.start_stagger)
        logger.info("=== All MCP servers started ===")

    async def _spawn(self, server: ServerConfig) -> ServerHandle:
        logger.info(f"Starting MCP server: {server.name}")

        if server.cwd and not os.path.isdir(server.cwd):
            logger.info(f"Creating missing working directory {server.cwd} for {server.name}")
            Path(server.cwd).mkdir(parents=True, exist_ok=True)

        env = os.environ.copy()
        env.update(server.env)

        # stdin stays open: stdio servers exit as soon as it reaches EOF.
        process = await asyncio.create_subprocess_exec(
            server.command,
            *server.args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=server.cwd,
            env=env,
            start_new_session=True,
            limit=STREAM_LIMIT,
        )

        handle = ServerHandle(
            name=server.name,
            config=server,
            state=ServerState.RUNNING,
            process=process,
            restart_count=self._restart_counts.get(server.name, 0),
        )
        self.handles[server.name] = handle

        self._track(self._read_stream(handle, process.stdout, "stdout"))
        self._track(self._read_stream(handle, process.stderr, "stderr"))
        self._track(self._watch_exit(handle))

        logger.info(f"Started server {server.name} with PID {process.pid}")

        if self.log_startup_events and server.startup_log:
            self._write_startup_record(handle)
        return handle

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _read_stream(self, handle: ServerHandle, stream: asyncio.StreamReader, stream_name: str):
        """Log every line of one output stream until EOF."""
        log_file = None
        if self.logs_dir:
            log_dir = self.logs_dir / handle.name
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = open(log_dir / f"{stream_name}.log", "a", encoding="utf-8")

        try:
            while True:
                try:
                    raw = await stream.readuntil(b"\n")
                except asyncio.IncompleteReadError as e:
                    raw = e.partial
                    if not raw:
                        break
                except asyncio.LimitOverrunError:
                    logger.warning(f"[{handle.name}] Skipping oversized {stream_name} line")
                    await self._discard_line(stream)
                    continue

                line = raw.decode("utf-8", errors="replace").rstrip()
                if not line:
                    continue

                if log_file:
                    log_file.write(f"[{datetime.now().isoformat()}] {line}\n")
                    log_file.flush()

                level = classify_output(stream_name, line)
                if level == logging.ERROR:
                    logger.error(f"[{handle.name}] ERROR: {line}")
                else:
                    logger.log(level, f"[{handle.name}] {line}")
        finally:
            if log_file:
                log_file.close()

    @staticmethod
    async def _discard_line(stream: asyncio.StreamReader):
        """Drop buffered and incoming bytes up to and including the next newline."""
        while True:
            try:
                await stream.readuntil(b"\n")
                return
            except asyncio.LimitOverrunError as e:
                await stream.readexactly(e.consumed)
            except asyncio.IncompleteReadError:
                return

    async def _watch_exit(self, handle: ServerHandle):
        """Wait for the process to exit and apply the restart policy."""
        code = await handle.process.wait()
        logger.info(f"[{handle.name}] Process exited with code {code}")
        if handle.process.stdin:
            handle.process.stdin.close()

        if self.handles.get(handle.name) is not handle:
            return
        if handle.killed or self._stopping or code == 0:
            handle.state = ServerState.STOPPED
            return

        handle.state = ServerState.CRASHED
        del self.handles[handle.name]
        self._restart_counts[handle.name] = handle.restart_count + 1

        logger.warning(f"[{handle.name}] Restarting in {self.restart_delay:g} seconds...")
        handle.state = ServerState.RESTARTING
        self.restarting[handle.name] = handle
        self._restart_tasks[handle.name] = asyncio.create_task(self._restart_later(handle.config))

    async def _restart_later(self, server: ServerConfig):
        try:
            await asyncio.sleep(self.restart_delay)
            await self.start(server)
        finally:
            self._restart_tasks.pop(server.name, None)
            self.restarting.pop(server.name, None)

    def _write_startup_record(self, handle: ServerHandle):
        """Append a startup record for providers that never write their own JSONL."""
        if self.data_dir is None or handle.name in self._logged_startup:
            return

        record = {
            "type": "startup",
            "server": handle.name,
            "pid": handle.pid,
            "cwd": handle.config.cwd,
            "ts": format_timestamp(),
        }
        target = self.data_dir / f"{handle.name}.jsonl"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "a", encoding="utf-8") as f:
                f.write(json.dumps(record) + "\n")
            self._logged_startup.add(handle.name)
        except OSError as e:
            logger.warning(f"Could not write startup record for {handle.name}: {e}")

    @staticmethod
    def _signal(process: asyncio.subprocess.Process, sig: int):
        """Signal the whole process group (npx spawns the real server as a child)."""
        try:
            os.killpg(os.getpgid(process.pid), sig)
        except ProcessLookupError:
            pass
        except PermissionError:
            try:
                process.send_signal(sig)
            except ProcessLookupError:
                pass

    def stop_all(self):
        """Send SIGTERM to every owned subprocess and disable restarts.

        HTTP servers are skipped; there is nothing to stop locally.
        """
        self._stopping = True
        for task in list(self._restart_tasks.values()):
            task.cancel()

        for name, handle in list(self.handles.items()):
            if handle.config.is_http:
                continue
            handle.state = ServerState.STOPPED
            if handle.process is None or handle.process.returncode is not None:
                continue
            logger.info(f"Stopping {name}...")
            handle.killed = True
            self._signal(handle.process, signal.SIGTERM)

    async def wait_stopped(self, timeout: float = 5.0):
        """Reap stopped children, killing any that ignore SIGTERM."""
        running = [
            h for h in self.handles.values() if h.process is not None and h.process.returncode is None
        ]
        if not running:
            return

        try:
            await asyncio.wait_for(
                asyncio.gather(*(h.process.wait() for h in running)),
                timeout,
            )
        except asyncio.TimeoutError:
            for handle in running:
                if handle.process.returncode is None:
                    logger.warning(f"Server {handle.name} did not stop gracefully, forcing kill")
                    self._signal(handle.process, signal.SIGKILL)
            await asyncio.gather(*(h.process.wait() for h in running))

    async def shutdown(self, timeout: float = 5.0):
        """Stop everything and cancel the output/exit watcher tasks."""
        self.stop_all()
        await self.wait_stopped(timeout)

        tasks = list(self._tasks) + list(self._restart_tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def status(self) -> list[dict]:
        """Current state of every configured server, in configuration order."""
        result = []
        for server in self.servers:
            handle = self.handles.get(server.name) or self.restarting.get(server.name)
            if handle:
                result.append(handle.to_dict())
            else:
                result.append({
                    "name": server.name,
                    "kind": server.kind.value,
                    "state": ServerState.STOPPED.value,
                    "pid": None,
                    "url": server.url,
                    "restart_count": self._restart_counts.get(server.name, 0),
                    "started_at": None,
                    "uptime_seconds": 0,
                })
        return result
