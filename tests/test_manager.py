"""
Tests for the top-level manager lifecycle.
"""

import asyncio
import os
import signal

import pytest

from mcp_supervisor.config import Config
from mcp_supervisor.manager import MCPManager
from mcp_supervisor.models import ServerState
from tests.helpers import SLEEPER, py_server, wait_until, write_lines


@pytest.mark.asyncio
async def test_run_once_aggregates_and_stops_servers(cfg, sources):
    write_lines(sources.get("alpha").path, '{"id": 1}')
    manager = MCPManager(cfg, servers=[py_server("one", SLEEPER), py_server("two", SLEEPER)], sources=sources)

    snapshot = await manager.run_once()

    assert snapshot["stats"] == {"alpha": 1, "beta": 0, "total": 1}
    assert sources.get("beta").path.exists()
    for name in ("one", "two"):
        handle = manager.supervisor.handles[name]
        assert handle.state is ServerState.STOPPED
        assert handle.process.returncode is not None


@pytest.mark.asyncio
async def test_watch_mode_reaggregates_on_change(cfg, sources):
    cfg.watch_interval = 0.05
    manager = MCPManager(cfg, servers=[py_server("one", SLEEPER)], sources=sources)
    try:
        await manager.bootstrap()
        await manager.start_background()
        assert manager.aggregator.last_stats["total"] == 0

        write_lines(sources.get("beta").path, "1", "2", "3")
        path = sources.get("beta").path
        stat = os.stat(path)
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 2_000_000_000))

        await wait_until(lambda: manager.aggregator.last_stats["total"] == 3)
        assert manager.aggregator.load_snapshot()["beta"] == [1, 2, 3]
    finally:
        await manager.shutdown()

    assert not manager.watcher.watching
    assert manager.supervisor.handles["one"].state is ServerState.STOPPED


@pytest.mark.asyncio
async def test_shutdown_is_idempotent(cfg, sources):
    manager = MCPManager(cfg, servers=[py_server("one", SLEEPER)], sources=sources)
    await manager.bootstrap()

    await manager.shutdown()
    await manager.shutdown()

    assert manager.supervisor.handles["one"].process.returncode is not None


@pytest.mark.asyncio
async def test_run_forever_stops_on_sigterm(cfg, sources):
    manager = MCPManager(cfg, servers=[py_server("one", SLEEPER)], sources=sources)
    task = asyncio.create_task(manager.run_forever(serve_api=False))

    await wait_until(lambda: manager.watcher.watching and manager.supervisor.is_running("one"))
    os.kill(os.getpid(), signal.SIGTERM)
    await asyncio.wait_for(task, 10)

    assert manager.supervisor.handles["one"].process.returncode is not None
    assert not manager.watcher.watching
    assert cfg.snapshot_path.exists()


@pytest.mark.asyncio
async def test_unusable_data_directory_is_fatal(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    cfg = Config(base_dir=tmp_path / "mcp", data_dir=blocker, start_stagger=0, stop_timeout=2)
    manager = MCPManager(cfg, servers=[py_server("one", SLEEPER)])

    with pytest.raises(OSError):
        await manager.run_once()

    assert "one" not in manager.supervisor.handles
