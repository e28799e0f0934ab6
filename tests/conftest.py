"""
Pytest configuration and shared fixtures for the supervisor tests.
"""

import pytest

from mcp_supervisor.config import Config
from mcp_supervisor.sources import SourceRegistry


@pytest.fixture
def cfg(tmp_path, monkeypatch) -> Config:
    """Configuration rooted in a temp directory with fast timers."""
    for var in ("MCP_DATA_PATH", "MCP_OUTPUT_PATH", "MCP_LOGS_PATH"):
        monkeypatch.delenv(var, raising=False)
    return Config(
        base_dir=tmp_path / "mcp",
        restart_delay=0.2,
        start_stagger=0,
        stop_timeout=2,
        health_interval=3600,
        health_timeout=1,
        watch_interval=3600,
        aggregate_interval=3600,
        log_startup_events=False,
        api_enabled=False,
    )


@pytest.fixture
def sources(cfg) -> SourceRegistry:
    return SourceRegistry.from_files(cfg.data_dir, ["alpha.jsonl", "beta.jsonl"])
