"""
Configuration for the MCP supervisor.

Loads settings from environment variables with sensible defaults.
All persistent data is stored under ~/.mcp-supervisor/ unless MCP_BASE_PATH
points somewhere else.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


@dataclass
class Config:
    """Supervisor configuration."""

    # Paths
    base_dir: Path = Path(os.environ.get("MCP_BASE_PATH", str(Path.home() / ".mcp-supervisor")))
    data_dir: Path = None
    output_dir: Path = None
    logs_dir: Path = None
    supervisor_log: Path = None

    # Logging
    log_level: str = os.environ.get("MCP_LOG_LEVEL", "INFO")
    log_max_bytes: int = int(os.environ.get("MCP_LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("MCP_LOG_BACKUP_COUNT", "5"))
    log_startup_events: bool = _env_bool("MCP_LOG_STARTUP", "false")

    # Process management
    restart_delay: float = float(os.environ.get("MCP_RESTART_DELAY", "5"))
    start_stagger: float = float(os.environ.get("MCP_START_STAGGER", "1"))
    stop_timeout: float = float(os.environ.get("MCP_STOP_TIMEOUT", "5"))

    # Health checks
    health_interval: float = float(os.environ.get("MCP_HEALTH_INTERVAL", "30"))
    health_timeout: float = float(os.environ.get("MCP_HEALTH_TIMEOUT", "5"))

    # Watcher / aggregation
    watch_interval: float = float(os.environ.get("MCP_WATCH_INTERVAL", "3"))
    aggregate_interval: float = float(os.environ.get("MCP_AGGREGATE_INTERVAL", "60"))

    # Status API
    api_enabled: bool = _env_bool("MCP_API_ENABLED", "true")
    api_host: str = os.environ.get("MCP_API_HOST", "127.0.0.1")
    api_port: int = int(os.environ.get("MCP_API_PORT", "9910"))

    def __post_init__(self):
        """Resolve derived paths. Explicit arguments win over the environment."""
        self.base_dir = Path(self.base_dir)
        if self.data_dir is None:
            self.data_dir = Path(os.environ.get("MCP_DATA_PATH") or self.base_dir / "data")
        if self.output_dir is None:
            self.output_dir = Path(os.environ.get("MCP_OUTPUT_PATH") or self.base_dir / "output")
        if self.logs_dir is None:
            self.logs_dir = Path(os.environ.get("MCP_LOGS_PATH") or self.base_dir / "logs")
        if self.supervisor_log is None:
            self.supervisor_log = self.base_dir / "supervisor.log"

    @property
    def snapshot_path(self) -> Path:
        """Well-known location of the aggregated snapshot."""
        return self.output_dir / "aggregated.json"

    @property
    def legacy_snapshot_path(self) -> Path:
        """Deprecated snapshot location, directly under the base directory."""
        return self.base_dir / "aggregated.json"

    def ensure_dirs(self):
        """Create the data, output and log directories if they are missing."""
        for path in (self.base_dir, self.data_dir, self.output_dir, self.logs_dir):
            path.mkdir(parents=True, exist_ok=True)


config = Config()
