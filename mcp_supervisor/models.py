"""
Data model for the MCP supervisor.

Provider descriptors, runtime handles, data sources and health results.
Everything here lives in memory only; it is rebuilt from static
configuration and the source files on every start.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


def format_timestamp(moment: datetime = None) -> str:
    """Format a local time as HH:MM:SS - DD-MM-YYYY (snapshot and record stamps)."""
    return (moment or datetime.now()).strftime("%H:%M:%S - %d-%m-%Y")


class ServerKind(Enum):
    SUBPROCESS = "subprocess"
    REMOTE_HTTP = "http"


class ServerState(Enum):
    STARTING = "starting"
    RUNNING = "running"
    CRASHED = "crashed"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class HealthStatus(Enum):
    OK = "OK"
    AUTH_NEEDED = "AUTH_NEEDED"
    WARN = "WARN"
    DOWN = "DOWN"
    DEAD = "DEAD"
    RESTARTING = "RESTARTING"
    STOPPED = "STOPPED"
    EXITED = "EXITED"


@dataclass(frozen=True)
class ServerConfig:
    """Immutable descriptor of one capability provider.

    SUBPROCESS providers use command/args/cwd/env, REMOTE_HTTP providers use
    url/headers. Build them with :meth:`subprocess` or :meth:`remote_http`.
    """

    name: str
    kind: ServerKind
    command: Optional[str] = None
    args: tuple[str, ...] = ()
    cwd: Optional[str] = None
    env: dict[str, str] = field(default_factory=dict)
    url: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    startup_log: bool = False

    @classmethod
    def subprocess(
        cls,
        name: str,
        command: str,
        args: list[str] = None,
        cwd: str = None,
        env: dict[str, str] = None,
        startup_log: bool = False,
    ) -> "ServerConfig":
        return cls(
            name=name,
            kind=ServerKind.SUBPROCESS,
            command=command,
            args=tuple(args or ()),
            cwd=cwd,
            env=dict(env or {}),
            startup_log=startup_log,
        )

    @classmethod
    def remote_http(cls, name: str, url: str, headers: dict[str, str] = None) -> "ServerConfig":
        return cls(
            name=name,
            kind=ServerKind.REMOTE_HTTP,
            url=url,
            headers=dict(headers or {}),
        )

    @property
    def is_http(self) -> bool:
        return self.kind is ServerKind.REMOTE_HTTP


@dataclass
class ServerHandle:
    """Runtime record of one provider, owned by the process supervisor."""

    name: str
    config: ServerConfig
    state: ServerState = ServerState.STARTING
    process: Optional[asyncio.subprocess.Process] = None
    started_at: datetime = field(default_factory=datetime.now)
    restart_count: int = 0
    killed: bool = False

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def is_alive(self) -> bool:
        """True while the OS process has not exited and was not killed by us."""
        if self.process is None:
            return False
        return self.process.returncode is None and not self.killed

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.config.kind.value,
            "state": self.state.value,
            "pid": self.pid,
            "url": self.config.url,
            "restart_count": self.restart_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "uptime_seconds": (datetime.now() - self.started_at).total_seconds()
            if self.started_at and self.state is ServerState.RUNNING
            else 0,
        }


@dataclass(frozen=True)
class DataSource:
    """A named append-only JSONL file."""

    name: str
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass
class HealthResult:
    """Outcome of probing one provider."""

    name: str
    status: HealthStatus
    detail: str = ""
    memory_mb: Optional[float] = None
    checked_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status.value,
            "detail": self.detail,
            "memory_mb": self.memory_mb,
            "checked_at": self.checked_at.isoformat(),
        }
