"""
MCP supervisor status API.

Read-mostly FastAPI application served by uvicorn inside the manager's
event loop in watch mode: server states, latest health results, the current
snapshot, and on-demand health checks and aggregation passes.
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ServerResponse(BaseModel):
    name: str
    kind: str
    state: str
    pid: Optional[int] = None
    url: Optional[str] = None
    restart_count: int = 0
    started_at: Optional[str] = None
    uptime_seconds: float = 0


class HealthResponse(BaseModel):
    name: str
    status: str
    detail: str = ""
    memory_mb: Optional[float] = None
    checked_at: str


class StatusResponse(BaseModel):
    servers: list[ServerResponse]
    sources: dict[str, str]
    last_aggregation: Optional[str] = None
    stats: Optional[dict[str, int]] = None


def create_app(manager) -> FastAPI:
    """Build the status API around a running :class:`MCPManager`."""
    app = FastAPI(
        title="MCP Supervisor",
        description="Status of supervised MCP servers and the aggregated snapshot",
        version="0.1.0",
    )

    @app.get("/api/status", response_model=StatusResponse)
    async def get_status():
        """Overall supervisor status."""
        aggregator = manager.aggregator
        return {
            "servers": manager.supervisor.status(),
            "sources": {s.name: str(s.path) for s in manager.sources},
            "last_aggregation": aggregator.last_timestamp,
            "stats": aggregator.last_stats,
        }

    @app.get("/api/health", response_model=list[HealthResponse])
    async def get_health():
        """Results of the most recent health check tick."""
        return [r.to_dict() for r in manager.health.last_results.values()]

    @app.post("/api/health/check", response_model=list[HealthResponse])
    async def run_health_check():
        """Run a health check tick now."""
        results = await manager.health.check_all()
        return [r.to_dict() for r in results]

    @app.get("/api/snapshot")
    async def get_snapshot():
        """The aggregated snapshot currently on disk."""
        try:
            snapshot = manager.aggregator.load_snapshot()
        except ValueError as e:
            raise HTTPException(status_code=500, detail=f"Snapshot is not valid JSON: {e}")
        if snapshot is None:
            raise HTTPException(status_code=404, detail="No snapshot yet")
        return snapshot

    @app.post("/api/aggregate")
    async def run_aggregation():
        """Run an aggregation pass now and return its stats."""
        try:
            snapshot = manager.aggregator.aggregate()
        except OSError as e:
            logger.error(f"Aggregation requested via API failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return {"timestamp": snapshot["timestamp"], "stats": snapshot["stats"]}

    return app
