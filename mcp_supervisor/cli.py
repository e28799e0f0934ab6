"""
Command line interface for the MCP supervisor.

    mcp-supervisor run               start servers, aggregate once, exit
    mcp-supervisor watch             start servers and keep supervising
    mcp-supervisor aggregate [--watch]
    mcp-supervisor verify
"""

import asyncio
import logging
from logging.handlers import RotatingFileHandler

import typer

from .aggregator import Aggregator
from .config import Config, config
from .manager import MCPManager
from .sources import SourceRegistry
from .verifier import verify_integration

logger = logging.getLogger(__name__)

app = typer.Typer(help="Supervise MCP servers and aggregate their JSONL data")


def setup_logging(cfg: Config, log_file: bool = True):
    """Console logging plus, optionally, a rotating supervisor log file."""
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers = []
    if log_file:
        cfg.base_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            cfg.supervisor_log,
            maxBytes=cfg.log_max_bytes,
            backupCount=cfg.log_backup_count,
        )
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=cfg.log_level.upper(), handlers=handlers, force=True)


def _run(coro):
    """Run the startup sequence; any uncaught failure exits with status 1."""
    try:
        asyncio.run(coro)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        raise typer.Exit(code=1)


@app.command("run")
def run_once():
    """Start all servers, aggregate once, stop the servers and exit."""
    setup_logging(config)
    _run(MCPManager(config).run_once())


@app.command("watch")
def watch(
    api: bool = typer.Option(None, "--api/--no-api", help="Serve the status API (default: MCP_API_ENABLED)"),
):
    """Start all servers and supervise them until SIGTERM/SIGINT."""
    setup_logging(config)
    _run(MCPManager(config).run_forever(serve_api=api))


@app.command("aggregate")
def aggregate(
    watch: bool = typer.Option(False, "--watch", help="Keep re-aggregating on file changes"),
):
    """Aggregate the source files without starting any server."""
    setup_logging(config)
    if watch:
        _run(MCPManager(config, servers=[]).run_forever(serve_api=False))
        return

    try:
        config.ensure_dirs()
        Aggregator(SourceRegistry.default(config.data_dir), config.snapshot_path).aggregate()
    except Exception as e:
        logger.exception(f"Aggregation failed: {e}")
        raise typer.Exit(code=1)


@app.command("verify")
def verify():
    """Check that every source has data and the snapshot is consistent."""
    setup_logging(config, log_file=False)
    report = verify_integration(
        SourceRegistry.default(config.data_dir),
        config.snapshot_path,
        config.legacy_snapshot_path,
    )
    typer.echo(report.render())
    if not report.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
