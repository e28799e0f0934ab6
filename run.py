"""Run the supervisor in watch mode."""

import asyncio

from mcp_supervisor.cli import setup_logging
from mcp_supervisor.config import config
from mcp_supervisor.manager import MCPManager

if __name__ == "__main__":
    setup_logging(config)
    asyncio.run(MCPManager(config).run_forever())
