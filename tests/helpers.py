"""
Shared helpers for the supervisor tests.
"""

import asyncio
import sys

from mcp_supervisor.models import ServerConfig

SLEEPER = "import time; time.sleep(30)"

# Exits with code 1 on the first run, then stays up. The marker file path is
# passed as the first argument.
CRASH_ONCE = (
    "import os, sys, time\n"
    "marker = sys.argv[1]\n"
    "if not os.path.exists(marker):\n"
    "    open(marker, 'w').close()\n"
    "    sys.exit(1)\n"
    "time.sleep(30)\n"
)


def py_server(name: str, code: str, *args: str, **kwargs) -> ServerConfig:
    """A stdio server config running a Python snippet."""
    return ServerConfig.subprocess(name, sys.executable, ["-c", code, *args], **kwargs)


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02):
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


def write_lines(path, *lines):
    """Write raw lines (already serialized) to a JSONL file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
