"""
Catalog of the supervised MCP servers.

Combines the static provider definitions with values taken from the
environment: Postgres connection parameters (either decomposed from a single
database URL or read from split variables), HTTP auth headers looked up by a
per-provider prefix, and extra HTTP providers.
"""

import logging
import os
from pathlib import Path
from typing import Mapping
from urllib.parse import unquote, urlsplit

from .config import Config
from .models import ServerConfig

logger = logging.getLogger(__name__)


def pg_env_from_url(url: str) -> dict[str, str]:
    """Decompose a postgres:// URL into libpq environment variables.

    Returns an empty dict when the URL is empty or cannot be parsed, so a bad
    value never blocks the provider from starting.
    """
    if not url:
        return {}
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        logger.warning(f"Could not parse database URL: {e}")
        return {}
    if not parts.scheme or not parts.hostname:
        logger.warning("Could not parse database URL: missing scheme or host")
        return {}

    env = {
        "PGHOST": parts.hostname,
        "PGPORT": str(port or 5432),
        "PGUSER": unquote(parts.username or ""),
        "PGPASSWORD": unquote(parts.password or ""),
    }
    database = parts.path.lstrip("/")
    if database:
        env["PGDATABASE"] = database
    return env


def pg_env_from_vars(prefix: str, environ: Mapping[str, str] = None) -> dict[str, str]:
    """Read split <prefix>_PGHOST ... <prefix>_PGDATABASE variables."""
    environ = os.environ if environ is None else environ
    return {
        "PGHOST": environ.get(f"{prefix}_PGHOST", "localhost"),
        "PGPORT": environ.get(f"{prefix}_PGPORT", "5432"),
        "PGUSER": environ.get(f"{prefix}_PGUSER", "postgres"),
        "PGPASSWORD": environ.get(f"{prefix}_PGPASSWORD", ""),
        "PGDATABASE": environ.get(f"{prefix}_PGDATABASE", "flowise"),
    }


def http_env_prefix(name: str) -> str:
    """Environment prefix holding auth settings for an HTTP provider."""
    return "MCP_HTTP_" + name.upper().replace("-", "_")


def build_http_headers(prefix: str, environ: Mapping[str, str] = None) -> dict[str, str]:
    """Build request headers from <prefix>_TOKEN, _API_KEY and _AUTH_HEADER.

    _AUTH_HEADER holds an arbitrary "Name: value" pair; values may contain
    colons. Malformed values are ignored.
    """
    environ = os.environ if environ is None else environ
    headers = {}

    token = environ.get(f"{prefix}_TOKEN")
    api_key = environ.get(f"{prefix}_API_KEY")
    custom = environ.get(f"{prefix}_AUTH_HEADER")

    if token:
        headers["Authorization"] = f"Bearer {token}"
    if api_key:
        headers["X-API-Key"] = api_key
    if custom:
        name, sep, value = custom.partition(":")
        name, value = name.strip(), value.strip()
        if sep and name and value:
            headers[name] = value
        else:
            logger.warning(f"Ignoring malformed {prefix}_AUTH_HEADER (expected 'Name: value')")
    return headers


def parse_http_servers(spec: str, environ: Mapping[str, str] = None) -> list[ServerConfig]:
    """Parse "name=url,name2=url2" into REMOTE_HTTP configs."""
    servers = []
    for item in (spec or "").split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, url = item.partition("=")
        name, url = name.strip(), url.strip()
        if not sep or not name or not url:
            logger.warning(f"Ignoring malformed HTTP server entry '{item}' (expected name=url)")
            continue
        headers = build_http_headers(http_env_prefix(name), environ)
        servers.append(ServerConfig.remote_http(name, url, headers))
    return servers


def default_server_configs(cfg: Config, environ: Mapping[str, str] = None) -> list[ServerConfig]:
    """The fixed provider set, completed with environment-derived values."""
    environ = os.environ if environ is None else environ
    data_dir = Path(cfg.data_dir)

    vuexy_db_url = environ.get("MCP_VUEXY_DATABASE_URL", "")
    prisma_cwd = environ.get("MCP_PRISMA_CWD") or None

    servers = [
        ServerConfig.subprocess(
            "knowledge-graph",
            "npx",
            ["@itseasy21/mcp-knowledge-graph"],
            env={"GRAPH_FILE_PATH": str(data_dir / "knowledge-graph.jsonl")},
        ),
        ServerConfig.subprocess(
            "memory",
            "npx",
            ["@modelcontextprotocol/server-memory"],
            env={"MEMORY_FILE_PATH": str(data_dir / "memory.jsonl")},
        ),
        ServerConfig.subprocess(
            "sequential",
            "npx",
            ["@modelcontextprotocol/server-sequential-thinking"],
            env={"SEQUENTIAL_FILE_PATH": str(data_dir / "sequential.jsonl")},
        ),
        ServerConfig.subprocess("context7", "npx", ["-y", "@upstash/context7-mcp"]),
        ServerConfig.subprocess(
            "prisma-vuexy",
            "npx",
            ["-y", "prisma", "mcp"],
            cwd=prisma_cwd,
            env={"DATABASE_URL": vuexy_db_url} if vuexy_db_url else {},
            startup_log=True,
        ),
        ServerConfig.subprocess(
            "postgres-vuexy",
            "npx",
            ["-y", "@modelcontextprotocol/server-postgres"],
            env=pg_env_from_url(vuexy_db_url),
            startup_log=True,
        ),
        ServerConfig.subprocess(
            "postgres-flowise",
            "npx",
            ["-y", "@modelcontextprotocol/server-postgres"],
            env=pg_env_from_vars("MCP_FLOWISE", environ),
            startup_log=True,
        ),
    ]
    servers.extend(parse_http_servers(environ.get("MCP_HTTP_SERVERS", ""), environ))
    return servers
