"""
MCP Supervisor - keeps a fixed set of MCP servers running.

Provides process supervision with fixed-delay restarts, periodic health
checks, and aggregation of the servers' JSONL data into one snapshot.
"""

__version__ = "0.1.0"
