"""
Entry point for running the supervisor via `python -m mcp_supervisor`.

Dispatches to the typer CLI (run, watch, aggregate, verify).
"""

from .cli import app


def main():
    """Run the supervisor CLI."""
    app(prog_name="mcp-supervisor")


if __name__ == "__main__":
    main()
