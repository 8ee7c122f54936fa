"""Command line interface for mcp-inject."""

from mcp_inject.cli.commands.mcp import app


def main():
    app()


__all__ = ["app", "main"]
