"""MCP server commands."""

import dataclasses
import importlib
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from mcp_inject.config import CONFIG_DIR, MCPConfig
from mcp_inject.core import CapabilityKind
from mcp_inject.server import McpServer

DEFAULT_TARGET = "mcp_inject.demo:WeatherServer"

app = typer.Typer(help="Dynamic MCP capability server")
console = Console()
# stdout carries the stdio transport while serving
err_console = Console(stderr=True)


def _get_project_root() -> Path:
    """Get project root directory (contains .mcp-inject/)."""
    cwd = Path.cwd()

    # Search upwards for .mcp-inject/ directory
    current = cwd
    while current != current.parent:
        if (current / CONFIG_DIR).exists():
            return current
        current = current.parent

    # Not found - use current directory
    return cwd


def _configure_logging(level: str) -> None:
    """Log to stderr; stdout carries the stdio transport."""
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
    quiet = max(logging.getLevelName(level), logging.WARNING)
    for name in ("fastmcp", "mcp"):
        logging.getLogger(name).setLevel(quiet)


def load_target(target: str) -> Any:
    """
    Import ``module:attribute``.

    Raises:
        ValueError: If the target is malformed or cannot be imported
    """
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise ValueError(f"Invalid target '{target}'. Expected 'module:attribute'.")

    try:
        obj = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import module '{module_name}': {e}") from e

    for attr in attr_path.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError:
            raise ValueError(f"Module '{module_name}' has no attribute '{attr_path}'")
    return obj


def build_server(target: str, config: MCPConfig) -> Tuple[McpServer, Any]:
    """
    Build the server for a target and the object whose capabilities it serves.

    A target that is an ``McpServer`` subclass is instantiated as the server;
    an ``McpServer`` instance is copied with the new settings, sharing its
    registry and bus. Anything else is injected into a plain ``McpServer``; classes are
    instantiated without arguments.
    """
    obj = load_target(target)
    settings = {"host": config.host, "port": config.port, "transport": config.transport}
    if config.name:
        settings["name"] = config.name

    if isinstance(obj, type) and issubclass(obj, McpServer):
        server = obj(**settings)
        return server, server

    if isinstance(obj, McpServer):
        # Rebuilt so __post_init__ validates and wires the new settings
        server = dataclasses.replace(obj, **settings)
        return server, server

    if isinstance(obj, type):
        obj = obj()
    return McpServer(**settings), obj


def _load_config(config_file: bool, **overrides: Any) -> MCPConfig:
    config = MCPConfig.load(_get_project_root()) if config_file else MCPConfig()
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    config.validate()
    return config


@app.command()
def start(
    target: str = typer.Option(DEFAULT_TARGET, help="Object to serve, as module:attribute"),
    host: str = typer.Option(None, help="Server host (SSE only, overrides config)"),
    port: int = typer.Option(None, help="Server port (SSE only, overrides config)"),
    transport: str = typer.Option(None, help="Transport: stdio or sse (overrides config)"),
    name: str = typer.Option(None, help="Server name (overrides config)"),
    log_level: str = typer.Option(None, help="Log level (overrides config)"),
    config_file: bool = typer.Option(True, help=f"Load from {CONFIG_DIR}/config.yaml"),
):
    """
    Start the MCP server.

    Configuration is loaded from .mcp-inject/config.yaml if it exists.
    Environment variables override the config file; command-line options
    override both.

    Examples:
        # Serve the bundled demo over stdio
        mcp-inject start

        # Serve your own object over SSE
        mcp-inject start --target myapp.tools:Toolbox --transport sse --port 8000

        # Ignore config file (use CLI options only)
        mcp-inject start --no-config-file --transport stdio
    """
    try:
        config = _load_config(
            config_file, host=host, port=port, transport=transport, name=name, log_level=log_level
        )
        _configure_logging(config.log_level)

        server, provider = build_server(target, config)
        if provider is not server:
            server.inject(provider)

        err_console.print("[green]Starting MCP server...[/green]")
        err_console.print(f"Target: {target}")
        err_console.print(f"Transport: {config.transport}")
        if config.transport == "sse":
            err_console.print(f"Listening on {config.host}:{config.port}")

        server.start()
    except ValueError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)
    except RuntimeError as e:
        err_console.print(f"[red]Error starting server:[/red] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Server stopped by user[/yellow]")
        raise typer.Exit(0)


@app.command()
def inspect(
    target: str = typer.Option(DEFAULT_TARGET, help="Object to inspect, as module:attribute"),
    name: Optional[str] = typer.Option(None, help="Server name used for default capability names"),
):
    """
    List the capabilities a target would expose, without serving it.

    Examples:
        mcp-inject inspect --target myapp.tools:Toolbox
    """
    try:
        server, provider = build_server(target, MCPConfig(name=name))
        events = server.inject(provider)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title=f"Capabilities of {server.name}")
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("Arguments")
    table.add_column("Notifier")

    for kind in CapabilityKind:
        for descriptor in server.registry.list(kind):
            arguments = ", ".join(
                f"{p.name}*" if p.required else p.name for p in descriptor.visible_params
            )
            if descriptor.kind is CapabilityKind.RESOURCE:
                arguments = descriptor.uri
            table.add_row(
                str(kind),
                descriptor.name,
                arguments or "-",
                "yes" if descriptor.hidden_param is not None else "no",
            )

    vetoed = [(event.kind, name) for event in events for name in event.vetoed]
    for kind, vetoed_name in vetoed:
        table.add_row(str(kind), f"[dim]{vetoed_name}[/dim]", "[dim]filtered out[/dim]", "-")

    console.print(table)
    console.print("[dim]* required argument[/dim]")
