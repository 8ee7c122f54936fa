"""
mcp-inject: dynamic MCP capability registry and dispatcher.

Architecture:
    core/       Descriptors, schemas, argument binding, dispatch, the
                registry and the notification bus. No transport code.
    discovery/  ``@tool`` / ``@prompt`` / ``@resource`` decorators and the
                scanner turning decorated methods into descriptors.
    server.py   ``McpServer``: mirrors the registry into FastMCP and forwards
                notifications to client sessions.
    config.py   ``MCPConfig``: YAML configuration with env overrides.
    cli/        ``mcp-inject`` command (typer).
"""

from mcp_inject.core import (
    CapabilitiesChanged,
    CapabilityDescriptor,
    CapabilityKind,
    CapabilityRegistry,
    Content,
    DefaultNotifier,
    Dispatcher,
    ErrorText,
    NotificationBus,
    Notifier,
    ParamSpec,
    StructuredResult,
)
from mcp_inject.discovery import Argument, Injector, prompt, resource, tool
from mcp_inject.server import McpServer

__version__ = "0.1.0"

__all__ = [
    "Argument",
    "CapabilitiesChanged",
    "CapabilityDescriptor",
    "CapabilityKind",
    "CapabilityRegistry",
    "Content",
    "DefaultNotifier",
    "Dispatcher",
    "ErrorText",
    "Injector",
    "McpServer",
    "NotificationBus",
    "Notifier",
    "ParamSpec",
    "StructuredResult",
    "prompt",
    "resource",
    "tool",
]
