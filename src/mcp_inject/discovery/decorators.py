"""
Decorators marking methods as MCP capabilities.

Example:
    class WeatherServer(McpServer):

        @tool(name="getWeather", description="Current weather for a city")
        def get_weather(self, city: Annotated[str, Argument("City name")]) -> str:
            ...

        @resource("weather://cities", mime_type="application/json")
        def cities(self) -> list:
            ...
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from mcp_inject.core.descriptors import CapabilityKind

META_ATTRIBUTE = "__mcp_capabilities__"


@dataclass(frozen=True)
class Argument:
    """
    Per-parameter metadata, attached with ``typing.Annotated``.

    Attributes:
        description: Description advertised in the input schema
        required: Whether callers must supply the argument. ``None`` means
            "required unless the parameter has a default value".
    """

    description: str = ""
    required: Optional[bool] = None


@dataclass(frozen=True)
class CapabilityMeta:
    """Capability metadata recorded on a decorated function."""

    kind: CapabilityKind
    name: str = ""
    title: str = ""
    description: str = ""
    uri: Optional[str] = None
    mime_type: Optional[str] = None


def _attach(meta: CapabilityMeta) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        existing: Tuple[CapabilityMeta, ...] = getattr(func, META_ATTRIBUTE, ())
        setattr(func, META_ATTRIBUTE, existing + (meta,))
        return func

    return decorator


def tool(name: str = "", title: str = "", description: str = ""):
    """Expose a method as an MCP tool."""
    return _attach(CapabilityMeta(CapabilityKind.TOOL, name, title, description))


def prompt(name: str = "", description: str = ""):
    """Expose a method as an MCP prompt."""
    return _attach(CapabilityMeta(CapabilityKind.PROMPT, name, "", description))


def resource(uri: str, mime_type: str = "text/plain", name: str = "", description: str = ""):
    """Expose a zero-argument method as an MCP resource served at ``uri``."""
    return _attach(
        CapabilityMeta(CapabilityKind.RESOURCE, name, "", description, uri=uri, mime_type=mime_type)
    )


def capability_meta(func: Callable[..., Any]) -> Tuple[CapabilityMeta, ...]:
    """Capability metadata recorded on a function (empty if undecorated)."""
    func = getattr(func, "__func__", func)
    return getattr(func, META_ATTRIBUTE, ())
