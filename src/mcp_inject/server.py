"""
FastMCP server shell around the capability registry.

Main server class that mirrors the registry's capabilities into a FastMCP
app, routes every tool/prompt/resource request through the dispatcher, and
forwards bus notifications (progress, log messages, list changes) to the
connected client sessions. Supports stdio and SSE transports.
"""

import asyncio
import base64
import inspect
import logging
import os
import socket
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple, Union

from fastmcp import Context, FastMCP
from fastmcp.exceptions import PromptError, ResourceError, ToolError
from fastmcp.prompts import Prompt
from fastmcp.prompts.prompt import PromptArgument
from fastmcp.resources import Resource
from fastmcp.tools import Tool
from mcp.types import BlobResourceContents, TextContent

from mcp_inject.core import (
    ArgumentBinder,
    CapabilitiesChanged,
    CapabilityDescriptor,
    CapabilityKind,
    CapabilityRegistry,
    Dispatcher,
    InvocationResult,
    Log,
    NotificationBus,
    NotificationMessage,
    Observer,
    Progress,
)
from mcp_inject.discovery import Injector
from mcp_inject.errors import UnsupportedTransport

logger = logging.getLogger(__name__)

TRANSPORTS = ("stdio", "sse", "http")
SUPPORTED_TRANSPORTS = ("stdio", "sse")

# Name of the FastMCP context parameter added to synthesized tool wrappers
CONTEXT_PARAM = "mcp_context"


@dataclass(eq=False)
class McpServer:
    """
    MCP server exposing dynamically registered capabilities.

    Subclass it and decorate methods with ``@tool``, ``@prompt`` or
    ``@resource``; they are injected when the server starts. Other objects
    can be injected or uninjected at any time.
    While the server runs, the registry is mirrored into its FastMCP app.

    Attributes:
        name: Server name, also the prefix of default capability names
        version: Server version string
        host: Server bind address (SSE only)
        port: Server port (SSE only)
        transport: Transport mode ("stdio", "sse" or "http")
        registry: Live capability tables
        bus: Notification bus this server observes while running
    """

    name: str = "mcp-inject"
    version: str = "0.1.0"
    host: str = "127.0.0.1"
    port: int = 8000
    transport: Literal["stdio", "sse", "http"] = "stdio"
    registry: CapabilityRegistry = field(default_factory=CapabilityRegistry)
    bus: NotificationBus = field(default_factory=NotificationBus)
    _app: Optional[FastMCP] = field(default=None, init=False, repr=False)
    _dispatcher: Optional[Dispatcher] = field(default=None, init=False, repr=False)
    _injector: Optional[Injector] = field(default=None, init=False, repr=False)
    _sessions: "weakref.WeakSet" = field(default_factory=weakref.WeakSet, init=False, repr=False)
    _loop: Optional[asyncio.AbstractEventLoop] = field(default=None, init=False, repr=False)
    # (kind, name) -> key the component is registered under in FastMCP
    _exposed: Dict[Tuple[CapabilityKind, str], str] = field(default_factory=dict, init=False, repr=False)
    # Notification sends in flight, held until done
    _pending: set = field(default_factory=set, init=False, repr=False)
    running: bool = field(default=False, init=False)

    def __post_init__(self):
        """Validate configuration and wire the core components together."""
        if self.transport not in TRANSPORTS:
            raise ValueError(
                f"Invalid transport '{self.transport}'. "
                f"Must be one of: {', '.join(TRANSPORTS)}."
            )

        # Load host/port from environment if not explicitly set
        if self.host == "127.0.0.1" and "MCP_SERVER_HOST" in os.environ:
            self.host = os.environ["MCP_SERVER_HOST"]

        if self.port == 8000 and "MCP_SERVER_PORT" in os.environ:
            try:
                self.port = int(os.environ["MCP_SERVER_PORT"])
            except ValueError:
                raise ValueError(
                    f"Invalid MCP_SERVER_PORT: {os.environ['MCP_SERVER_PORT']}. "
                    "Must be an integer."
                )

        self._dispatcher = Dispatcher(self.registry, ArgumentBinder(self.bus))
        self._injector = Injector(self.name, self.registry)
        self._app = FastMCP(self.name)

        self.registry.subscribe(self._on_capabilities_changed)

    # Capability management

    def inject(self, obj: Any) -> List[CapabilitiesChanged]:
        """Register every capability declared by an object."""
        return self._injector.inject(obj)

    def uninject(self, obj: Any) -> List[CapabilitiesChanged]:
        """Unregister every capability declared by an object."""
        return self._injector.uninject(obj)

    def register_capabilities(self, descriptors: Iterable[CapabilityDescriptor]) -> List[CapabilitiesChanged]:
        return self.registry.add(descriptors)

    def unregister_capabilities(self, descriptors: Iterable[CapabilityDescriptor]) -> List[CapabilitiesChanged]:
        return self.registry.remove(descriptors)

    async def dispatch(
        self,
        kind: CapabilityKind,
        name: str,
        arguments: Optional[Mapping[str, Any]] = None,
        correlation_token: Optional[Union[str, int]] = None,
    ) -> InvocationResult:
        """Dispatch a request to a registered capability."""
        return await self._dispatcher.dispatch(kind, name, arguments, correlation_token)

    def subscribe(self, observer: Observer) -> None:
        self.bus.register(observer)

    def unsubscribe(self, observer: Observer) -> None:
        self.bus.unregister(observer)

    # Lifecycle

    def _check_port_available(self, host: str, port: int) -> bool:
        """
        Check if port is available for binding.

        Args:
            host: Host address to check
            port: Port number to check

        Returns:
            True if port is available, False otherwise
        """
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind((host, port))
                return True
        except OSError:
            return False

    def start(self):
        """
        Inject this server's own capabilities and serve the configured transport.

        Raises:
            UnsupportedTransport: If the transport is known but not served
            RuntimeError: If the port is unavailable (SSE) or FastMCP fails to start
        """
        if self.transport not in SUPPORTED_TRANSPORTS:
            raise UnsupportedTransport(self.transport)

        if self.transport == "sse" and not self._check_port_available(self.host, self.port):
            raise RuntimeError(
                f"Port {self.port} already in use. "
                f"Choose a different port or stop the conflicting service."
            )

        self.prepare()
        logger.info(f"McpServer[{self.name}] starting with {self.transport} transport")

        try:
            if self.transport == "stdio":
                self._app.run()
            else:
                logger.info(f"McpServer[{self.name}] running at http://{self.host}:{self.port}/sse")
                self._app.run(transport="sse", host=self.host, port=self.port)
        except Exception as e:
            raise RuntimeError(
                f"Failed to start MCP server with {self.transport} transport: {e}"
            ) from e
        finally:
            self.stop()

    def prepare(self):
        """
        Start observing notifications and mirror the registry into FastMCP.

        Exposes everything registered so far, then injects this server's own
        capabilities. ``start()`` calls this before running the transport;
        in-process clients can talk to ``_app`` right after it.
        """
        self.bus.register(self)
        self.running = True
        for kind in CapabilityKind:
            for descriptor in self.registry.list(kind):
                self._expose(descriptor)
        self.inject(self)

    def stop(self):
        """Stop observing notifications and withdraw this server's own capabilities."""
        self.bus.unregister(self)
        if self.running:
            self.uninject(self)
        self.running = False

    # Notification forwarding

    def on_notification(self, message: NotificationMessage) -> None:
        """Forward a bus message to every connected session."""
        for session in list(self._sessions):
            self._schedule(_send_notification(session, message))

    def _on_capabilities_changed(self, event: CapabilitiesChanged) -> None:
        # Mirrored into FastMCP only while serving; start() exposes the backlog
        if not self.running:
            return
        for name in event.removed:
            self._withdraw(event.kind, name)
        for name in event.added:
            descriptor = self.registry.get(event.kind, name)
            if descriptor is not None:
                self._expose(descriptor)

        if event.added or event.removed:
            for session in list(self._sessions):
                self._schedule(_send_list_changed(session, event.kind))

    def _track_session(self, ctx: Optional[Context]) -> None:
        if ctx is None:
            return
        self._loop = asyncio.get_running_loop()
        session = getattr(ctx, "session", None)
        if session is not None:
            self._sessions.add(session)

    def _schedule(self, coro) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            coro.close()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            pending = loop.create_task(coro)
        else:
            pending = asyncio.run_coroutine_threadsafe(coro, loop)
        self._pending.add(pending)
        pending.add_done_callback(self._pending.discard)

    # FastMCP mirroring

    def _expose(self, descriptor: CapabilityDescriptor) -> None:
        """Mirror a registered descriptor into the FastMCP app."""
        self._withdraw(descriptor.kind, descriptor.name)

        if descriptor.kind is CapabilityKind.TOOL:
            tool = Tool.from_function(
                self._tool_wrapper(descriptor),
                name=descriptor.name,
                description=descriptor.description,
            )
            self._app.add_tool(tool.model_copy(update={"parameters": descriptor.schema.to_dict()}))

        elif descriptor.kind is CapabilityKind.PROMPT:
            prompt = Prompt.from_function(
                self._prompt_wrapper(descriptor),
                name=descriptor.name,
                description=descriptor.description,
            )
            arguments = [
                PromptArgument(name=p.name, description=p.description, required=p.required)
                for p in descriptor.visible_params
            ]
            self._app.add_prompt(prompt.model_copy(update={"arguments": arguments}))

        else:
            self._app.add_resource(
                Resource.from_function(
                    self._resource_wrapper(descriptor),
                    uri=descriptor.uri,
                    name=descriptor.name,
                    description=descriptor.description,
                    mime_type=descriptor.mime_type,
                )
            )

        key = descriptor.uri if descriptor.kind is CapabilityKind.RESOURCE else descriptor.name
        self._exposed[descriptor.key] = key
        logger.debug(f"Exposed {descriptor.kind} '{descriptor.name}' through FastMCP")

    def _withdraw(self, kind: CapabilityKind, name: str) -> None:
        """Remove a capability from the FastMCP app, if it was exposed."""
        key = self._exposed.pop((kind, name), None)
        if key is None:
            return

        remover = getattr(self._app, f"remove_{kind.value}", None)
        if remover is None:
            logger.warning(
                f"FastMCP cannot remove {kind} '{name}'. "
                "It may still be listed until server restart."
            )
            return
        try:
            remover(key)
        except Exception as e:
            logger.warning(f"Failed to remove {kind} '{name}' from FastMCP: {e}")

    def _tool_wrapper(self, descriptor: CapabilityDescriptor):
        server = self
        kind, name = descriptor.kind, descriptor.name

        async def wrapper(*args, **kwargs):
            ctx = kwargs.pop(CONTEXT_PARAM, None)
            server._track_session(ctx)
            result = await server._dispatcher.dispatch(
                kind, name, _supplied(kwargs), _progress_token(ctx)
            )
            tool_result = result.to_tool_result()
            if tool_result.isError:
                raise ToolError(_joined_text(tool_result.content) or f"Tool '{name}' failed")
            return list(tool_result.content)

        return _with_signature(wrapper, descriptor, with_context=True)

    def _prompt_wrapper(self, descriptor: CapabilityDescriptor):
        server = self
        kind, name = descriptor.kind, descriptor.name

        async def wrapper(*args, **kwargs):
            result = await server._dispatcher.dispatch(kind, name, _supplied(kwargs))
            if result.is_error:
                raise PromptError(result.message)
            return list(result.to_prompt_result().messages)

        return _with_signature(wrapper, descriptor, with_context=False)

    def _resource_wrapper(self, descriptor: CapabilityDescriptor):
        server = self
        kind, name = descriptor.kind, descriptor.name

        async def wrapper():
            result = await server._dispatcher.dispatch(kind, name)
            if result.is_error:
                raise ResourceError(result.message)
            contents = result.to_resource_result(descriptor.uri, descriptor.mime_type).contents
            return _resource_payload(name, contents)

        wrapper.__name__ = name
        wrapper.__doc__ = descriptor.description
        return wrapper


def _with_signature(wrapper, descriptor: CapabilityDescriptor, with_context: bool):
    """
    Give a ``*args, **kwargs`` wrapper the descriptor's visible parameters.

    Every parameter is optional and untyped at this level: the advertised
    schema comes from the descriptor and the argument binder enforces it.
    """
    params = [
        inspect.Parameter(p.name, inspect.Parameter.KEYWORD_ONLY, default=None, annotation=Any)
        for p in descriptor.visible_params
    ]
    annotations: Dict[str, Any] = {p.name: Any for p in descriptor.visible_params}
    if with_context:
        params.append(
            inspect.Parameter(CONTEXT_PARAM, inspect.Parameter.KEYWORD_ONLY, default=None, annotation=Context)
        )
        annotations[CONTEXT_PARAM] = Context

    wrapper.__signature__ = inspect.Signature(params)
    wrapper.__annotations__ = annotations
    wrapper.__name__ = descriptor.name
    wrapper.__doc__ = descriptor.description
    return wrapper


def _supplied(kwargs: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value is not None}


def _progress_token(ctx: Optional[Context]) -> Optional[Union[str, int]]:
    if ctx is None:
        return None
    try:
        meta = ctx.request_context.meta
    except (AttributeError, LookupError, ValueError):
        return None
    return getattr(meta, "progressToken", None) if meta is not None else None


def _resource_payload(name: str, contents: List[Any]) -> Union[str, bytes]:
    """
    Flatten resource contents into the single value FastMCP serves.

    One blob is served as bytes; text items are joined by newlines. A blob
    mixed with other items cannot be served as one value.
    """
    blobs = [item for item in contents if isinstance(item, BlobResourceContents)]
    if blobs:
        if len(contents) > 1:
            raise ResourceError(
                f"Resource '{name}' returned {len(contents)} items including binary contents; "
                "a binary resource must return exactly one item"
            )
        return base64.b64decode(blobs[0].blob)
    return "\n".join(item.text for item in contents)


def _joined_text(content: Iterable[Any]) -> str:
    return "\n".join(item.text for item in content if isinstance(item, TextContent))


async def _send_notification(session, message: NotificationMessage) -> None:
    try:
        if isinstance(message, Progress):
            await session.send_progress_notification(
                progress_token=message.token,
                progress=message.value,
                total=message.total,
                message=message.message,
            )
        elif isinstance(message, Log):
            await session.send_log_message(
                level=message.level,
                data=message.payload,
                logger=message.logger_name,
            )
    except Exception as e:
        logger.warning(f"Failed to forward notification to client session: {e}")


async def _send_list_changed(session, kind: CapabilityKind) -> None:
    senders = {
        CapabilityKind.TOOL: "send_tool_list_changed",
        CapabilityKind.PROMPT: "send_prompt_list_changed",
        CapabilityKind.RESOURCE: "send_resource_list_changed",
    }
    try:
        await getattr(session, senders[kind])()
    except Exception as e:
        logger.warning(f"Failed to send {kind} list change to client session: {e}")
