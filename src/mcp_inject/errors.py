"""
Error taxonomy for capability registration and dispatch.

Errors originating from handler logic or caller arguments are converted
into protocol error content by the dispatcher. Errors originating from
misconfiguration (unsupported transport, malformed descriptors) are raised
to the caller at startup.
"""

from typing import Any, Optional


class McpInjectError(Exception):
    """Base class for all mcp-inject errors."""
    pass


class InvalidDescriptor(McpInjectError, ValueError):
    """Raised when a capability descriptor is malformed."""
    pass


class DescriptorConflict(McpInjectError):
    """
    Two descriptors of the same kind share a name.

    Never raised by the registry: a conflicting add replaces the existing
    entry. Kept as a type so the conflict can be logged and reported.
    """

    def __init__(self, kind: Any, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' is already registered")


class CapabilityNotFound(McpInjectError, LookupError):
    """Raised when a (kind, name) pair is not registered."""

    def __init__(self, kind: Any, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"Unknown {kind}: '{name}'")


class BindingError(McpInjectError):
    """Raised when a required, caller-supplied argument is missing."""

    def __init__(self, missing_param: str, capability: Optional[str] = None):
        self.missing_param = missing_param
        self.capability = capability
        if capability:
            message = f"Missing required argument '{missing_param}' for '{capability}'"
        else:
            message = f"Missing required argument '{missing_param}'"
        super().__init__(message)


class InvocationError(McpInjectError):
    """Wraps an exception raised by a capability handler."""

    def __init__(self, capability: str, cause: BaseException):
        self.capability = capability
        self.cause = cause
        super().__init__(describe_exception(cause))


class UnsupportedTransport(McpInjectError, ValueError):
    """Raised at startup when the server shell cannot serve a transport."""

    def __init__(self, transport: str):
        self.transport = transport
        super().__init__(f"Transport '{transport}' is not supported by this server")


class MissingCorrelationToken(McpInjectError, ValueError):
    """Raised when a progress notification is published without a token."""

    def __init__(self):
        super().__init__(
            "MCP client did not supply a progressToken for this request; "
            "progress notifications cannot be routed"
        )


def describe_exception(error: BaseException) -> str:
    """Return a non-empty, human-readable message for an exception."""
    message = str(error).strip()
    if not message:
        return type(error).__name__
    return message
