"""
Request dispatch: lookup, binding, invocation and result conversion.

The dispatcher is the error boundary between handler code and the
transport: handler exceptions, missing arguments and unknown capability
names all come back as ``ErrorText`` results, never as raised exceptions.
"""

import asyncio
import inspect
import logging
from typing import Any, Mapping, Optional, Union

from mcp_inject.errors import BindingError, CapabilityNotFound, InvocationError, describe_exception

from .binding import ArgumentBinder, InvocationRequest
from .descriptors import CapabilityDescriptor, CapabilityKind
from .registry import CapabilityRegistry
from .results import ErrorText, InvocationResult, classify_result

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Invokes registered capabilities.

    Synchronous handlers run in a worker thread so a blocking handler does
    not stall the event loop; coroutine handlers are awaited directly. No
    registry lock is held while a handler runs, so a handler may itself
    register or unregister capabilities.

    Args:
        registry: Registry to resolve capability names against
        binder: Binder used to build handler arguments
    """

    def __init__(self, registry: CapabilityRegistry, binder: ArgumentBinder):
        self.registry = registry
        self.binder = binder

    async def dispatch(
        self,
        kind: CapabilityKind,
        name: str,
        arguments: Optional[Mapping[str, Any]] = None,
        correlation_token: Optional[Union[str, int]] = None,
    ) -> InvocationResult:
        """
        Dispatch a request to the capability registered as (kind, name).

        Args:
            kind: Capability kind
            name: Capability name
            arguments: Caller-supplied arguments
            correlation_token: Progress token from the request metadata

        Returns:
            Content, StructuredResult or ErrorText
        """
        request = InvocationRequest(
            kind=CapabilityKind(kind),
            capability_name=name,
            arguments=dict(arguments or {}),
            correlation_token=correlation_token,
        )
        return await self.dispatch_request(request)

    async def dispatch_request(self, request: InvocationRequest) -> InvocationResult:
        try:
            descriptor = self.registry.require(request.kind, request.capability_name)
        except CapabilityNotFound as e:
            logger.warning(str(e))
            return ErrorText(str(e))
        return await self.dispatch_descriptor(descriptor, request)

    async def dispatch_descriptor(
        self, descriptor: CapabilityDescriptor, request: InvocationRequest
    ) -> InvocationResult:
        """Bind, invoke and convert for an already resolved descriptor."""
        try:
            bound = self.binder.bind(descriptor, request)
        except BindingError as e:
            logger.warning(f"Rejected {descriptor.kind} '{descriptor.name}': {e}")
            return ErrorText(str(e))

        logger.debug(
            f"Invoking {descriptor.kind} '{descriptor.name}' with "
            f"{sorted(request.arguments)} (token: {request.correlation_token!r})"
        )

        try:
            value = await _invoke(descriptor, bound.as_kwargs())
        except Exception as e:
            error = InvocationError(descriptor.name, e)
            logger.exception(f"{descriptor.kind} '{descriptor.name}' failed: {error}")
            return ErrorText(str(error))

        try:
            result = classify_result(descriptor, value)
        except Exception as e:
            logger.exception(f"{descriptor.kind} '{descriptor.name}' returned an unconvertible result")
            return ErrorText(
                f"{descriptor.kind.value.capitalize()} '{descriptor.name}' returned an "
                f"unconvertible result: {describe_exception(e)}"
            )

        if result.is_error:
            logger.warning(f"{descriptor.kind} '{descriptor.name}': {result.message}")
        return result

    def dispatch_sync(
        self,
        kind: CapabilityKind,
        name: str,
        arguments: Optional[Mapping[str, Any]] = None,
        correlation_token: Optional[Union[str, int]] = None,
    ) -> InvocationResult:
        """
        Blocking variant of ``dispatch`` for callers without an event loop.

        Raises:
            RuntimeError: If called from a running event loop
        """
        return asyncio.run(self.dispatch(kind, name, arguments, correlation_token))


async def _invoke(descriptor: CapabilityDescriptor, kwargs: Mapping[str, Any]) -> Any:
    handler = descriptor.handler
    if inspect.iscoroutinefunction(handler):
        return await handler(**kwargs)

    value = await asyncio.to_thread(handler, **kwargs)
    if inspect.isawaitable(value):
        value = await value
    return value
