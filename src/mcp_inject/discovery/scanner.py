"""
Capability discovery: turns decorated methods into descriptors.

``scan`` inspects an object's class for methods decorated with ``@tool``,
``@prompt`` or ``@resource`` and builds one ``CapabilityDescriptor`` per
decoration, bound to the instance. ``Injector`` feeds scan results into a
registry, one batch per object.
"""

import inspect
import logging
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from mcp_inject.core.descriptors import (
    CapabilityDescriptor,
    CapabilityKind,
    NotifierFactory,
    ParamSpec,
)
from mcp_inject.core.notifications import Notifier
from mcp_inject.core.registry import CapabilitiesChanged, CapabilityRegistry
from mcp_inject.core.schema import semantic_type_for, unwrap_annotation
from mcp_inject.errors import InvalidDescriptor

from .decorators import Argument, CapabilityMeta, capability_meta

logger = logging.getLogger(__name__)

InjectFilterFunc = Callable[[Callable[..., Any]], bool]


@runtime_checkable
class InjectFilter(Protocol):
    """Objects implementing this decide which of their handlers get injected."""

    def should_inject(self, function: Callable[..., Any]) -> bool:
        ...


@runtime_checkable
class NotifierBuilder(Protocol):
    """Objects implementing this supply the notifier injected into their handlers."""

    def build_notifier(self, token: Optional[str]) -> Optional[Notifier]:
        ...


@dataclass
class ScanResult:
    """
    Outcome of scanning one object.

    Attributes:
        descriptors: Descriptors built for accepted handlers
        vetoed: (kind, capability name) pairs rejected by the inject filter
    """

    descriptors: List[CapabilityDescriptor] = field(default_factory=list)
    vetoed: List[Tuple[CapabilityKind, str]] = field(default_factory=list)


def default_capability_name(server_name: str, handler_name: str) -> str:
    """Name used when a decoration does not set one: ``<server>_<handler>``."""
    if not server_name:
        return handler_name
    return f"{server_name}_{handler_name}"


def scan(
    instance: Any,
    server_name: str = "",
    inject_filter: Optional[InjectFilterFunc] = None,
    notifier_factory: Optional[NotifierFactory] = None,
    apply_filter: bool = True,
) -> ScanResult:
    """
    Build descriptors for every decorated method of an object.

    If ``inject_filter`` / ``notifier_factory`` are not given and the object
    implements ``InjectFilter`` / ``NotifierBuilder``, its own methods are
    used.

    Args:
        instance: Object whose decorated methods become capabilities
        server_name: Prefix for default capability names
        inject_filter: Predicate vetoing individual handlers
        notifier_factory: Factory for the hidden notifier slot
        apply_filter: Set False to skip filtering (used when uninjecting)

    Returns:
        ScanResult with descriptors and vetoed handlers

    Raises:
        InvalidDescriptor: If a decorated method cannot be described
    """
    if inject_filter is None and isinstance(instance, InjectFilter):
        inject_filter = instance.should_inject
    if notifier_factory is None and isinstance(instance, NotifierBuilder):
        notifier_factory = instance.build_notifier

    result = ScanResult()
    for attr_name, function, metas in _decorated_members(instance):
        handler = getattr(instance, attr_name)

        for meta in metas:
            name = meta.name or default_capability_name(server_name, function.__name__)

            if apply_filter and inject_filter is not None and not inject_filter(handler):
                logger.info(
                    f"Handler '{function.__name__}' was filtered out by the inject filter "
                    f"({meta.kind} '{name}' not registered)"
                )
                result.vetoed.append((meta.kind, name))
                continue

            result.descriptors.append(
                build_descriptor(meta, name, handler, function, notifier_factory)
            )

    return result


def build_descriptor(
    meta: CapabilityMeta,
    name: str,
    handler: Callable[..., Any],
    function: Callable[..., Any],
    notifier_factory: Optional[NotifierFactory] = None,
) -> CapabilityDescriptor:
    """Build the descriptor for one decoration of one handler."""
    params = describe_parameters(handler, function, meta.kind)

    if meta.kind is CapabilityKind.RESOURCE:
        required = [p.name for p in params if p.required and not p.hidden]
        if required:
            raise InvalidDescriptor(
                f"Resource '{name}' cannot declare required parameters: {', '.join(required)}"
            )

    return CapabilityDescriptor(
        kind=meta.kind,
        name=name,
        handler=handler,
        title=meta.title,
        description=meta.description or _docstring_summary(function),
        params=tuple(params),
        notifier_factory=notifier_factory,
        uri=meta.uri,
        mime_type=meta.mime_type,
    )


def describe_parameters(
    handler: Callable[..., Any], function: Callable[..., Any], kind: CapabilityKind
) -> List[ParamSpec]:
    """
    Describe a handler's parameters.

    Only the trailing parameter may be the hidden notifier slot; a
    ``Notifier`` declared anywhere else is treated as an ordinary argument.
    """
    signature = inspect.signature(handler)
    hints = _type_hints(function)

    parameters = [
        p for p in signature.parameters.values()
        if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]

    specs = []
    for index, parameter in enumerate(parameters):
        annotation = hints.get(parameter.name, parameter.annotation)
        argument = _argument_metadata(annotation)
        has_default = parameter.default is not inspect.Parameter.empty

        if index == len(parameters) - 1 and _is_notifier(annotation):
            specs.append(ParamSpec(name=parameter.name, required=False, hidden=True))
            continue

        required = argument.required if argument.required is not None else not has_default
        description = argument.description
        if not description and kind is CapabilityKind.PROMPT:
            description = parameter.name

        specs.append(
            ParamSpec(
                name=parameter.name,
                description=description,
                required=required,
                semantic_type=semantic_type_for(annotation),
                default=parameter.default if has_default else None,
            )
        )
    return specs


def _decorated_members(instance: Any) -> Iterator[Tuple[str, Callable[..., Any], Tuple[CapabilityMeta, ...]]]:
    """Yield decorated methods in definition order, subclasses first."""
    seen = set()
    for cls in type(instance).__mro__:
        for attr_name, value in vars(cls).items():
            if attr_name in seen:
                continue
            seen.add(attr_name)
            function = getattr(value, "__func__", value)
            if not callable(function):
                continue
            metas = capability_meta(function)
            if metas:
                yield attr_name, function, metas


def _type_hints(function: Callable[..., Any]) -> dict:
    try:
        return typing.get_type_hints(function, include_extras=True)
    except (NameError, TypeError) as e:
        logger.debug(f"Could not resolve annotations of {function.__qualname__}: {e}")
        return {}


def _argument_metadata(annotation: Any) -> Argument:
    if typing.get_origin(annotation) is typing.Annotated:
        for extra in annotation.__metadata__:
            if isinstance(extra, Argument):
                return extra
    return Argument()


def _is_notifier(annotation: Any) -> bool:
    annotation = unwrap_annotation(annotation)
    return isinstance(annotation, type) and issubclass(annotation, Notifier)


def _docstring_summary(function: Callable[..., Any]) -> str:
    doc = inspect.getdoc(function) or ""
    return doc.split("\n\n", 1)[0].replace("\n", " ").strip()


class Injector:
    """
    Registers and unregisters an object's capabilities on a registry.

    Args:
        server_name: Prefix for default capability names
        registry: Registry receiving the descriptors
    """

    def __init__(self, server_name: str, registry: CapabilityRegistry):
        self.server_name = server_name
        self.registry = registry
        self._injected: List[Any] = []

    @property
    def injected(self) -> List[Any]:
        """Objects currently injected, in injection order."""
        return list(self._injected)

    def inject(self, obj: Any) -> List[CapabilitiesChanged]:
        """Scan an object and register its capabilities as one batch."""
        result = scan(obj, self.server_name)
        events = self.registry.add(result.descriptors, vetoed=result.vetoed)
        if not any(existing is obj for existing in self._injected):
            self._injected.append(obj)
        return events

    def uninject(self, obj: Any) -> List[CapabilitiesChanged]:
        """Unregister every capability an object declares, filtered or not."""
        result = scan(obj, self.server_name, apply_filter=False)
        self._injected = [existing for existing in self._injected if existing is not obj]
        return self.registry.remove(result.descriptors)
