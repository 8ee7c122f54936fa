"""
Argument binding: maps request arguments onto a handler's parameters.

Binding walks the descriptor's parameters in declaration order. The hidden
notification slot (always the trailing parameter) is filled by the
framework; every other parameter is looked up in the request arguments and
coerced to its declared semantic type. Binding fails only when a required
argument is missing.
"""

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from mcp_inject.errors import BindingError

from .descriptors import CapabilityDescriptor, CapabilityKind, ParamSpec, SemanticType
from .notifications import DefaultNotifier, NotificationBus, Notifier

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off"}


@dataclass(frozen=True)
class InvocationRequest:
    """
    One inbound request for a capability.

    Attributes:
        kind: Capability kind being requested
        capability_name: Registered capability name
        arguments: Caller-supplied arguments by name
        correlation_token: Progress token used to route progress notifications
    """

    kind: CapabilityKind
    capability_name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)
    correlation_token: Optional[Union[str, int]] = None


@dataclass
class BoundArguments:
    """Handler arguments in declaration order."""

    values: "OrderedDict[str, Any]" = field(default_factory=OrderedDict)

    def as_kwargs(self) -> Dict[str, Any]:
        return dict(self.values)

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def __len__(self) -> int:
        return len(self.values)


class ArgumentBinder:
    """
    Binds request arguments to a descriptor's parameters.

    Args:
        bus: Bus used by default notifiers created for the hidden slot
    """

    def __init__(self, bus: NotificationBus):
        self.bus = bus

    def bind(self, descriptor: CapabilityDescriptor, request: InvocationRequest) -> BoundArguments:
        """
        Bind a request's arguments for a descriptor.

        Args:
            descriptor: Capability being invoked
            request: Inbound request

        Returns:
            BoundArguments in declaration order

        Raises:
            BindingError: If a required, non-hidden argument is absent
        """
        arguments = request.arguments or {}
        bound = BoundArguments()

        for param in descriptor.params:
            if param.hidden:
                bound.values[param.name] = self.resolve_notifier(descriptor, request.correlation_token)
                continue

            if param.name in arguments and arguments[param.name] is not None:
                bound.values[param.name] = coerce_argument(param, arguments[param.name])
            elif param.required:
                raise BindingError(param.name, descriptor.name)
            else:
                bound.values[param.name] = param.default

        return bound

    def resolve_notifier(self, descriptor: CapabilityDescriptor,
                         token: Optional[Union[str, int]]) -> Notifier:
        """Build the notifier injected into a handler's hidden slot."""
        notifier = None
        if descriptor.notifier_factory is not None:
            notifier = descriptor.notifier_factory(token)
        if notifier is None:
            notifier = DefaultNotifier(token, self.bus)
        return notifier


def coerce_argument(param: ParamSpec, value: Any) -> Any:
    """
    Coerce a raw argument value to the parameter's semantic type.

    Values that cannot be coerced are returned unchanged: a conversion
    problem is left for the handler to report.
    """
    semantic_type = SemanticType(param.semantic_type)

    if semantic_type is SemanticType.STRING:
        if isinstance(value, str):
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)

    if semantic_type is SemanticType.NUMBER:
        if isinstance(value, str):
            return _parse_number(value)
        if isinstance(value, bool):
            return int(value)
        return value

    if semantic_type is SemanticType.BOOLEAN:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return bool(value)
        return value

    if semantic_type is SemanticType.ARRAY:
        if isinstance(value, str):
            decoded = _parse_json(value)
            return decoded if isinstance(decoded, list) else value
        if isinstance(value, (tuple, set, frozenset)):
            return list(value)
        return value

    if isinstance(value, str):
        decoded = _parse_json(value)
        return decoded if isinstance(decoded, dict) else value
    return value


def _parse_number(text: str) -> Any:
    stripped = text.strip()
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        return float(stripped)
    except ValueError:
        logger.debug(f"Could not coerce '{text}' to a number")
        return text


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
