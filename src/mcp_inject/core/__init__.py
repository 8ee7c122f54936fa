"""
Capability core: descriptors, schemas, binding, dispatch, registry and
notifications. Independent of any transport or discovery mechanism.
"""

from .binding import ArgumentBinder, BoundArguments, InvocationRequest
from .descriptors import CapabilityDescriptor, CapabilityKind, ParamSpec, SemanticType
from .dispatcher import Dispatcher
from .notifications import (
    DefaultNotifier,
    Log,
    NotificationBus,
    NotificationMessage,
    Notifier,
    Observer,
    Progress,
)
from .registry import CapabilitiesChanged, CapabilityRegistry
from .results import Content, ErrorText, InvocationResult, StructuredResult, classify_result
from .schema import PropertySpec, Schema, build_schema, semantic_type_for

__all__ = [
    "ArgumentBinder",
    "BoundArguments",
    "CapabilitiesChanged",
    "CapabilityDescriptor",
    "CapabilityKind",
    "CapabilityRegistry",
    "Content",
    "DefaultNotifier",
    "Dispatcher",
    "ErrorText",
    "InvocationRequest",
    "InvocationResult",
    "Log",
    "NotificationBus",
    "NotificationMessage",
    "Notifier",
    "Observer",
    "ParamSpec",
    "Progress",
    "PropertySpec",
    "Schema",
    "SemanticType",
    "StructuredResult",
    "build_schema",
    "classify_result",
    "semantic_type_for",
]
