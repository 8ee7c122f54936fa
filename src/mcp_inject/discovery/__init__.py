"""
Handler discovery: decorators plus the scanner that turns decorated
methods into capability descriptors.
"""

from .decorators import Argument, CapabilityMeta, capability_meta, prompt, resource, tool
from .scanner import (
    InjectFilter,
    Injector,
    NotifierBuilder,
    ScanResult,
    build_descriptor,
    default_capability_name,
    describe_parameters,
    scan,
)

__all__ = [
    "Argument",
    "CapabilityMeta",
    "InjectFilter",
    "Injector",
    "NotifierBuilder",
    "ScanResult",
    "build_descriptor",
    "capability_meta",
    "default_capability_name",
    "describe_parameters",
    "prompt",
    "resource",
    "scan",
    "tool",
]
