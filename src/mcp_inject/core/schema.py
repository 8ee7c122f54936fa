"""Input schema derivation from a descriptor's parameter list."""

import collections.abc
import numbers
import typing
from dataclasses import dataclass
from types import MappingProxyType, UnionType
from typing import Any, Dict, Iterable, Mapping, Tuple, Union, get_args, get_origin

from .descriptors import ParamSpec, SemanticType


_ARRAY_TYPES = (list, tuple, set, frozenset)


@dataclass(frozen=True)
class PropertySpec:
    """One advertised input property."""

    description: str
    semantic_type: SemanticType

    def to_dict(self) -> Dict[str, str]:
        return {"description": self.description, "type": self.semantic_type.value}


@dataclass(frozen=True)
class Schema:
    """
    Declared shape of a capability's input arguments.

    Attributes:
        properties: Parameter name -> property, in declaration order
        required: Names of properties callers must supply
    """

    properties: Mapping[str, PropertySpec]
    required: frozenset

    def to_dict(self) -> Dict[str, Any]:
        """Serialize as an MCP ``inputSchema`` object."""
        return {
            "type": "object",
            "properties": {
                name: prop.to_dict() for name, prop in self.properties.items()
            },
            "required": [name for name in self.properties if name in self.required],
        }


def build_schema(params: Iterable[ParamSpec]) -> Schema:
    """
    Build the input schema for a parameter list.

    Hidden parameters are left out of both ``properties`` and ``required``.
    The same parameter list always yields an equal schema.

    Args:
        params: Parameter declarations in handler order

    Returns:
        Schema with one property per non-hidden parameter
    """
    properties: Dict[str, PropertySpec] = {}
    required = set()

    for param in params:
        if param.hidden:
            continue
        properties[param.name] = PropertySpec(
            description=param.description,
            semantic_type=SemanticType(param.semantic_type),
        )
        if param.required:
            required.add(param.name)

    return Schema(properties=MappingProxyType(properties), required=frozenset(required))


def semantic_type_for(annotation: Any) -> SemanticType:
    """
    Map a Python annotation to the JSON-level type advertised to clients.

    The mapping is total: anything not recognised is an ``object``.
    """
    annotation = unwrap_annotation(annotation)

    if isinstance(annotation, str):
        return _semantic_type_for_name(annotation)

    origin = get_origin(annotation)
    if origin is not None:
        if isinstance(origin, type) and issubclass(origin, _ARRAY_TYPES):
            return SemanticType.ARRAY
        if origin in (collections.abc.Sequence, collections.abc.MutableSequence,
                      collections.abc.Set, collections.abc.MutableSet):
            return SemanticType.ARRAY
        return SemanticType.OBJECT

    if not isinstance(annotation, type):
        return SemanticType.OBJECT

    # bool before number: bool is a subclass of int
    if issubclass(annotation, str):
        return SemanticType.STRING
    if issubclass(annotation, bool):
        return SemanticType.BOOLEAN
    if issubclass(annotation, numbers.Number):
        return SemanticType.NUMBER
    if issubclass(annotation, _ARRAY_TYPES):
        return SemanticType.ARRAY
    return SemanticType.OBJECT


def unwrap_annotation(annotation: Any) -> Any:
    """Unwrap ``Annotated[T, ...]`` and ``Optional[T]`` down to ``T``."""
    while True:
        origin = get_origin(annotation)
        if origin is typing.Annotated:
            annotation = get_args(annotation)[0]
            continue
        if origin is Union or origin is UnionType:
            members: Tuple[Any, ...] = tuple(
                arg for arg in get_args(annotation) if arg is not type(None)
            )
            if len(members) == 1:
                annotation = members[0]
                continue
        return annotation


_NAMED_TYPES = {
    "str": SemanticType.STRING,
    "bool": SemanticType.BOOLEAN,
    "int": SemanticType.NUMBER,
    "float": SemanticType.NUMBER,
    "complex": SemanticType.NUMBER,
    "Decimal": SemanticType.NUMBER,
    "list": SemanticType.ARRAY,
    "tuple": SemanticType.ARRAY,
    "set": SemanticType.ARRAY,
    "frozenset": SemanticType.ARRAY,
    "List": SemanticType.ARRAY,
    "Tuple": SemanticType.ARRAY,
    "Set": SemanticType.ARRAY,
    "Sequence": SemanticType.ARRAY,
}


def _semantic_type_for_name(name: str) -> SemanticType:
    # String annotations that could not be resolved (forward references)
    base = name.replace("Optional[", "").rstrip("]").split("[", 1)[0].strip()
    return _NAMED_TYPES.get(base, SemanticType.OBJECT)
