"""
Immutable descriptors for Tool, Prompt and Resource capabilities.

A descriptor carries the static metadata of one capability plus the
handler reference used to invoke it. The input schema is derived once at
construction and cached on the instance; changing the parameter list means
building a new descriptor.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple

from pydantic import AnyUrl, TypeAdapter, ValidationError

from mcp_inject.errors import InvalidDescriptor

if TYPE_CHECKING:
    from .notifications import Notifier
    from .schema import Schema


class CapabilityKind(str, Enum):
    """Kinds of capability an MCP server exposes."""

    TOOL = "tool"
    PROMPT = "prompt"
    RESOURCE = "resource"

    def __str__(self) -> str:
        return self.value


class SemanticType(str, Enum):
    """JSON-level type of a parameter as advertised in the input schema."""

    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    ARRAY = "array"
    OBJECT = "object"

    def __str__(self) -> str:
        return self.value


_URI = TypeAdapter(AnyUrl)

NotifierFactory = Callable[[Optional[str]], Optional["Notifier"]]


@dataclass(frozen=True)
class ParamSpec:
    """
    Declared parameter of a capability handler.

    Attributes:
        name: Parameter name, unique within a descriptor
        description: Human-readable description shown to clients
        required: Whether callers must supply the argument
        hidden: Injected by the framework (notification slot), never
            supplied by callers and never advertised in the schema
        semantic_type: JSON-level type advertised in the schema
        default: Value bound when the argument is optional and absent
    """

    name: str
    description: str = ""
    required: bool = True
    hidden: bool = False
    semantic_type: SemanticType = SemanticType.OBJECT
    default: Any = None


@dataclass(frozen=True)
class CapabilityDescriptor:
    """
    Static metadata and handler binding for one capability.

    Attributes:
        kind: Tool, Prompt or Resource
        name: Capability name, unique per kind within a registry
        title: Display title (defaults to name)
        description: Human-readable description (defaults to name)
        params: Ordered parameter declarations
        handler: Callable invoked on dispatch, usually a bound method
        notifier_factory: Optional ``(token) -> Notifier`` used to fill the
            hidden notification slot
        uri: Resource URI (resources only)
        mime_type: Resource MIME type (resources only)
    """

    kind: CapabilityKind
    name: str
    handler: Callable[..., Any]
    title: str = ""
    description: str = ""
    params: Tuple[ParamSpec, ...] = ()
    notifier_factory: Optional[NotifierFactory] = None
    uri: Optional[str] = None
    mime_type: Optional[str] = None
    schema: "Schema" = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        from .schema import build_schema

        if not self.name:
            raise InvalidDescriptor(f"{self.kind} descriptor requires a name")

        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "kind", CapabilityKind(self.kind))
        object.__setattr__(self, "params", tuple(self.params))
        if not self.title:
            object.__setattr__(self, "title", self.name)
        if not self.description:
            object.__setattr__(self, "description", self.name)

        _validate_params(self.name, self.params)

        if self.kind is CapabilityKind.RESOURCE:
            _validate_uri(self.name, self.uri)

        object.__setattr__(self, "schema", build_schema(self.params))

    @property
    def key(self) -> Tuple[CapabilityKind, str]:
        """Registry key: (kind, name)."""
        return (self.kind, self.name)

    @property
    def visible_params(self) -> Tuple[ParamSpec, ...]:
        """Parameters supplied by callers."""
        return tuple(p for p in self.params if not p.hidden)

    @property
    def hidden_param(self) -> Optional[ParamSpec]:
        """The injected notification slot, if the handler declares one."""
        if self.params and self.params[-1].hidden:
            return self.params[-1]
        return None

    def with_name(self, name: str) -> "CapabilityDescriptor":
        """Return a copy registered under a different name."""
        return CapabilityDescriptor(
            kind=self.kind,
            name=name,
            handler=self.handler,
            title="" if self.title == self.name else self.title,
            description="" if self.description == self.name else self.description,
            params=self.params,
            notifier_factory=self.notifier_factory,
            uri=self.uri,
            mime_type=self.mime_type,
        )


def _validate_params(capability: str, params: Tuple[ParamSpec, ...]) -> None:
    seen = set()
    for index, param in enumerate(params):
        if param.name in seen:
            raise InvalidDescriptor(
                f"Duplicate parameter '{param.name}' in '{capability}'"
            )
        seen.add(param.name)

        # Only the trailing parameter may be the injected notification slot
        if param.hidden and index != len(params) - 1:
            raise InvalidDescriptor(
                f"Hidden parameter '{param.name}' in '{capability}' must be "
                "the last declared parameter"
            )


def _validate_uri(capability: str, uri: Optional[str]) -> None:
    if not uri:
        raise InvalidDescriptor(f"Resource '{capability}' requires a uri")
    # Resource contents carry the uri as a pydantic AnyUrl
    try:
        _URI.validate_python(uri)
    except ValidationError:
        raise InvalidDescriptor(
            f"Resource '{capability}' has an invalid uri '{uri}'. "
            "Expected an absolute URI such as 'weather://cities'."
        )
