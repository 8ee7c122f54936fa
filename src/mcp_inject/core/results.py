"""
Invocation results and their conversion to MCP protocol objects.

Every dispatch produces exactly one of:

- ``Content``: one or more content items built from the handler's return value
- ``StructuredResult``: a protocol-native result object returned as-is
- ``ErrorText``: a descriptive, non-empty error message

The classification of a handler's return value happens once, in
``classify_result``, at the dispatch boundary.
"""

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from mcp.types import (
    AudioContent,
    BlobResourceContents,
    CallToolResult,
    EmbeddedResource,
    GetPromptResult,
    ImageContent,
    PromptMessage,
    ReadResourceResult,
    TextContent,
    TextResourceContents,
)

from .descriptors import CapabilityDescriptor, CapabilityKind

CONTENT_TYPES = (TextContent, ImageContent, AudioContent, EmbeddedResource)
RESOURCE_CONTENT_TYPES = (TextResourceContents, BlobResourceContents)
NATIVE_RESULTS = {
    CapabilityKind.TOOL: CallToolResult,
    CapabilityKind.PROMPT: GetPromptResult,
    CapabilityKind.RESOURCE: ReadResourceResult,
}

NO_RESULT_MESSAGES = {
    CapabilityKind.TOOL: "Tool '{name}' returned no result",
    CapabilityKind.PROMPT: "Prompt '{name}' returned no messages",
    CapabilityKind.RESOURCE: "Resource '{name}' returned no contents",
}


def _dump(model: Any) -> Any:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class Content:
    """Content items converted from a handler's return value."""

    items: Tuple[Any, ...]
    is_error = False

    def to_payload(self) -> List[Dict[str, Any]]:
        return [_dump(item) for item in self.items]

    def to_tool_result(self) -> CallToolResult:
        return CallToolResult(content=list(self.items), isError=False)

    def to_prompt_result(self, description: Optional[str] = None) -> GetPromptResult:
        return GetPromptResult(description=description, messages=list(self.items))

    def to_resource_result(self, uri: str, mime_type: Optional[str] = None) -> ReadResourceResult:
        return ReadResourceResult(contents=list(self.items))


@dataclass(frozen=True)
class StructuredResult:
    """A protocol-native result object, passed through unchanged."""

    value: Union[CallToolResult, GetPromptResult, ReadResourceResult]
    is_error = False

    def to_payload(self) -> Dict[str, Any]:
        return _dump(self.value)

    def to_tool_result(self) -> CallToolResult:
        return self.value

    def to_prompt_result(self, description: Optional[str] = None) -> GetPromptResult:
        return self.value

    def to_resource_result(self, uri: str, mime_type: Optional[str] = None) -> ReadResourceResult:
        return self.value


@dataclass(frozen=True)
class ErrorText:
    """A failure surfaced to the remote caller as error content."""

    message: str
    is_error = True

    def __post_init__(self):
        if not self.message:
            object.__setattr__(self, "message", "Unknown error")

    def to_payload(self) -> List[Dict[str, Any]]:
        return [{"type": "text", "text": self.message}]

    def to_tool_result(self) -> CallToolResult:
        return CallToolResult(content=[TextContent(type="text", text=self.message)], isError=True)

    def to_prompt_result(self, description: Optional[str] = None) -> GetPromptResult:
        return GetPromptResult(
            description="error",
            messages=[
                PromptMessage(role="assistant", content=TextContent(type="text", text=self.message))
            ],
        )

    def to_resource_result(self, uri: str, mime_type: Optional[str] = None) -> ReadResourceResult:
        return ReadResourceResult(
            contents=[TextResourceContents(uri=uri, mimeType="text/plain", text=self.message)]
        )


InvocationResult = Union[Content, StructuredResult, ErrorText]


def classify_result(descriptor: CapabilityDescriptor, value: Any) -> InvocationResult:
    """
    Turn a handler's return value into an invocation result.

    - a protocol-native result for the descriptor's kind passes through
    - a list or tuple becomes one content item per (non-null) element
    - any other non-null value becomes a single content item
    - ``None`` (or an empty conversion) becomes a descriptive ``ErrorText``
    """
    if value is None:
        return ErrorText(NO_RESULT_MESSAGES[descriptor.kind].format(name=descriptor.name))

    if isinstance(value, NATIVE_RESULTS[descriptor.kind]):
        return StructuredResult(value)

    if isinstance(value, (list, tuple)):
        items = tuple(
            to_content_item(descriptor, element) for element in value if element is not None
        )
    else:
        items = (to_content_item(descriptor, value),)

    if not items:
        return ErrorText(NO_RESULT_MESSAGES[descriptor.kind].format(name=descriptor.name))
    return Content(items)


def to_content_item(descriptor: CapabilityDescriptor, value: Any) -> Any:
    """Convert a single value into the content item shape for the descriptor's kind."""
    if descriptor.kind is CapabilityKind.PROMPT:
        return to_prompt_message(value)
    if descriptor.kind is CapabilityKind.RESOURCE:
        return to_resource_contents(value, descriptor.uri, descriptor.mime_type)
    return to_content_block(value)


def to_content_block(value: Any) -> Any:
    if isinstance(value, CONTENT_TYPES):
        return value
    return TextContent(type="text", text=render_text(value))


def to_prompt_message(value: Any) -> PromptMessage:
    if isinstance(value, PromptMessage):
        return value
    return PromptMessage(role="assistant", content=to_content_block(value))


def to_resource_contents(value: Any, uri: str, mime_type: Optional[str]) -> Any:
    if isinstance(value, RESOURCE_CONTENT_TYPES):
        return value
    return TextResourceContents(uri=uri, mimeType=mime_type, text=render_text(value))


def render_text(value: Any) -> str:
    """Render a primitive or container value as text."""
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (bool, int, float)):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, indent=2, default=str)
    return str(value)
