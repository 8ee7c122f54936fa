"""
Tests for capability discovery.

Tests cover:
- Decorated methods becoming descriptors (tools, prompts, resources)
- Default capability names and descriptions
- Argument metadata and the hidden notifier slot
- Inject filters and notifier builders
- Injector batches and uninjection
"""

from typing import Annotated, List, Optional

import pytest

from mcp_inject.core import CapabilityKind, CapabilityRegistry, DefaultNotifier, Notifier, SemanticType
from mcp_inject.discovery import Argument, Injector, prompt, resource, scan, tool
from mcp_inject.errors import InvalidDescriptor


class Toolbox:
    @tool(name="getWeather", title="Check the weather", description="Current weather")
    def get_weather(self, city: Annotated[str, Argument("The city")], days: int = 1) -> str:
        return f"{city}:{days}"

    @tool()
    def forecast(self, city: str, notifier: Optional[Notifier] = None) -> str:
        """Forecast for a city.

        Longer explanation that is not part of the summary.
        """
        return city

    @prompt(name="report")
    def report(self, city: str, style: Annotated[str, Argument("Tone", required=False)] = "brief"):
        return f"{style} report for {city}"

    @resource("demo://cities", mime_type="application/json")
    def cities(self) -> List[str]:
        return ["Tokyo"]

    def helper(self):
        return "not a capability"


def by_name(result):
    return {(d.kind, d.name): d for d in result.descriptors}


class TestScan:
    """Test scan()."""

    def test_finds_every_decorated_method(self):
        result = scan(Toolbox(), "MyServer")

        assert set(by_name(result)) == {
            (CapabilityKind.TOOL, "getWeather"),
            (CapabilityKind.TOOL, "MyServer_forecast"),
            (CapabilityKind.PROMPT, "report"),
            (CapabilityKind.RESOURCE, "MyServer_cities"),
        }
        assert result.vetoed == []

    def test_default_name_without_server_name(self):
        names = {d.name for d in scan(Toolbox()).descriptors}

        assert "forecast" in names

    def test_tool_metadata(self):
        descriptor = by_name(scan(Toolbox()))[(CapabilityKind.TOOL, "getWeather")]

        assert descriptor.title == "Check the weather"
        assert descriptor.description == "Current weather"
        assert descriptor.schema.to_dict() == {
            "type": "object",
            "properties": {
                "city": {"description": "The city", "type": "string"},
                "days": {"description": "", "type": "number"},
            },
            "required": ["city"],
        }
        assert descriptor.handler("Oslo") == "Oslo:1"

    def test_docstring_summary_is_default_description(self):
        descriptor = by_name(scan(Toolbox()))[(CapabilityKind.TOOL, "forecast")]

        assert descriptor.description == "Forecast for a city."

    def test_trailing_notifier_is_hidden(self):
        descriptor = by_name(scan(Toolbox()))[(CapabilityKind.TOOL, "forecast")]

        assert descriptor.hidden_param.name == "notifier"
        assert list(descriptor.schema.properties) == ["city"]

    def test_notifier_not_last_is_ordinary_argument(self):
        class Odd:
            @tool()
            def odd(self, notifier: Notifier, city: str):
                return city

        descriptor = scan(Odd()).descriptors[0]

        assert descriptor.hidden_param is None
        assert descriptor.schema.to_dict()["properties"]["notifier"]["type"] == "object"

    def test_prompt_arguments(self):
        descriptor = by_name(scan(Toolbox()))[(CapabilityKind.PROMPT, "report")]

        city, style = descriptor.visible_params
        assert (city.description, city.required) == ("city", True)
        assert (style.description, style.required, style.default) == ("Tone", False, "brief")

    def test_explicit_required_overrides_default(self):
        class Strict:
            @tool()
            def strict(self, units: Annotated[str, Argument("Units", required=True)] = "metric"):
                return units

        param = scan(Strict()).descriptors[0].params[0]

        assert param.required is True

    def test_resource_metadata(self):
        descriptor = by_name(scan(Toolbox()))[(CapabilityKind.RESOURCE, "cities")]

        assert descriptor.uri == "demo://cities"
        assert descriptor.mime_type == "application/json"
        assert descriptor.params == ()

    def test_resource_with_required_argument_is_rejected(self):
        class Bad:
            @resource("demo://bad")
            def bad(self, city: str):
                return city

        with pytest.raises(InvalidDescriptor, match="cannot declare required parameters: city"):
            scan(Bad())

    def test_unannotated_parameter_is_object(self):
        class Loose:
            @tool()
            def loose(self, anything):
                return anything

        param = scan(Loose()).descriptors[0].params[0]

        assert param.semantic_type is SemanticType.OBJECT

    def test_stacked_decorators(self):
        class Both:
            @tool(name="hello")
            @prompt(name="hello")
            def hello(self, who: str):
                return f"hello {who}"

        kinds = {d.kind for d in scan(Both()).descriptors}

        assert kinds == {CapabilityKind.TOOL, CapabilityKind.PROMPT}

    def test_subclass_override_is_scanned_once(self):
        class Base:
            @tool(name="ping")
            def ping(self):
                return "base"

        class Child(Base):
            @tool(name="ping")
            def ping(self):
                return "child"

        descriptors = scan(Child()).descriptors

        assert len(descriptors) == 1
        assert descriptors[0].handler() == "child"


class TestFilterAndNotifier:
    """Test InjectFilter and NotifierBuilder support."""

    def test_filter_vetoes_handler(self):
        class Filtered(Toolbox):
            def should_inject(self, function):
                return function.__name__ != "forecast"

        result = scan(Filtered(), "S")

        assert (CapabilityKind.TOOL, "S_forecast") not in by_name(result)
        assert result.vetoed == [(CapabilityKind.TOOL, "S_forecast")]

    def test_explicit_filter_argument(self):
        result = scan(Toolbox(), inject_filter=lambda function: False)

        assert result.descriptors == []
        assert len(result.vetoed) == 4

    def test_notifier_builder_is_used(self):
        class Custom(DefaultNotifier):
            pass

        class Built(Toolbox):
            def build_notifier(self, token):
                return Custom(token, bus=None)

        descriptor = by_name(scan(Built()))[(CapabilityKind.TOOL, "forecast")]

        assert isinstance(descriptor.notifier_factory("t"), Custom)


class TestInjector:
    """Test Injector batches."""

    def test_inject_registers_one_batch(self):
        registry = CapabilityRegistry()
        events = []
        registry.subscribe(events.append)

        Injector("MyServer", registry).inject(Toolbox())

        assert len(registry) == 4
        assert [e.kind for e in events] == [
            CapabilityKind.TOOL, CapabilityKind.PROMPT, CapabilityKind.RESOURCE,
        ]

    def test_inject_reports_vetoes(self):
        class Filtered(Toolbox):
            def should_inject(self, function):
                return function.__name__ == "get_weather"

        registry = CapabilityRegistry()
        events = Injector("S", registry).inject(Filtered())

        assert registry.names(CapabilityKind.TOOL) == ["getWeather"]
        tool_event = next(e for e in events if e.kind is CapabilityKind.TOOL)
        assert tool_event.vetoed == ("S_forecast",)

    def test_uninject_removes_everything(self):
        registry = CapabilityRegistry()
        injector = Injector("S", registry)
        toolbox = Toolbox()
        injector.inject(toolbox)

        injector.uninject(toolbox)

        assert len(registry) == 0

    def test_tracks_injected_objects(self):
        injector = Injector("S", CapabilityRegistry())
        first, second = Toolbox(), Toolbox()

        injector.inject(first)
        injector.inject(second)
        injector.inject(first)
        assert injector.injected == [first, second]

        injector.uninject(first)
        assert injector.injected == [second]

    def test_uninject_ignores_filter(self):
        class Toggle(Toolbox):
            enabled = True

            def should_inject(self, function):
                return self.enabled

        registry = CapabilityRegistry()
        injector = Injector("S", registry)
        toggle = Toggle()
        injector.inject(toggle)
        toggle.enabled = False

        injector.uninject(toggle)

        assert len(registry) == 0
