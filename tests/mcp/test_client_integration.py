"""
Integration tests for McpServer with a real FastMCP client.

The client talks to the server's FastMCP app in-process, so the mirrored
tools, prompts and resources go through FastMCP's own validation and
serialization.
"""

import json
from dataclasses import dataclass

import pytest
from fastmcp.client import Client

from mcp_inject.core import CapabilityKind
from mcp_inject.demo import CITIES, WeatherServer
from mcp_inject.discovery import tool


@dataclass(eq=False)
class StationServer(WeatherServer):
    """Weather demo plus a tool whose handler always fails."""

    @tool(name="explode")
    def explode(self) -> str:
        raise RuntimeError("station offline")


@pytest.fixture
def mcp_server():
    """Create a server with its capabilities mirrored into FastMCP."""
    server = StationServer(delay_seconds=0)
    server.prepare()
    yield server
    server.stop()


class TestClientRoundTrip:
    """Drive the server through fastmcp.client.Client."""

    @pytest.mark.asyncio
    async def test_list_tools_advertises_descriptor_schema(self, mcp_server):
        async with Client(mcp_server._app) as client:
            tools = {t.name: t for t in await client.list_tools()}

        assert set(tools) == {"getWeather", "getWeatherAsync", "explode"}
        expected = mcp_server.registry.get(CapabilityKind.TOOL, "getWeather").schema.to_dict()
        assert tools["getWeather"].inputSchema == expected
        assert "notifier" not in tools["getWeatherAsync"].inputSchema["properties"]

    @pytest.mark.asyncio
    async def test_call_tool(self, mcp_server):
        async with Client(mcp_server._app) as client:
            result = await client.call_tool("getWeather", {"city": "Tokyo"})

        assert result.is_error is False
        assert json.loads(result.content[0].text) == {
            "city": "Tokyo", "weather": "Sunny", "temperature": 25, "humidity": 60,
        }

    @pytest.mark.asyncio
    async def test_handler_exception_is_error_content(self, mcp_server):
        async with Client(mcp_server._app) as client:
            result = await client.call_tool("explode", {}, raise_on_error=False)

        assert result.is_error is True
        assert "station offline" in result.content[0].text

    @pytest.mark.asyncio
    async def test_missing_argument_is_error_content(self, mcp_server):
        async with Client(mcp_server._app) as client:
            result = await client.call_tool("getWeather", {}, raise_on_error=False)

        assert result.is_error is True
        assert "Missing required argument 'city'" in result.content[0].text

    @pytest.mark.asyncio
    async def test_get_prompt(self, mcp_server):
        async with Client(mcp_server._app) as client:
            prompts = {p.name: p for p in await client.list_prompts()}
            result = await client.get_prompt("weatherReport", {"city": "Lima"})

        arguments = {a.name: a.required for a in prompts["weatherReport"].arguments}
        assert arguments == {"city": True, "style": False}
        assert result.messages[0].content.text == "Write a brief weather report for Lima."

    @pytest.mark.asyncio
    async def test_read_resource(self, mcp_server):
        async with Client(mcp_server._app) as client:
            contents = await client.read_resource("weather://cities")

        assert json.loads(contents[0].text) == CITIES

    @pytest.mark.asyncio
    async def test_progress_reaches_client(self, mcp_server):
        received = []

        async def on_progress(progress, total, message):
            received.append((progress, total, message))

        async with Client(mcp_server._app) as client:
            result = await client.call_tool(
                "getWeatherAsync", {"city": "Paris"}, progress_handler=on_progress
            )

        assert result.content[0].text == "Weather request initiated for Paris"
        assert 0 < len(received) <= 99
        assert received[0] == (1.0, 100.0, "Processing weather request for Paris...")
        assert [p for p, _, _ in received] == sorted(p for p, _, _ in received)

    @pytest.mark.asyncio
    async def test_uninject_empties_tool_list(self, mcp_server):
        async with Client(mcp_server._app) as client:
            assert len(await client.list_tools()) == 3

            mcp_server.uninject(mcp_server)

            assert await client.list_tools() == []
            assert await client.list_prompts() == []
