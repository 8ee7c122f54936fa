"""
Demo weather server.

Shows the three capability kinds, the hidden notifier slot, an inject filter
and a custom notifier. Run it with ``mcp-inject start`` (the default target).
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Annotated, Callable, Optional

from mcp_inject.core import DefaultNotifier, Notifier
from mcp_inject.discovery import Argument, prompt, resource, tool
from mcp_inject.server import McpServer

logger = logging.getLogger(__name__)

CITIES = ["Tokyo", "Paris", "New York", "Nairobi"]


class WeatherNotifier(DefaultNotifier):
    """Default notifier with an extra ``error`` helper."""

    def error(self, error: str) -> int:
        return self.log({"error": error}, "error")


@dataclass(eq=False)
class WeatherServer(McpServer):
    """
    Weather lookups exposed over MCP.

    Attributes:
        delay_seconds: Simulated lookup latency
        supports_async_weather: Whether ``getWeatherAsync`` is injected
        on_call: Called with the capability name on every tool call
    """

    name: str = "MyServer"
    version: str = "1.0"
    delay_seconds: float = 4.0
    supports_async_weather: bool = True
    on_call: Optional[Callable[[str], None]] = None

    @tool(
        name="getWeather",
        title="Check the weather",
        description="Retrieves the current weather for a specified city.",
    )
    def get_weather(
        self, city: Annotated[str, Argument("The name of the city to fetch weather for.")]
    ) -> str:
        self._called("getWeather")
        time.sleep(self.delay_seconds)
        return json.dumps({"city": city, "weather": "Sunny", "temperature": 25, "humidity": 60})

    @tool(
        name="getWeatherAsync",
        description=(
            "Asynchronously retrieves the weather for a city. "
            "This method returns immediately and performs the operation in the background. "
            "Once complete, the result is sent to the client via notifications."
        ),
    )
    def get_weather_async(self, city: str, notifier: Optional[Notifier] = None) -> str:
        self._called("getWeatherAsync")

        # Progress needs a client-supplied progress token
        if isinstance(notifier, DefaultNotifier) and notifier.token is not None:
            for index in range(1, 100):
                notifier.progress(index, total=100, message=f"Processing weather request for {city}...")

        if notifier is not None:
            timer = threading.Timer(
                self.delay_seconds / 2,
                notifier.message,
                args=(f"Weather data for {city} is ready.",),
            )
            timer.daemon = True
            timer.start()

        return f"Weather request initiated for {city}"

    @prompt(name="weatherReport", description="Ask for a short weather report.")
    def weather_report(
        self, city: Annotated[str, Argument("City to report on")], style: str = "brief"
    ) -> str:
        return f"Write a {style} weather report for {city}."

    @resource("weather://cities", mime_type="application/json", name="cities")
    def cities(self) -> str:
        """Cities with weather data."""
        return json.dumps(CITIES)

    def should_inject(self, function: Callable) -> bool:
        """Leave ``getWeatherAsync`` out unless async weather is supported."""
        if getattr(function, "__name__", "") == "get_weather_async":
            return self.supports_async_weather
        return True

    def build_notifier(self, token: Optional[str]) -> Optional[Notifier]:
        return WeatherNotifier(token, self.bus)

    def _called(self, name: str) -> None:
        logger.debug(f"Function called: {name}")
        if self.on_call is not None:
            self.on_call(name)
