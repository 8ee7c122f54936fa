"""
Notification fan-out for progress and log messages.

Handlers report progress and log messages through a ``Notifier``. The
notifier publishes onto a ``NotificationBus``, which delivers each message
synchronously, in registration order, to every registered observer
(typically one per running server instance).

The bus holds weak references only: observer lifetime is managed by
whoever registers it. The observer list is a copy-on-write tuple, so the
lock is never held while observers run and a slow observer cannot block
registration changes.
"""

import logging
import threading
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable

from mcp_inject.errors import MissingCorrelationToken

logger = logging.getLogger(__name__)

# MCP LoggingLevel values, in increasing severity
LOG_LEVELS: Tuple[str, ...] = (
    "debug",
    "info",
    "notice",
    "warning",
    "error",
    "critical",
    "alert",
    "emergency",
)

DEFAULT_LOGGER_NAME = "mcp_inject"


@dataclass(frozen=True)
class Progress:
    """Progress update for a long-running request."""

    value: float
    total: Optional[float]
    message: Optional[str]
    token: Union[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "progress": self.value,
            "total": self.total,
            "message": self.message,
            "token": self.token,
        }


@dataclass(frozen=True)
class Log:
    """Log message forwarded to clients."""

    level: str
    payload: Any
    logger_name: Optional[str] = DEFAULT_LOGGER_NAME

    def __post_init__(self):
        if self.level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{self.level}'. Must be one of: {', '.join(LOG_LEVELS)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "logger": self.logger_name, "data": self.payload}


NotificationMessage = Union[Progress, Log]


@runtime_checkable
class Observer(Protocol):
    """Anything that can receive notification messages."""

    def on_notification(self, message: NotificationMessage) -> None:
        ...


class NotificationBus:
    """
    Fan-out of notification messages to registered observers.

    Example:
        >>> bus = NotificationBus()
        >>> bus.register(server)
        >>> bus.publish(Log(level="info", payload={"message": "ready"}))
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._refs: Tuple[weakref.ReferenceType, ...] = ()

    def register(self, observer: Observer) -> None:
        """Register an observer. Registering the same observer twice is a no-op."""
        with self._lock:
            live = self._live_refs()
            if any(ref() is observer for ref in live):
                self._refs = live
                return
            self._refs = live + (weakref.ref(observer),)
        logger.debug(f"Registered notification observer {observer!r}")

    def unregister(self, observer: Observer) -> None:
        """Unregister an observer. Unknown observers are ignored."""
        with self._lock:
            self._refs = tuple(
                ref for ref in self._live_refs() if ref() is not observer
            )
        logger.debug(f"Unregistered notification observer {observer!r}")

    def publish(self, message: NotificationMessage) -> int:
        """
        Deliver a message to every currently registered observer.

        Delivery is synchronous and follows registration order. Observers
        that want asynchronous handling must offload the work themselves.
        An observer unregistered before its delivery begins is skipped.

        Args:
            message: Progress or Log message

        Returns:
            Number of observers the message was delivered to
        """
        delivered = 0
        for ref in self._refs:
            observer = ref()
            if observer is None or not self._is_registered(observer):
                continue
            try:
                observer.on_notification(message)
                delivered += 1
            except Exception:
                logger.exception(f"Notification observer {observer!r} failed")
        return delivered

    @property
    def observers(self) -> List[Observer]:
        """Currently registered (and still alive) observers, in order."""
        return [obs for obs in (ref() for ref in self._refs) if obs is not None]

    def clear(self) -> None:
        with self._lock:
            self._refs = ()

    def __len__(self) -> int:
        return len(self.observers)

    def _is_registered(self, observer: Observer) -> bool:
        return any(ref() is observer for ref in self._refs)

    def _live_refs(self) -> Tuple[weakref.ReferenceType, ...]:
        return tuple(ref for ref in self._refs if ref() is not None)


class Notifier(ABC):
    """
    Channel a handler uses to report progress and log messages.

    Declare it as the *last* parameter of a handler to have it injected:

        @tool(description="Fetch weather in the background")
        def get_weather_async(self, city: str, notifier: Optional[Notifier] = None):
            notifier.progress(1, 10, f"Looking up {city}")
    """

    def __init__(self, bus: NotificationBus, logger_name: Optional[str] = DEFAULT_LOGGER_NAME):
        self.bus = bus
        self.logger_name = logger_name

    @abstractmethod
    def progress(self, value: float, total: Optional[float] = None,
                 message: Optional[str] = None) -> int:
        """Send a progress notification."""

    def message(self, text: str, level: str = "info") -> int:
        """Send a plain text log message."""
        return self.log({"message": text}, level)

    def log(self, payload: Any, level: str = "info") -> int:
        """Send a structured log message."""
        return self.send(Log(level=level, payload=payload, logger_name=self.logger_name))

    def send(self, message: NotificationMessage) -> int:
        """Publish a message on the bus."""
        return self.bus.publish(message)


class DefaultNotifier(Notifier):
    """
    Notifier keyed by the request's correlation (progress) token.

    Args:
        token: Progress token supplied by the client with the request
        bus: Bus to publish on
        logger_name: Logger name attached to log messages
    """

    def __init__(self, token: Optional[Union[str, int]], bus: NotificationBus,
                 logger_name: Optional[str] = DEFAULT_LOGGER_NAME):
        super().__init__(bus, logger_name)
        self.token = token

    def progress(self, value: float, total: Optional[float] = None,
                 message: Optional[str] = None) -> int:
        """
        Send a progress notification for this request.

        Raises:
            MissingCorrelationToken: If the client supplied no progress token
        """
        if self.token is None or self.token == "":
            raise MissingCorrelationToken()
        return self.send(
            Progress(
                value=float(value),
                total=float(total) if total is not None else None,
                message=message,
                token=self.token,
            )
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(token={self.token!r})"
