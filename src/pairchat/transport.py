"""Broadcast transport and endpoint directory interfaces and implementations."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

RawMessageHandler = Callable[[Any], Awaitable[None]]


class BroadcastTransport(ABC):
    """
    Interface for an unaddressed broadcast channel.

    Every handler subscribed to the channel receives every broadcast message,
    including the broadcaster's own. Delivery is at-least-once; duplicates
    are possible.
    """

    @abstractmethod
    async def broadcast(self, message: Any) -> None:
        """Place a message on the channel."""
        ...

    @abstractmethod
    def subscribe(self, handler: RawMessageHandler) -> None:
        """Start delivering raw messages to a handler."""
        ...

    @abstractmethod
    def unsubscribe(self, handler: RawMessageHandler) -> None:
        """Stop delivering raw messages to a handler. No-op if not subscribed."""
        ...


class EndpointDirectory(ABC):
    """Interface for enumerating and reaching concrete destinations."""

    @abstractmethod
    async def endpoints(self) -> list[str]:
        """List every reachable destination."""
        ...

    @abstractmethod
    async def send(self, endpoint: str, message: Any) -> None:
        """Deliver a message to one destination."""
        ...


class InMemoryBroadcastChannel(BroadcastTransport):
    """
    In-process broadcast channel.

    Each broadcast is delivered, in order, to every handler subscribed at the
    time of the broadcast. A handler removed mid-broadcast is skipped.
    """

    def __init__(self) -> None:
        self._handlers: list[RawMessageHandler] = []
        self.history: list[Any] = []

    async def broadcast(self, message: Any) -> None:
        """Deliver a message to every subscribed handler."""
        self.history.append(message)
        for handler in list(self._handlers):
            if handler not in self._handlers:
                continue
            try:
                await handler(message)
            except Exception:
                logger.exception("Broadcast handler raised")

    def subscribe(self, handler: RawMessageHandler) -> None:
        """Add a handler."""
        self._handlers.append(handler)

    def unsubscribe(self, handler: RawMessageHandler) -> None:
        """Remove a handler."""
        try:
            self._handlers.remove(handler)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        """Number of subscribed handlers."""
        return len(self._handlers)


class InMemoryEndpointDirectory(EndpointDirectory):
    """
    In-memory implementation of EndpointDirectory (for testing).

    Records every message sent to each endpoint in `delivered`.
    """

    def __init__(self, endpoints: list[str]) -> None:
        self._endpoints = list(endpoints)
        self.delivered: dict[str, list[Any]] = {endpoint: [] for endpoint in self._endpoints}

    async def endpoints(self) -> list[str]:
        """List every reachable destination."""
        return list(self._endpoints)

    async def send(self, endpoint: str, message: Any) -> None:
        """Record a delivery to one destination."""
        self.delivered.setdefault(endpoint, []).append(message)
