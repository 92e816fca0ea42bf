"""
Broadcast dispatcher for PairChat.

The transport carries no peer identity, so every inbound message addressed to
this side is offered to every registered peer listener. Each listener tries to
decrypt with its own session key and only forwards on success.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from .crypto import try_decrypt_payload
from .envelope import extract_envelope, payload_to_bytes
from .models import MessageTarget
from .transport import BroadcastTransport
from .types import MIN_PAYLOAD_SIZE, MalformedPayloadError

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], Union[None, Awaitable[None]]]


@dataclass
class EncryptedListener:
    """A decrypt-and-forward entry for one peer."""
    peer_public_key: str
    rx_key: bytes
    callback: MessageCallback

    async def deliver(self, payload: bytes) -> bool:
        """
        Trial-decrypt a payload and forward it on success.

        Returns:
            True if the payload was for this peer
        """
        plaintext = try_decrypt_payload(payload, self.rx_key)
        if plaintext is None:
            return False

        result = self.callback(plaintext)
        if inspect.isawaitable(result):
            await result
        return True


class ListenerRegistry:
    """
    Peer public key -> EncryptedListener.

    Dispatch iterates a snapshot, so entries may be added or removed while a
    pass is in progress.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, EncryptedListener] = {}

    def add(self, listener: EncryptedListener) -> None:
        """Register a listener, replacing any existing one for the same peer."""
        self._listeners[listener.peer_public_key] = listener

    def remove(self, peer_public_key: str) -> Optional[EncryptedListener]:
        """Remove the listener for a peer. Returns None if absent."""
        return self._listeners.pop(peer_public_key, None)

    def clear(self) -> None:
        """Remove all listeners."""
        self._listeners.clear()

    def get(self, peer_public_key: str) -> Optional[EncryptedListener]:
        """Return the listener for a peer, if registered."""
        return self._listeners.get(peer_public_key)

    def is_active(self, listener: EncryptedListener) -> bool:
        """Whether this exact listener is still registered."""
        return self._listeners.get(listener.peer_public_key) is listener

    def snapshot(self) -> list[EncryptedListener]:
        """Copy of the current listeners."""
        return list(self._listeners.values())

    def __len__(self) -> int:
        return len(self._listeners)


class BroadcastDispatcher:
    """
    Single raw-transport subscription fanning out to per-peer listeners.

    Example usage:
        ```python
        dispatcher = BroadcastDispatcher(transport, MessageTarget.PAGE)
        dispatcher.registry.add(EncryptedListener(peer_hex, session.rx, print))
        dispatcher.ensure_subscribed()
        ```
    """

    def __init__(
        self,
        transport: BroadcastTransport,
        side: MessageTarget,
        registry: Optional[ListenerRegistry] = None,
        name: str = "",
    ) -> None:
        self.transport = transport
        self.side = side
        self.registry = registry if registry is not None else ListenerRegistry()
        self.name = name
        self._subscribed = False

    def ensure_subscribed(self) -> None:
        """Subscribe to the transport once, no matter how many listeners exist."""
        if self._subscribed:
            return
        self.transport.subscribe(self.handle_raw_message)
        self._subscribed = True
        logger.info("[%s] subscribed to %s messages", self.name, self.side.value)

    def close(self) -> None:
        """Drop the transport subscription. Registered listeners are kept."""
        if not self._subscribed:
            return
        self.transport.unsubscribe(self.handle_raw_message)
        self._subscribed = False
        logger.info("[%s] unsubscribed from messages", self.name)

    async def handle_raw_message(self, raw: Any) -> None:
        """Demultiplex one raw transport message."""
        envelope = extract_envelope(raw)
        if envelope is None or not envelope.is_addressed_to(self.side):
            return

        try:
            payload = payload_to_bytes(envelope.payload)
        except MalformedPayloadError:
            logger.debug("[%s] dropping non-hex payload", self.name)
            return

        if len(payload) < MIN_PAYLOAD_SIZE:
            logger.debug("[%s] dropping short payload (%d bytes)", self.name, len(payload))
            return

        await self.dispatch(payload)

    async def dispatch(self, payload: bytes) -> int:
        """
        Offer a payload to every registered listener.

        Returns:
            Number of listeners that accepted it
        """
        accepted = 0
        for listener in self.registry.snapshot():
            # Skip entries unsubscribed earlier in this pass
            if not self.registry.is_active(listener):
                continue
            try:
                if await listener.deliver(payload):
                    accepted += 1
            except Exception:
                logger.exception(
                    "[%s] message callback for %s raised",
                    self.name,
                    listener.peer_public_key[:16],
                )

        if accepted == 0:
            logger.debug("[%s] payload not addressed to any listener", self.name)
        return accepted
