"""
Pairing handshake for PairChat.

Two flavors, chosen by which side starts:

- ChannelOpener: the initiator already knows the peer's public key. It seals
  its own PairingRequest for that key and broadcasts it. Nothing is awaited.
- ChannelOpeningListener: the responder broadcasts an unsealed PairingRequest
  and listens until a sealed reply for its own key arrives. The first reply
  that opens and parses completes the handshake; everything after that is
  ignored.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from .crypto import seal_for_public_key, open_sealed
from .envelope import (
    encode_envelope,
    extract_envelope,
    payload_to_bytes,
    parse_pairing_response,
    serialize_pairing_request,
)
from .identity import IdentityKeyManager
from .keys import coerce_public_key
from .models import MessageEnvelope, MessageTarget, PairingRequest
from .transport import BroadcastTransport, EndpointDirectory
from .types import MIN_SEALED_SIZE, AuthenticationFailedError, MalformedPayloadError

logger = logging.getLogger(__name__)

PairedCallback = Callable[[dict], Union[None, Awaitable[None]]]


class HandshakeState(Enum):
    """States of both handshake flavors."""
    IDLE = "idle"
    # Flavor A
    SEALING = "sealing"
    BROADCAST = "broadcast"
    DONE = "done"
    FAILED = "failed"
    # Flavor B
    ANNOUNCED = "announced"
    LISTENING = "listening"
    PAIRED = "paired"
    CLOSED = "closed"


def build_pairing_request(identity: IdentityKeyManager, name: str) -> PairingRequest:
    """Build our own PairingRequest. Raises MissingIdentityError without a key pair."""
    return PairingRequest(name=name, public_key=identity.public_key_hex())


class ChannelOpener:
    """Flavor A: seal our identity for a known peer and broadcast it."""

    def __init__(
        self,
        identity: IdentityKeyManager,
        transport: BroadcastTransport,
        target: MessageTarget,
        name: str,
        endpoints: Optional[EndpointDirectory] = None,
    ) -> None:
        self.identity = identity
        self.transport = transport
        self.target = target
        self.name = name
        self.endpoints = endpoints
        self.state = HandshakeState.IDLE

    async def open_channel(self, peer_public_key: Union[str, bytes]) -> MessageEnvelope:
        """
        Send a sealed pairing request to a peer.

        Args:
            peer_public_key: The peer's public key (hex or raw bytes)

        Returns:
            The envelope that was broadcast

        Raises:
            MissingIdentityError: If no key pair is held
            InvalidPublicKeyError: If the peer key is invalid
        """
        if self.state is not HandshakeState.IDLE:
            raise RuntimeError(f"Channel opener already used (state: {self.state.value})")

        request = build_pairing_request(self.identity, self.name)
        peer = coerce_public_key(peer_public_key)

        self.state = HandshakeState.SEALING
        try:
            sealed = seal_for_public_key(serialize_pairing_request(request), peer)
        except Exception:
            self.state = HandshakeState.FAILED
            raise

        envelope = MessageEnvelope(target=self.target, payload=sealed.hex())
        message = encode_envelope(envelope)

        self.state = HandshakeState.BROADCAST
        logger.info("[%s] open channel to %s", self.name, peer.hex()[:16])
        await self.transport.broadcast(message)

        if self.endpoints is not None:
            for endpoint in await self.endpoints.endpoints():
                await self.endpoints.send(endpoint, message)

        self.state = HandshakeState.DONE
        return envelope


class ChannelOpeningListener:
    """
    Flavor B: announce our identity and wait for a sealed reply.

    on_paired fires at most once. The transport subscription is removed in
    the same step that marks the listener PAIRED, before the callback runs,
    so duplicate replies are never evaluated.

    Example usage:
        ```python
        listener = ChannelOpeningListener(identity, transport, MessageTarget.PAGE, "dapp", on_paired)
        await listener.start()
        response = await asyncio.wait_for(listener.wait_paired(), timeout=60)
        ```
    """

    def __init__(
        self,
        identity: IdentityKeyManager,
        transport: BroadcastTransport,
        side: MessageTarget,
        name: str,
        on_paired: Optional[PairedCallback] = None,
        debug: bool = False,
    ) -> None:
        self.identity = identity
        self.transport = transport
        self.side = side
        self.name = name
        self.on_paired = on_paired
        self.debug = debug
        self.state = HandshakeState.IDLE
        self._paired: Optional[asyncio.Future] = None

    @property
    def is_terminal(self) -> bool:
        """Whether the listener has stopped for good."""
        return self.state in (HandshakeState.PAIRED, HandshakeState.CLOSED)

    async def start(self) -> None:
        """
        Subscribe, then broadcast our unsealed PairingRequest.

        Raises:
            MissingIdentityError: If no key pair is held
        """
        if self.state is not HandshakeState.IDLE:
            raise RuntimeError(f"Listener already started (state: {self.state.value})")

        request = build_pairing_request(self.identity, self.name)
        self._paired = asyncio.get_running_loop().create_future()

        # Subscribe first so a fast reply to the announcement is not missed
        self.transport.subscribe(self._handle_raw_message)
        self.state = HandshakeState.ANNOUNCED
        logger.info("[%s] listening for channel opening", self.name)

        announcement = MessageEnvelope(
            target=self.side.counterpart,
            payload=serialize_pairing_request(request),
        )
        await self.transport.broadcast(encode_envelope(announcement))

        if self.state is HandshakeState.ANNOUNCED:
            self.state = HandshakeState.LISTENING

    async def wait_paired(self) -> dict:
        """
        Wait for the pairing response.

        Raises:
            asyncio.CancelledError: If the listener is closed first
        """
        if self._paired is None:
            raise RuntimeError("Listener not started")
        return await asyncio.shield(self._paired)

    def close(self) -> None:
        """Stop listening without pairing. No-op once terminal."""
        if self.is_terminal:
            return
        self.state = HandshakeState.CLOSED
        self.transport.unsubscribe(self._handle_raw_message)
        if self._paired is not None and not self._paired.done():
            self._paired.cancel()
        logger.info("[%s] stopped listening for channel opening", self.name)

    async def _handle_raw_message(self, raw: Any) -> None:
        if self.is_terminal:
            return

        envelope = extract_envelope(raw)
        if envelope is None or not envelope.is_addressed_to(self.side):
            return

        try:
            sealed = payload_to_bytes(envelope.payload)
        except MalformedPayloadError:
            return
        if len(sealed) < MIN_SEALED_SIZE:
            return

        try:
            decrypted = open_sealed(sealed, self.identity.require_key_pair())
        except (AuthenticationFailedError, MalformedPayloadError) as e:
            logger.debug("[%s] channel opening decryption failed: %s", self.name, e)
            return

        try:
            response = parse_pairing_response(decrypted)
        except MalformedPayloadError as e:
            logger.debug("[%s] decrypted channel opening is malformed: %s", self.name, e)
            return

        await self._complete(response)

    async def _complete(self, response: dict) -> None:
        self.state = HandshakeState.PAIRED
        self.transport.unsubscribe(self._handle_raw_message)
        if self._paired is not None and not self._paired.done():
            self._paired.set_result(response)

        if self.debug:
            logger.info("[%s] paired: %s", self.name, response)
        else:
            logger.info("[%s] paired", self.name)

        if self.on_paired is None:
            return
        try:
            result = self.on_paired(response)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("[%s] pairing callback raised", self.name)
