"""
PairChat client for pairing and encrypted messaging over a broadcast channel.

The PairChatClient provides a high-level API for announcing an identity,
pairing with a peer, and exchanging encrypted messages on a transport that
delivers every message to every listener.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from .crypto import encrypt_payload
from .dispatcher import BroadcastDispatcher, EncryptedListener, ListenerRegistry, MessageCallback
from .envelope import encode_envelope
from .handshake import (
    ChannelOpener,
    ChannelOpeningListener,
    PairedCallback,
    build_pairing_request,
)
from .identity import IdentityKeyManager
from .keys import coerce_public_key
from .models import MessageEnvelope, MessageTarget, PairingRequest
from .session import SessionCache, SessionRole, derive_session
from .transport import BroadcastTransport, EndpointDirectory
from .types import InvalidPublicKeyError, SessionKeys

logger = logging.getLogger(__name__)


@dataclass
class PairChatConfig:
    """Configuration for a PairChat client."""

    name: str
    """Name announced to peers in the PairingRequest."""

    side: MessageTarget = MessageTarget.PAGE
    """The side of the channel this client listens on."""

    cache_sessions: bool = True
    """Memoize derived sessions per peer."""

    debug: bool = False
    """Log payload-level details."""

    @property
    def counterpart(self) -> MessageTarget:
        """The side this client sends to."""
        return self.side.counterpart


def _peer_id(public_key: Union[str, bytes]) -> Optional[str]:
    try:
        return coerce_public_key(public_key).hex()
    except InvalidPublicKeyError:
        return None


class PairChatClient:
    """
    High-level client for PairChat.

    The PairChatClient provides methods for:
    - Opening a channel to a peer whose public key is known
    - Announcing ourselves and waiting for a peer to open a channel
    - Sending encrypted messages to a paired peer
    - Listening for encrypted messages from a paired peer

    Example usage:
        ```python
        channel = InMemoryBroadcastChannel()
        client = PairChatClient(
            PairChatConfig(name="My DApp"),
            IdentityKeyManager.generate(),
            channel,
        )

        # Wait for a wallet to pair with us
        listener = await client.listen_for_channel_opening(on_paired)

        # Exchange messages
        await client.listen_for_encrypted_message(peer_key, print)
        await client.send_message(peer_key, "Hello!")
        ```
    """

    def __init__(
        self,
        config: PairChatConfig,
        identity: IdentityKeyManager,
        transport: BroadcastTransport,
        endpoints: Optional[EndpointDirectory] = None,
    ) -> None:
        """
        Initialize the PairChat client.

        Args:
            config: Client configuration.
            identity: Holder of our long-term key pair.
            transport: The broadcast channel.
            endpoints: Optional directory of destinations for channel opening.
        """
        self.config = config
        self.identity = identity
        self.transport = transport
        self.endpoints = endpoints
        self.registry = ListenerRegistry()
        self.dispatcher = BroadcastDispatcher(
            transport, config.side, self.registry, name=config.name
        )
        self._sessions: Optional[SessionCache] = None
        self._channel_listeners: list[ChannelOpeningListener] = []

    @property
    def name(self) -> str:
        """The name announced to peers."""
        return self.config.name

    async def start(self) -> None:
        """Readiness hook. The crypto backend needs no initialization."""
        logger.debug("[%s] client started on %s", self.name, self.config.side.value)

    # MARK: - Identity

    async def get_public_key(self) -> str:
        """Our public key as hex."""
        return self.identity.public_key_hex()

    async def get_public_key_hash(self) -> str:
        """BLAKE2b-256 fingerprint of our public key."""
        return self.identity.public_key_hash()

    async def get_handshake_info(self) -> PairingRequest:
        """The PairingRequest we announce to peers."""
        return build_pairing_request(self.identity, self.name)

    # MARK: - Sessions

    def _session(self, peer_public_key: Union[str, bytes], role: SessionRole) -> SessionKeys:
        key_pair = self.identity.require_key_pair()
        if not self.config.cache_sessions:
            return derive_session(key_pair, peer_public_key, role)

        if self._sessions is None:
            self._sessions = SessionCache(key_pair)
        return self._sessions.get_or_derive(peer_public_key, role)

    # MARK: - Encrypted Messaging

    async def send_message(self, peer_public_key: Union[str, bytes], message: str) -> None:
        """
        Encrypt a message for a peer and broadcast it.

        Fire-and-forget: no acknowledgement is awaited.

        Raises:
            MissingIdentityError: If no key pair is held.
            InvalidPublicKeyError: If the peer key is invalid.
        """
        session = self._session(peer_public_key, SessionRole.INITIATOR)
        payload = encrypt_payload(message, session.tx)

        envelope = MessageEnvelope(target=self.config.counterpart, payload=payload.hex())
        if self.config.debug:
            logger.debug("[%s] sending %d byte payload", self.name, len(payload))
        await self.transport.broadcast(encode_envelope(envelope))

    async def listen_for_encrypted_message(
        self,
        peer_public_key: Union[str, bytes],
        on_message: MessageCallback,
    ) -> None:
        """
        Forward every message from a peer that decrypts under our session.

        A second call for the same peer replaces the previous callback.

        Raises:
            MissingIdentityError: If no key pair is held.
            InvalidPublicKeyError: If the peer key is invalid.
        """
        session = self._session(peer_public_key, SessionRole.RESPONDER)
        peer = coerce_public_key(peer_public_key).hex()

        self.registry.add(EncryptedListener(peer_public_key=peer, rx_key=session.rx, callback=on_message))
        self.dispatcher.ensure_subscribed()
        logger.info("[%s] listening for messages from %s", self.name, peer[:16])

    async def unsubscribe_from_encrypted_message(self, peer_public_key: Union[str, bytes]) -> None:
        """Stop forwarding messages from one peer. No-op if not listening."""
        peer = _peer_id(peer_public_key)
        if peer is None or self.registry.remove(peer) is None:
            return

        if self._sessions is not None:
            self._sessions.invalidate(peer)
        logger.info("[%s] unsubscribed from %s", self.name, peer[:16])

    async def unsubscribe_from_encrypted_messages(self) -> None:
        """Stop forwarding messages from all peers."""
        self.registry.clear()
        if self._sessions is not None:
            self._sessions.clear()

    # MARK: - Pairing

    async def open_channel(self, peer_public_key: Union[str, bytes]) -> MessageEnvelope:
        """
        Send our identity, sealed for the peer, to everyone on the channel.

        Raises:
            MissingIdentityError: If no key pair is held.
            InvalidPublicKeyError: If the peer key is invalid.
        """
        opener = ChannelOpener(
            self.identity,
            self.transport,
            self.config.counterpart,
            self.name,
            endpoints=self.endpoints,
        )
        return await opener.open_channel(peer_public_key)

    async def listen_for_channel_opening(
        self,
        on_paired: Optional[PairedCallback] = None,
    ) -> ChannelOpeningListener:
        """
        Announce our identity and wait for a peer to open a channel.

        The returned listener can be closed, or awaited with a timeout:
        `await asyncio.wait_for(listener.wait_paired(), 60)`.

        Raises:
            MissingIdentityError: If no key pair is held.
        """
        listener = ChannelOpeningListener(
            self.identity,
            self.transport,
            self.config.side,
            self.name,
            on_paired=on_paired,
            debug=self.config.debug,
        )
        await listener.start()

        self._channel_listeners = [
            existing for existing in self._channel_listeners if not existing.is_terminal
        ]
        self._channel_listeners.append(listener)
        return listener

    # MARK: - Teardown

    async def close(self) -> None:
        """Drop every transport subscription held by this client."""
        for listener in self._channel_listeners:
            listener.close()
        self._channel_listeners.clear()
        self.dispatcher.close()
