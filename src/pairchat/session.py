"""
Session key derivation for PairChat.

Both ends derive a pair of directional keys from their own key pair and the
peer's public key, without transmitting any shared secret:

    q = X25519(own_private, peer_public)
    h = BLAKE2b-512(q || initiator_public || responder_public)

    initiator: rx = h[:32], tx = h[32:]
    responder: tx = h[:32], rx = h[32:]

so the initiator's tx key is the responder's rx key and vice versa.
"""

import hashlib
from enum import Enum
from typing import Union

from .keys import KeyPair, coerce_public_key, x25519_ecdh
from .types import SessionKeys, SESSION_KEY_SIZE


class SessionRole(Enum):
    """Which end of the key exchange we are."""
    INITIATOR = "initiator"
    RESPONDER = "responder"


def _session_hash(shared_secret: bytes, initiator_pk: bytes, responder_pk: bytes) -> bytes:
    h = hashlib.blake2b(digest_size=2 * SESSION_KEY_SIZE)
    h.update(shared_secret)
    h.update(initiator_pk)
    h.update(responder_pk)
    return h.digest()


def derive_as_initiator(key_pair: KeyPair, peer_public_key: Union[str, bytes]) -> SessionKeys:
    """
    Derive session keys as the initiator (the side that sends first).

    Args:
        key_pair: Our long-term key pair
        peer_public_key: The responder's public key (hex or raw bytes)

    Returns:
        SessionKeys with tx/rx keys

    Raises:
        InvalidPublicKeyError: If the peer key is malformed or low-order
    """
    peer = coerce_public_key(peer_public_key)
    shared = x25519_ecdh(key_pair.private_key, peer)
    h = _session_hash(shared, key_pair.public_key, peer)
    return SessionKeys(tx=h[SESSION_KEY_SIZE:], rx=h[:SESSION_KEY_SIZE])


def derive_as_responder(key_pair: KeyPair, peer_public_key: Union[str, bytes]) -> SessionKeys:
    """
    Derive session keys as the responder.

    Args:
        key_pair: Our long-term key pair
        peer_public_key: The initiator's public key (hex or raw bytes)

    Returns:
        SessionKeys with tx/rx keys

    Raises:
        InvalidPublicKeyError: If the peer key is malformed or low-order
    """
    peer = coerce_public_key(peer_public_key)
    shared = x25519_ecdh(key_pair.private_key, peer)
    h = _session_hash(shared, peer, key_pair.public_key)
    return SessionKeys(tx=h[:SESSION_KEY_SIZE], rx=h[SESSION_KEY_SIZE:])


def derive_session(
    key_pair: KeyPair,
    peer_public_key: Union[str, bytes],
    role: SessionRole,
) -> SessionKeys:
    """Derive session keys for the given role."""
    if role is SessionRole.INITIATOR:
        return derive_as_initiator(key_pair, peer_public_key)
    return derive_as_responder(key_pair, peer_public_key)


class SessionCache:
    """
    Memoization table for derived sessions, keyed by role and peer public key.

    Derivation is pure, so a miss simply computes and stores. Entries are
    only inserted once fully derived.
    """

    def __init__(self, key_pair: KeyPair) -> None:
        self._key_pair = key_pair
        self._cache: dict[tuple[SessionRole, str], SessionKeys] = {}

    def get_or_derive(self, peer_public_key: Union[str, bytes], role: SessionRole) -> SessionKeys:
        """Return the cached session for the peer, deriving it on a miss."""
        peer_hex = coerce_public_key(peer_public_key).hex()
        key = (role, peer_hex)

        cached = self._cache.get(key)
        if cached is not None:
            return cached

        session = derive_session(self._key_pair, peer_hex, role)
        self._cache[key] = session
        return session

    def invalidate(self, peer_public_key: Union[str, bytes]) -> None:
        """Forget both roles' sessions for a peer."""
        peer_hex = coerce_public_key(peer_public_key).hex()
        for role in SessionRole:
            self._cache.pop((role, peer_hex), None)

    def clear(self) -> None:
        """Clear all cached sessions."""
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
