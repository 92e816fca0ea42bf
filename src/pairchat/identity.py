"""
Identity for PairChat.

An IdentityKeyManager holds the long-term X25519 key pair that a client
announces during pairing and uses to derive per-peer session keys.
"""

from typing import Optional

from .keys import KeyPair, generate_keypair, derive_keypair_from_seed, public_key_hash
from .types import MissingIdentityError


class IdentityKeyManager:
    """
    Owner of a long-term key pair.

    The key pair is optional so that a client can be constructed before its
    identity is loaded. Every operation that needs the key pair goes through
    require_key_pair(), which raises MissingIdentityError when it is absent.
    """

    def __init__(self, key_pair: Optional[KeyPair] = None) -> None:
        self._key_pair = key_pair

    @classmethod
    def generate(cls) -> "IdentityKeyManager":
        """Create an identity with a fresh random key pair."""
        return cls(generate_keypair())

    @classmethod
    def from_seed(cls, seed: bytes) -> "IdentityKeyManager":
        """
        Create an identity from a 32-byte seed.

        Raises:
            ValueError: If seed is not 32 bytes.
        """
        return cls(derive_keypair_from_seed(seed))

    def require_key_pair(self) -> KeyPair:
        """Return the key pair or raise MissingIdentityError."""
        if self._key_pair is None:
            raise MissingIdentityError()
        return self._key_pair

    def public_key(self) -> bytes:
        """The raw public key (32 bytes)."""
        return self.require_key_pair().public_key

    def public_key_hex(self) -> str:
        """The public key as a hex string."""
        return self.public_key().hex()

    def public_key_hash(self) -> str:
        """BLAKE2b-256 fingerprint of the public key, hex encoded."""
        return public_key_hash(self.public_key())
