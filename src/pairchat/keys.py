"""Key generation and management for PairChat."""

import hashlib
from dataclasses import dataclass
from typing import Union

from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    PrivateFormat,
    NoEncryption,
)

from .types import (
    KEY_DERIVATION_SALT,
    KEY_DERIVATION_INFO,
    PUBLIC_KEY_SIZE,
    PUBLIC_KEY_HASH_SIZE,
    SEED_SIZE,
    InvalidPublicKeyError,
)


@dataclass(frozen=True)
class KeyPair:
    """
    A long-term X25519 key pair.

    Attributes:
        public_key: Raw public key (32 bytes).
        private_key: Raw private key (32 bytes).
    """

    public_key: bytes
    private_key: bytes

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key.hex()})"


def generate_keypair() -> KeyPair:
    """
    Generate a random X25519 key pair.

    Returns:
        A new KeyPair
    """
    return _keypair_from_private(X25519PrivateKey.generate())


def derive_keypair_from_seed(seed: bytes) -> KeyPair:
    """
    Derive an X25519 key pair from a 32-byte seed using HKDF-SHA256.

    Args:
        seed: 32-byte seed

    Returns:
        The derived KeyPair
    """
    if len(seed) != SEED_SIZE:
        raise ValueError(f"Seed must be {SEED_SIZE} bytes, got {len(seed)}")

    hkdf = HKDF(
        algorithm=SHA256(),
        length=32,
        salt=KEY_DERIVATION_SALT,
        info=KEY_DERIVATION_INFO,
    )
    derived_key = hkdf.derive(seed)

    return _keypair_from_private(X25519PrivateKey.from_private_bytes(derived_key))


def _keypair_from_private(private_key: X25519PrivateKey) -> KeyPair:
    private_bytes = private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
    return KeyPair(
        public_key=public_key_to_bytes(private_key.public_key()),
        private_key=private_bytes,
    )


def x25519_ecdh(private_key: bytes, public_key: bytes) -> bytes:
    """
    Perform X25519 ECDH key exchange.

    Args:
        private_key: Our raw private key
        public_key: Their raw public key

    Returns:
        32-byte shared secret

    Raises:
        InvalidPublicKeyError: If the peer key is a low-order point
    """
    ours = X25519PrivateKey.from_private_bytes(private_key)
    try:
        return ours.exchange(public_key_from_bytes(public_key))
    except ValueError as e:
        raise InvalidPublicKeyError(f"Key exchange failed: {e}") from e


def public_key_to_bytes(public_key: X25519PublicKey) -> bytes:
    """Convert X25519 public key to raw bytes."""
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


def public_key_from_bytes(data: bytes) -> X25519PublicKey:
    """Create X25519 public key from raw bytes."""
    if len(data) != PUBLIC_KEY_SIZE:
        raise InvalidPublicKeyError(
            f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(data)}"
        )
    return X25519PublicKey.from_public_bytes(data)


def coerce_public_key(public_key: Union[str, bytes]) -> bytes:
    """
    Accept a public key as hex string or raw bytes and return raw bytes.

    Raises:
        InvalidPublicKeyError: If the key is not valid hex or has the wrong length
    """
    if isinstance(public_key, str):
        try:
            data = bytes.fromhex(public_key)
        except ValueError as e:
            raise InvalidPublicKeyError(f"Public key is not valid hex: {public_key!r}") from e
    else:
        data = bytes(public_key)

    if len(data) != PUBLIC_KEY_SIZE:
        raise InvalidPublicKeyError(
            f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(data)}"
        )
    return data


def public_key_hash(public_key: bytes) -> str:
    """Hex BLAKE2b-256 fingerprint of a public key."""
    return hashlib.blake2b(public_key, digest_size=PUBLIC_KEY_HASH_SIZE).hexdigest()
