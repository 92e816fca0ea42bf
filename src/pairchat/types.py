"""Type definitions for PairChat."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SessionKeys:
    """Directional session keys for one peer relationship."""
    tx: bytes
    rx: bytes


# Key constants
PUBLIC_KEY_SIZE = 32
PRIVATE_KEY_SIZE = 32
SESSION_KEY_SIZE = 32
SEED_SIZE = 32

# Payload constants
NONCE_SIZE = 12
TAG_SIZE = 16
MIN_PAYLOAD_SIZE = NONCE_SIZE + TAG_SIZE
MIN_SEALED_SIZE = PUBLIC_KEY_SIZE + NONCE_SIZE + TAG_SIZE

# Key derivation constants
KEY_DERIVATION_SALT = b"PairChat-v1-identity"
KEY_DERIVATION_INFO = b"x25519-key"
SEALED_BOX_INFO = b"PairChatV1-SealedBox"

# Public key fingerprint size (BLAKE2b-256)
PUBLIC_KEY_HASH_SIZE = 32


# Exception types
class PairChatError(Exception):
    """Base exception for PairChat errors."""
    pass


class MissingIdentityError(PairChatError):
    """No identity key pair is available."""

    def __init__(self) -> None:
        super().__init__("KeyPair not available")


class InvalidPublicKeyError(PairChatError):
    """Invalid public key format or length."""
    pass


class EncryptionError(PairChatError):
    """Encryption failed."""
    pass


class AuthenticationFailedError(PairChatError):
    """Decryption failed: wrong key, foreign message or tampering."""
    pass


class MalformedPayloadError(PairChatError):
    """Payload is too short, not hex or not the expected JSON."""
    pass


class InvalidEnvelopeError(PairChatError):
    """Invalid envelope format."""
    pass
