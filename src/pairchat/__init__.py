"""
PairChat - Pairing and encrypted messaging over broadcast channels

Python implementation of the PairChat protocol using X25519 + ChaCha20-Poly1305.
"""

from .keys import (
    KeyPair,
    generate_keypair,
    derive_keypair_from_seed,
    coerce_public_key,
    public_key_hash,
)
from .identity import IdentityKeyManager
from .session import (
    SessionRole,
    SessionCache,
    derive_as_initiator,
    derive_as_responder,
    derive_session,
)
from .crypto import (
    encrypt_payload,
    decrypt_payload,
    try_decrypt_payload,
    seal_for_public_key,
    open_sealed,
)
from .envelope import (
    encode_envelope,
    decode_envelope,
    extract_envelope,
    is_channel_open_message,
)
from .models import (
    MessageTarget,
    PairingRequest,
    MessageEnvelope,
)
from .types import (
    SessionKeys,
    NONCE_SIZE,
    TAG_SIZE,
    MIN_PAYLOAD_SIZE,
    MIN_SEALED_SIZE,
    PUBLIC_KEY_SIZE,
    PairChatError,
    MissingIdentityError,
    InvalidPublicKeyError,
    EncryptionError,
    AuthenticationFailedError,
    MalformedPayloadError,
    InvalidEnvelopeError,
)
from .transport import (
    BroadcastTransport,
    EndpointDirectory,
    InMemoryBroadcastChannel,
    InMemoryEndpointDirectory,
)
from .dispatcher import (
    EncryptedListener,
    ListenerRegistry,
    BroadcastDispatcher,
)
from .handshake import (
    HandshakeState,
    ChannelOpener,
    ChannelOpeningListener,
)
from .client import (
    PairChatConfig,
    PairChatClient,
)

__version__ = "0.1.0"

__all__ = [
    # Keys
    "KeyPair",
    "generate_keypair",
    "derive_keypair_from_seed",
    "coerce_public_key",
    "public_key_hash",
    "IdentityKeyManager",
    # Sessions
    "SessionRole",
    "SessionCache",
    "SessionKeys",
    "derive_as_initiator",
    "derive_as_responder",
    "derive_session",
    # Crypto
    "encrypt_payload",
    "decrypt_payload",
    "try_decrypt_payload",
    "seal_for_public_key",
    "open_sealed",
    # Envelope
    "encode_envelope",
    "decode_envelope",
    "extract_envelope",
    "is_channel_open_message",
    # Models
    "MessageTarget",
    "PairingRequest",
    "MessageEnvelope",
    # Constants
    "NONCE_SIZE",
    "TAG_SIZE",
    "MIN_PAYLOAD_SIZE",
    "MIN_SEALED_SIZE",
    "PUBLIC_KEY_SIZE",
    # Errors
    "PairChatError",
    "MissingIdentityError",
    "InvalidPublicKeyError",
    "EncryptionError",
    "AuthenticationFailedError",
    "MalformedPayloadError",
    "InvalidEnvelopeError",
    # Transport
    "BroadcastTransport",
    "EndpointDirectory",
    "InMemoryBroadcastChannel",
    "InMemoryEndpointDirectory",
    # Dispatch
    "EncryptedListener",
    "ListenerRegistry",
    "BroadcastDispatcher",
    # Handshake
    "HandshakeState",
    "ChannelOpener",
    "ChannelOpeningListener",
    # Client
    "PairChatConfig",
    "PairChatClient",
]
