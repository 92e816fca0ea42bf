"""Encryption and decryption for PairChat payloads and sealed boxes."""

import os
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .keys import KeyPair, generate_keypair, coerce_public_key, x25519_ecdh
from .types import (
    NONCE_SIZE,
    PUBLIC_KEY_SIZE,
    SESSION_KEY_SIZE,
    MIN_PAYLOAD_SIZE,
    MIN_SEALED_SIZE,
    SEALED_BOX_INFO,
    EncryptionError,
    InvalidPublicKeyError,
    AuthenticationFailedError,
    MalformedPayloadError,
)


def _to_bytes(plaintext: Union[str, bytes]) -> bytes:
    if isinstance(plaintext, str):
        return plaintext.encode("utf-8")
    return bytes(plaintext)


def _to_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedPayloadError("Decrypted payload is not valid UTF-8") from e


def _check_key(key: bytes) -> None:
    if len(key) != SESSION_KEY_SIZE:
        raise EncryptionError(f"Session key must be {SESSION_KEY_SIZE} bytes, got {len(key)}")


def encrypt_payload(plaintext: Union[str, bytes], tx_key: bytes) -> bytes:
    """
    Encrypt a message under a session tx key.

    A fresh random nonce is generated for every call.

    Args:
        plaintext: Message to encrypt
        tx_key: 32-byte session send key

    Returns:
        nonce || ciphertext || tag
    """
    _check_key(tx_key)

    nonce = os.urandom(NONCE_SIZE)
    cipher = ChaCha20Poly1305(tx_key)
    return nonce + cipher.encrypt(nonce, _to_bytes(plaintext), None)


def decrypt_payload(payload: bytes, rx_key: bytes) -> str:
    """
    Decrypt a message encrypted with encrypt_payload().

    Args:
        payload: nonce || ciphertext || tag
        rx_key: 32-byte session receive key

    Returns:
        The decrypted text

    Raises:
        MalformedPayloadError: If the payload is too short or not UTF-8
        AuthenticationFailedError: If the tag does not verify
    """
    if len(payload) < MIN_PAYLOAD_SIZE:
        raise MalformedPayloadError(
            f"Payload too short: {len(payload)} bytes (minimum {MIN_PAYLOAD_SIZE})"
        )
    _check_key(rx_key)

    nonce = payload[:NONCE_SIZE]
    cipher = ChaCha20Poly1305(rx_key)
    try:
        plaintext = cipher.decrypt(nonce, payload[NONCE_SIZE:], None)
    except InvalidTag as e:
        raise AuthenticationFailedError("Payload authentication failed") from e

    return _to_text(plaintext)


def try_decrypt_payload(payload: bytes, rx_key: bytes) -> Optional[str]:
    """
    Decrypt a payload, returning None when it is not for this key.

    Used for trial decryption, where failing is the common case.
    """
    try:
        return decrypt_payload(payload, rx_key)
    except (AuthenticationFailedError, MalformedPayloadError):
        return None


def _sealed_box_key(shared_secret: bytes, ephemeral_pk: bytes, recipient_pk: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=SHA256(),
        length=SESSION_KEY_SIZE,
        salt=ephemeral_pk + recipient_pk,
        info=SEALED_BOX_INFO,
    )
    return hkdf.derive(shared_secret)


def seal_for_public_key(plaintext: Union[str, bytes], recipient_public_key: Union[str, bytes]) -> bytes:
    """
    Encrypt a message anonymously for the holder of a public key.

    The sender is not authenticated; only the recipient can open the box.

    Args:
        plaintext: Message to seal
        recipient_public_key: Recipient's public key (hex or raw bytes)

    Returns:
        ephemeral_public_key || nonce || ciphertext || tag

    Raises:
        InvalidPublicKeyError: If the recipient key is invalid
    """
    recipient_pk = coerce_public_key(recipient_public_key)

    # One ephemeral key pair per box
    ephemeral = generate_keypair()
    shared_secret = x25519_ecdh(ephemeral.private_key, recipient_pk)
    key = _sealed_box_key(shared_secret, ephemeral.public_key, recipient_pk)

    nonce = os.urandom(NONCE_SIZE)
    cipher = ChaCha20Poly1305(key)
    return ephemeral.public_key + nonce + cipher.encrypt(nonce, _to_bytes(plaintext), None)


def open_sealed(sealed: bytes, key_pair: KeyPair) -> str:
    """
    Open a box produced by seal_for_public_key().

    Args:
        sealed: The sealed box bytes
        key_pair: Recipient key pair

    Returns:
        The decrypted text

    Raises:
        MalformedPayloadError: If the box is too short or not UTF-8
        AuthenticationFailedError: If the box was not sealed for this key pair
    """
    if len(sealed) < MIN_SEALED_SIZE:
        raise MalformedPayloadError(
            f"Sealed box too short: {len(sealed)} bytes (minimum {MIN_SEALED_SIZE})"
        )

    ephemeral_pk = sealed[:PUBLIC_KEY_SIZE]
    nonce = sealed[PUBLIC_KEY_SIZE : PUBLIC_KEY_SIZE + NONCE_SIZE]
    ciphertext = sealed[PUBLIC_KEY_SIZE + NONCE_SIZE :]

    try:
        shared_secret = x25519_ecdh(key_pair.private_key, ephemeral_pk)
    except InvalidPublicKeyError as e:
        raise AuthenticationFailedError("Sealed box has an invalid ephemeral key") from e
    key = _sealed_box_key(shared_secret, ephemeral_pk, key_pair.public_key)

    cipher = ChaCha20Poly1305(key)
    try:
        plaintext = cipher.decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise AuthenticationFailedError("Sealed box authentication failed") from e

    return _to_text(plaintext)
