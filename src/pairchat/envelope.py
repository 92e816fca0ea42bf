"""Envelope encoding and decoding for the PairChat broadcast channel."""

import json
from typing import Any, Optional

from .models import MessageEnvelope, MessageTarget, PairingRequest
from .types import InvalidEnvelopeError, MalformedPayloadError


def encode_envelope(envelope: MessageEnvelope) -> dict:
    """
    Encode an envelope to its wire form.

    Format:
        {"target": "toPage" | "toExtension", "payload": str, "sender"?: any}

    Args:
        envelope: MessageEnvelope to encode

    Returns:
        JSON-compatible dict
    """
    message = {"target": envelope.target.value, "payload": envelope.payload}
    if envelope.sender is not None:
        message["sender"] = envelope.sender
    return message


def decode_envelope(data: Any) -> MessageEnvelope:
    """
    Decode a wire-form envelope.

    Args:
        data: The envelope dict

    Returns:
        Decoded MessageEnvelope

    Raises:
        InvalidEnvelopeError: If data is not an envelope
    """
    if not is_channel_open_message(data):
        raise InvalidEnvelopeError("Envelope must be an object with a payload field")

    try:
        target = MessageTarget(data.get("target"))
    except ValueError as e:
        raise InvalidEnvelopeError(f"Unknown target: {data.get('target')!r}") from e

    payload = data["payload"]
    if not isinstance(payload, str):
        raise InvalidEnvelopeError("Envelope payload must be a string")

    return MessageEnvelope(target=target, payload=payload, sender=data.get("sender"))


def extract_envelope(raw: Any) -> Optional[MessageEnvelope]:
    """
    Pull an envelope out of a raw transport message.

    Accepts a bare envelope or an event wrapper of the form
    {"message": envelope, "sender": ...}. Returns None for anything else.
    """
    if not isinstance(raw, dict):
        return None

    data = raw
    sender = None
    if "payload" not in raw and isinstance(raw.get("message"), dict):
        data = raw["message"]
        sender = raw.get("sender")

    try:
        envelope = decode_envelope(data)
    except InvalidEnvelopeError:
        return None

    if envelope.sender is None:
        envelope.sender = sender
    return envelope


def is_channel_open_message(data: Any) -> bool:
    """
    Check if data looks like an envelope: an object with a payload field.

    This is a cheap pre-filter, not a security check.
    """
    return isinstance(data, dict) and "payload" in data


def payload_to_bytes(payload: str) -> bytes:
    """
    Decode a hex payload.

    Raises:
        MalformedPayloadError: If payload is not valid hex
    """
    try:
        return bytes.fromhex(payload)
    except ValueError as e:
        raise MalformedPayloadError("Payload is not valid hex") from e


def serialize_pairing_request(request: PairingRequest) -> str:
    """Serialize a pairing request to its JSON wire form."""
    return json.dumps(request.to_dict())


def parse_pairing_response(text: str) -> dict:
    """
    Parse a decrypted pairing response.

    Raises:
        MalformedPayloadError: If text is not a JSON object
    """
    try:
        response = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError("Pairing response is not valid JSON") from e

    if not isinstance(response, dict):
        raise MalformedPayloadError("Pairing response must be a JSON object")
    return response
