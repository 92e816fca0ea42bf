"""Models for PairChat pairing requests and broadcast envelopes."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MessageTarget(Enum):
    """The side of the channel an envelope is nominally addressed to."""
    PAGE = "toPage"
    EXTENSION = "toExtension"

    @property
    def counterpart(self) -> "MessageTarget":
        """Returns the opposite side."""
        if self is MessageTarget.PAGE:
            return MessageTarget.EXTENSION
        return MessageTarget.PAGE


@dataclass(frozen=True)
class PairingRequest:
    """Identity announcement exchanged during the handshake."""
    name: str
    public_key: str

    def to_dict(self) -> dict:
        """Returns the wire representation."""
        return {"name": self.name, "publicKey": self.public_key}


@dataclass
class MessageEnvelope:
    """The unit placed on the broadcast transport."""
    target: MessageTarget
    payload: str
    sender: Any = None

    def is_addressed_to(self, side: MessageTarget) -> bool:
        """Whether this envelope is tagged toward the given side."""
        return self.target is side
