"""Wire layouts and protocol enums: frame header, roles, handshake states, encrypted message."""

from __future__ import annotations

import struct
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hybridchat.common.errors import DecryptionError

# --- Framing ---

# uint32, network byte order
FRAME_HEADER = struct.Struct("!I")

# --- Encrypted message layout: iv || ciphertext || tag ---

IV_SIZE = 16
BLOCK_SIZE = 16
TAG_SIZE = 32
MIN_MESSAGE_SIZE = IV_SIZE + BLOCK_SIZE + TAG_SIZE


class Role(str, Enum):
    """Fixed per connection; decides who speaks first in the handshake."""
    INITIATOR = "initiator"  # client: connects, generates the session key
    RESPONDER = "responder"  # server: accepts, owns the RSA keypair


class HandshakeState(str, Enum):
    # Responder path
    LISTENING = "listening"
    CLIENT_ACCEPTED = "client_accepted"
    PUBLIC_KEY_SENT = "public_key_sent"
    SESSION_KEY_RECEIVED = "session_key_received"
    # Initiator path
    CONNECTED = "connected"
    PEER_PUBLIC_KEY_RECEIVED = "peer_public_key_received"
    SESSION_KEY_GENERATED = "session_key_generated"
    SESSION_KEY_SENT = "session_key_sent"
    # Terminal
    READY = "ready"
    FAILED = "failed"


class EncryptedMessage(BaseModel):
    """
    A single encrypted chat message as carried in one frame.

    iv:         16 random bytes, fresh for every message (travels in the clear)
    ciphertext: AES-CBC output, a non-empty multiple of the block size
    tag:        HMAC-SHA256 over iv || ciphertext
    """
    model_config = ConfigDict(frozen=True)

    iv: bytes = Field(min_length=IV_SIZE, max_length=IV_SIZE)
    ciphertext: bytes
    tag: bytes = Field(min_length=TAG_SIZE, max_length=TAG_SIZE)

    @field_validator("ciphertext")
    @classmethod
    def _block_aligned(cls, value: bytes) -> bytes:
        if not value or len(value) % BLOCK_SIZE:
            raise ValueError(f"ciphertext length {len(value)} is not a positive multiple of {BLOCK_SIZE}")
        return value

    def to_payload(self) -> bytes:
        return self.iv + self.ciphertext + self.tag

    @classmethod
    def from_payload(cls, payload: bytes) -> "EncryptedMessage":
        """Splits a frame payload into its parts; malformed layouts raise DecryptionError."""
        if len(payload) < MIN_MESSAGE_SIZE:
            raise DecryptionError(f"message too short ({len(payload)} bytes)")
        try:
            return cls(
                iv=payload[:IV_SIZE],
                ciphertext=payload[IV_SIZE:-TAG_SIZE],
                tag=payload[-TAG_SIZE:],
            )
        except ValidationError as e:
            raise DecryptionError(f"malformed message: {e.errors()[0]['msg']}") from e
