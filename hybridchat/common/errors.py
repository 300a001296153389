"""Exception taxonomy for transport, key exchange and message decryption failures."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for every failure the chat core reports to its owner."""


# --- Transport ---

class TransportError(ChatError):
    """The stream broke or was closed in the middle of an operation."""


class EndOfStream(TransportError):
    """
    The peer closed the stream before the requested bytes arrived.

    partial: whatever was read before the close (empty on a clean close).
    """

    def __init__(self, message: str = "stream closed", partial: bytes = b""):
        super().__init__(message)
        self.partial = partial


class FrameTooLarge(TransportError):
    """A frame header declared more bytes than the configured maximum."""


# --- Key exchange ---

class KeyExchangeError(ChatError):
    """Malformed or incompatible key material. Fatal to the handshake."""


class KeyGenerationError(KeyExchangeError):
    pass


class KeyFormatError(KeyExchangeError):
    pass


class KeyUnwrapError(KeyExchangeError):
    pass


# --- Messages / handshake ---

class DecryptionError(ChatError):
    """A received message failed its integrity, padding or encoding checks."""


class HandshakeError(ChatError):
    """The handshake was misused: run twice, or messaging before READY."""
