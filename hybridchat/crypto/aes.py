"""
AES-256(CBC)+PKCS#7 with HMAC-SHA256 (encrypt-then-MAC) helpers (use library).

Message payload: iv(16) || ciphertext || tag(32). The AES and HMAC keys are
HKDF-SHA256 subkeys of the 32-byte session key, never the session key itself.
Peers that send bare iv || ciphertext frames keyed directly with the session
key cannot interoperate with this format.
"""

from __future__ import annotations

import hmac as _hmac
import os

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from hybridchat.common.config import SESSION_KEY_SIZE
from hybridchat.common.errors import ChatError, DecryptionError, KeyGenerationError
from hybridchat.common.protocol import IV_SIZE, EncryptedMessage

# AES block size is 128 bits (16 bytes)
AES_BLOCK_SIZE_BITS = 128
# HKDF context; changing it changes every derived key
_KDF_INFO = b"hybridchat/v1 aes-256-cbc hmac-sha256"


class SessionKey:
    """
    Owning handle for the 32-byte session secret.

    The bytes live in a mutable buffer that destroy() overwrites with zeros.
    Callers borrow the secret through .raw and must not keep the copy around.
    """

    def __init__(self, secret: bytes):
        if len(secret) != SESSION_KEY_SIZE:
            raise ValueError(f"session key must be {SESSION_KEY_SIZE} bytes, got {len(secret)}")
        self._buf = bytearray(secret)
        self._destroyed = False

    @property
    def raw(self) -> bytes:
        if self._destroyed:
            raise ChatError("session key has been destroyed")
        return bytes(self._buf)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        self._buf[:] = bytes(len(self._buf))
        self._destroyed = True

    def __enter__(self) -> "SessionKey":
        return self

    def __exit__(self, *exc) -> None:
        self.destroy()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SessionKey):
            return NotImplemented
        return _hmac.compare_digest(self.raw, other.raw)

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"{len(self._buf)} bytes"
        return f"<SessionKey {state}>"


def generate_session_key() -> SessionKey:
    """Returns 32 fresh bytes from the OS CSPRNG wrapped in a SessionKey."""
    try:
        return SessionKey(os.urandom(SESSION_KEY_SIZE))
    except (OSError, NotImplementedError) as e:
        raise KeyGenerationError(f"random source failed: {e}") from e


def _derive_subkeys(session_key: SessionKey) -> tuple[bytes, bytes]:
    """Splits the session key into independent (aes_key, mac_key) halves via HKDF."""
    okm = HKDF(
        algorithm=hashes.SHA256(),
        length=64,
        salt=None,
        info=_KDF_INFO,
    ).derive(session_key.raw)
    return okm[:32], okm[32:]


def _tag(mac_key: bytes, iv: bytes, ciphertext: bytes) -> hmac.HMAC:
    h = hmac.HMAC(mac_key, hashes.SHA256())
    h.update(iv)
    h.update(ciphertext)
    return h


def encrypt(session_key: SessionKey, plaintext: str | bytes) -> EncryptedMessage:
    """
    Encrypts plaintext using AES-256 in CBC mode with PKCS#7 padding.

    session_key: the negotiated 32-byte key
    plaintext: text (UTF-8 encoded here) or raw bytes
    Returns: EncryptedMessage with a fresh random IV, the ciphertext and its tag
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    aes_key, mac_key = _derive_subkeys(session_key)

    # 1. Fresh IV for every message, never reused
    iv = os.urandom(IV_SIZE)

    # 2. Pad and encrypt
    padder = padding.PKCS7(AES_BLOCK_SIZE_BITS).padder()
    padded_data = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded_data) + encryptor.finalize()

    # 3. Authenticate iv || ciphertext
    tag = _tag(mac_key, iv, ciphertext).finalize()

    return EncryptedMessage(iv=iv, ciphertext=ciphertext, tag=tag)


def decrypt_bytes(session_key: SessionKey, message: EncryptedMessage) -> bytes:
    """
    Verifies and decrypts a message, returning the raw plaintext bytes.

    Raises DecryptionError if the tag does not match or the padding is invalid.
    """
    aes_key, mac_key = _derive_subkeys(session_key)

    # 1. Check the tag before touching the ciphertext
    try:
        _tag(mac_key, message.iv, message.ciphertext).verify(message.tag)
    except InvalidSignature as e:
        raise DecryptionError("message authentication failed (tampered or wrong key)") from e

    # 2. Decrypt
    decryptor = Cipher(algorithms.AES(aes_key), modes.CBC(message.iv)).decryptor()
    try:
        padded_plaintext = decryptor.update(message.ciphertext) + decryptor.finalize()
    except ValueError as e:
        # Ciphertext not a whole number of blocks
        raise DecryptionError(f"truncated ciphertext: {e}") from e

    # 3. Remove the padding
    unpadder = padding.PKCS7(AES_BLOCK_SIZE_BITS).unpadder()
    try:
        return unpadder.update(padded_plaintext) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError("invalid padding") from e


def decrypt(session_key: SessionKey, message: EncryptedMessage) -> str:
    """Like decrypt_bytes, but returns text; invalid UTF-8 is a DecryptionError."""
    plaintext = decrypt_bytes(session_key, message)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("plaintext is not valid UTF-8") from e
