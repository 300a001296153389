"""RSA-2048 keypair, PEM public key exchange and RSA-OAEP session key wrap/unwrap."""

from __future__ import annotations

from cryptography.exceptions import InternalError, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from hybridchat.common.config import RSA_KEY_BITS, RSA_PUBLIC_EXPONENT, SESSION_KEY_SIZE
from hybridchat.common.errors import KeyFormatError, KeyGenerationError, KeyUnwrapError
from hybridchat.common.utils import format_fingerprint, sha256_hex
from hybridchat.crypto.aes import SessionKey


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


class KeyPair:
    """
    Owning handle for our RSA private key.

    The private key never leaves this object; discard() drops it and any
    later use raises KeyGenerationError. Usable as a context manager.
    """

    def __init__(self, private_key: rsa.RSAPrivateKey):
        self._private_key: rsa.RSAPrivateKey | None = private_key

    @property
    def discarded(self) -> bool:
        return self._private_key is None

    def _require(self) -> rsa.RSAPrivateKey:
        if self._private_key is None:
            raise KeyGenerationError("keypair has been discarded")
        return self._private_key

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self._require().public_key()

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self._require().decrypt(ciphertext, _oaep())

    def discard(self) -> None:
        self._private_key = None

    def __enter__(self) -> "KeyPair":
        return self

    def __exit__(self, *exc) -> None:
        self.discard()

    def __repr__(self) -> str:
        return "<KeyPair discarded>" if self.discarded else f"<KeyPair RSA-{RSA_KEY_BITS}>"


def generate_keypair() -> KeyPair:
    """Creates a fresh 2048-bit RSA keypair (public exponent 65537)."""
    try:
        private_key = rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=RSA_KEY_BITS,
        )
    except (ValueError, InternalError, UnsupportedAlgorithm) as e:
        raise KeyGenerationError(f"RSA key generation failed: {e}") from e
    return KeyPair(private_key)


def export_public_key(keypair: KeyPair) -> str:
    """Returns our public key as PEM (SubjectPublicKeyInfo) text."""
    pem = keypair.public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return pem.decode("ascii")


def import_peer_public_key(pem: str | bytes) -> rsa.RSAPublicKey:
    """
    Parses a PEM public key received from the peer.

    The input is untrusted: anything that is not a 2048-bit RSA public key
    raises KeyFormatError and nothing else.
    """
    try:
        data = pem.encode("ascii") if isinstance(pem, str) else bytes(pem)
    except (UnicodeEncodeError, TypeError) as e:
        raise KeyFormatError(f"public key is not PEM text: {e}") from e

    try:
        public_key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyFormatError(f"could not parse peer public key: {e}") from e

    if not isinstance(public_key, rsa.RSAPublicKey):
        raise KeyFormatError(f"peer public key is {type(public_key).__name__}, expected RSA")
    if public_key.key_size != RSA_KEY_BITS:
        raise KeyFormatError(f"peer RSA key is {public_key.key_size} bits, expected {RSA_KEY_BITS}")
    return public_key


def wrap(session_key: SessionKey, peer_public_key: rsa.RSAPublicKey) -> bytes:
    """Encrypts the session key under the peer's public key (RSA-OAEP, SHA-256)."""
    return peer_public_key.encrypt(session_key.raw, _oaep())


def unwrap(wrapped: bytes, keypair: KeyPair) -> SessionKey:
    """
    Recovers a session key with our private key.

    Raises KeyUnwrapError on a wrong-sized blob, an OAEP failure, or a
    secret that is not exactly 32 bytes.
    """
    expected = RSA_KEY_BITS // 8
    if len(wrapped) != expected:
        raise KeyUnwrapError(f"wrapped key is {len(wrapped)} bytes, expected {expected}")
    try:
        secret = keypair.decrypt(wrapped)
    except ValueError as e:
        raise KeyUnwrapError("session key decryption failed") from e
    if len(secret) != SESSION_KEY_SIZE:
        raise KeyUnwrapError(f"unwrapped secret is {len(secret)} bytes, expected {SESSION_KEY_SIZE}")
    return SessionKey(secret)


def public_key_fingerprint(pem: str | bytes) -> str:
    """
    SHA-256 fingerprint of a PEM public key, grouped for reading aloud.

    Both sides print this; comparing it out of band is the only way to spot
    a relay that swapped keys, since the protocol itself does not check.
    """
    if isinstance(pem, str):
        pem = pem.encode("ascii")
    return format_fingerprint(sha256_hex(pem))
