"""Handshake state machine: RSA public key out, wrapped session key back, then READY."""

from __future__ import annotations

import logging

from hybridchat.common.errors import HandshakeError, KeyFormatError
from hybridchat.common.protocol import HandshakeState, Role
from hybridchat.common.transport import FramedTransport
from hybridchat.crypto import aes, rsa_kex
from hybridchat.crypto.aes import SessionKey

log = logging.getLogger(__name__)

_INITIAL_STATE = {
    Role.RESPONDER: HandshakeState.CLIENT_ACCEPTED,
    Role.INITIATOR: HandshakeState.CONNECTED,
}


class HandshakeCoordinator:
    """
    Drives one peer through the key exchange on an already connected stream.

    Responder: CLIENT_ACCEPTED -> PUBLIC_KEY_SENT -> SESSION_KEY_RECEIVED -> READY
    Initiator: CONNECTED -> PEER_PUBLIC_KEY_RECEIVED -> SESSION_KEY_GENERATED
               -> SESSION_KEY_SENT -> READY

    Any failure lands in FAILED and is re-raised. A coordinator runs once;
    after a failure the caller drops the connection and starts over.
    """

    def __init__(self, transport: FramedTransport, role: Role, timeout: float | None = None):
        self.transport = transport
        self.role = Role(role)
        self.timeout = timeout or None
        self.state = _INITIAL_STATE[self.role]
        self.peer_fingerprint: str | None = None
        self._session_key: SessionKey | None = None
        self._started = False

    @property
    def ready(self) -> bool:
        return self.state is HandshakeState.READY

    @property
    def session_key(self) -> SessionKey:
        if not self.ready or self._session_key is None:
            raise HandshakeError(f"no session key in state {self.state.value}")
        return self._session_key

    def _advance(self, state: HandshakeState) -> None:
        log.debug("%s handshake: %s -> %s", self.role.value, self.state.value, state.value)
        self.state = state

    def run(self) -> SessionKey:
        """Runs the handshake for our role and returns the shared session key."""
        if self._started:
            raise HandshakeError(f"handshake already run (state {self.state.value}); reconnect to retry")
        self._started = True

        if self.timeout:
            self.transport.set_timeout(self.timeout)
        try:
            if self.role is Role.RESPONDER:
                self._session_key = self._run_responder()
            else:
                self._session_key = self._run_initiator()
        except Exception:
            self._advance(HandshakeState.FAILED)
            raise
        finally:
            if self.timeout:
                self.transport.set_timeout(None)

        self._advance(HandshakeState.READY)
        log.info("%s handshake complete", self.role.value)
        return self._session_key

    def _run_responder(self) -> SessionKey:
        # The keypair only has to outlive the unwrap step
        with rsa_kex.generate_keypair() as keypair:
            # --- 1. Send our public key ---
            public_pem = rsa_kex.export_public_key(keypair)
            self.peer_fingerprint = rsa_kex.public_key_fingerprint(public_pem)
            self.transport.send_frame(public_pem.encode("ascii"))
            self._advance(HandshakeState.PUBLIC_KEY_SENT)

            # --- 2. Receive and unwrap the session key ---
            wrapped = self.transport.receive_frame()
            session_key = rsa_kex.unwrap(wrapped, keypair)
            self._advance(HandshakeState.SESSION_KEY_RECEIVED)
        return session_key

    def _run_initiator(self) -> SessionKey:
        # --- 1. Receive the responder's public key ---
        peer_pem = self.transport.receive_frame()
        try:
            peer_text = peer_pem.decode("ascii")
        except UnicodeDecodeError as e:
            raise KeyFormatError("peer public key frame is not ASCII PEM text") from e
        peer_public_key = rsa_kex.import_peer_public_key(peer_text)
        self.peer_fingerprint = rsa_kex.public_key_fingerprint(peer_text)
        self._advance(HandshakeState.PEER_PUBLIC_KEY_RECEIVED)

        # --- 2. Generate the session key (only the initiator ever does) ---
        session_key = aes.generate_session_key()
        self._advance(HandshakeState.SESSION_KEY_GENERATED)

        # --- 3. Wrap and send it ---
        try:
            self.transport.send_frame(rsa_kex.wrap(session_key, peer_public_key))
        except Exception:
            session_key.destroy()
            raise
        self._advance(HandshakeState.SESSION_KEY_SENT)
        return session_key
