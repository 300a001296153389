"""Encrypted chat session: per-message encrypt/frame, and the duplex send/receive loops."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional

from hybridchat.common.errors import ChatError, EndOfStream, TransportError
from hybridchat.common.protocol import EncryptedMessage, Role
from hybridchat.common.transport import FramedTransport
from hybridchat.crypto import aes
from hybridchat.crypto.aes import SessionKey

log = logging.getLogger(__name__)


def _wrap_local_error(where: str, error: Exception) -> ChatError:
    """Turns a non-protocol failure (console I/O, a deliver callback) into a ChatError."""
    wrapped = ChatError(f"{where} failed: {type(error).__name__}: {error}")
    wrapped.__cause__ = error
    return wrapped


class ChatSession:
    """
    Owns the transport and the negotiated session key after a READY handshake.

    exit_event is the liveness flag shared by both loops: once set, the
    session is shutting down and neither loop starts another operation.
    error holds the first fatal failure, or None for a clean end.
    """

    def __init__(self, transport: FramedTransport, session_key: SessionKey, role: Role):
        self.transport = transport
        self.session_key = session_key
        self.role = Role(role)
        self.exit_event = threading.Event()
        self.error: Optional[ChatError] = None
        self._lock = threading.Lock()

    @property
    def alive(self) -> bool:
        return not self.exit_event.is_set()

    # --- Single messages ---

    def send_message(self, text: str) -> None:
        if not self.alive:
            raise TransportError("session is closed")
        message = aes.encrypt(self.session_key, text)
        self.transport.send_frame(message.to_payload())

    def receive_message(self) -> str:
        """
        Blocks for the next message and returns its plaintext.

        EndOfStream means the peer closed cleanly between messages.
        DecryptionError means the frame was tampered with or keys disagree.
        """
        payload = self.transport.receive_frame()
        return aes.decrypt(self.session_key, EncryptedMessage.from_payload(payload))

    # --- Duplex loops ---

    def _fail(self, error: ChatError) -> None:
        with self._lock:
            # Errors raised by our own teardown are not failures
            if self.error is None and self.alive:
                self.error = error
                log.error("session failed: %s", error)
        self.shutdown()

    def _send_loop(self, outgoing: Iterable[str]) -> None:
        try:
            for text in outgoing:
                if not self.alive:
                    break
                self.send_message(text)
        except ChatError as e:
            self._fail(e)
        except Exception as e:
            self._fail(_wrap_local_error("send loop", e))
        finally:
            # Running out of input means the local user is done
            self.shutdown()

    def _receive_loop(self, deliver: Callable[[str], None]) -> None:
        try:
            while self.alive:
                try:
                    text = self.receive_message()
                except EndOfStream:
                    if self.alive:
                        log.info("peer closed the connection")
                    break
                except ChatError as e:
                    self._fail(e)
                    break
                deliver(text)
        except Exception as e:
            self._fail(_wrap_local_error("receive loop", e))
        finally:
            self.shutdown()

    def run_duplex(
        self,
        outgoing: Iterable[str],
        deliver: Callable[[str], None],
        join_timeout: float = 1.0,
    ) -> Optional[ChatError]:
        """
        Runs the send and receive loops on their own threads until shutdown.

        outgoing: texts to send, in order; exhausting it ends the session
        deliver: called with each decrypted incoming message
        Returns the fatal error, or None if the session ended cleanly.
        """
        receiver = threading.Thread(target=self._receive_loop, args=(deliver,), name="chat-receive", daemon=True)
        sender = threading.Thread(target=self._send_loop, args=(outgoing,), name="chat-send", daemon=True)
        receiver.start()
        sender.start()

        self.exit_event.wait()

        receiver.join(join_timeout)
        # The sender may be parked inside outgoing (e.g. waiting on the console)
        sender.join(join_timeout)
        return self.error

    def shutdown(self) -> None:
        """Stops both loops, closes the stream and zeroes the session key. Idempotent."""
        with self._lock:
            if self.exit_event.is_set():
                return
            self.exit_event.set()
        self.transport.close()
        self.session_key.destroy()
        log.debug("%s session torn down", self.role.value)

    def __enter__(self) -> "ChatSession":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
