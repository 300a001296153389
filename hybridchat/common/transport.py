"""Length-prefixed framing over a raw duplex byte stream (a socket or anything socket-like)."""

from __future__ import annotations

import logging
import socket
import threading

from hybridchat.common.config import MAX_FRAME_SIZE
from hybridchat.common.errors import EndOfStream, FrameTooLarge, TransportError
from hybridchat.common.protocol import FRAME_HEADER

log = logging.getLogger(__name__)

# Upper bound on a single recv() request
RECV_CHUNK = 64 * 1024


class FramedTransport:
    """
    Turns a byte stream into exact-length reads/writes and discrete frames.

    The stream needs recv(n) and send(data) -> int; shutdown(how),
    close() and settimeout(t) are used when present.
    Reads and writes are independent, so one reader thread and one writer
    thread may use the transport at the same time. Frame writes are
    serialized so concurrent writers never interleave bytes.
    """

    def __init__(self, stream, max_frame_size: int = MAX_FRAME_SIZE):
        self._stream = stream
        self.max_frame_size = max_frame_size
        self._send_lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    # --- Exact byte I/O ---

    def send_exact(self, data: bytes) -> None:
        """Writes every byte of data, looping over short writes."""
        view = memoryview(data)
        total = 0
        while total < len(view):
            try:
                sent = self._stream.send(view[total:])
            except OSError as e:
                raise TransportError(f"send failed after {total}/{len(view)} bytes: {e}") from e
            if sent == 0:
                raise TransportError(f"stream stopped accepting data after {total}/{len(view)} bytes")
            total += sent

    def receive_exact(self, n: int) -> bytes:
        """
        Reads exactly n bytes.

        Raises EndOfStream (carrying the partial data) if the stream closes first.
        """
        buf = bytearray()
        while len(buf) < n:
            try:
                chunk = self._stream.recv(min(n - len(buf), RECV_CHUNK))
            except OSError as e:
                if self.closed:
                    raise EndOfStream("transport closed locally", bytes(buf)) from e
                raise TransportError(f"receive failed after {len(buf)}/{n} bytes: {e}") from e
            if not chunk:
                raise EndOfStream(f"stream closed after {len(buf)}/{n} bytes", bytes(buf))
            buf.extend(chunk)
        return bytes(buf)

    # --- Framing ---

    def send_frame(self, payload: bytes) -> None:
        if len(payload) > self.max_frame_size:
            raise TransportError(
                f"frame of {len(payload)} bytes exceeds the {self.max_frame_size} byte limit"
            )
        header = FRAME_HEADER.pack(len(payload))
        with self._send_lock:
            self.send_exact(header)
            self.send_exact(payload)

    def receive_frame(self) -> bytes:
        """
        Reads one frame and returns its payload.

        A close exactly between frames raises EndOfStream with no partial data;
        a close inside a frame, or an oversized length field, raises TransportError.
        """
        try:
            header = self.receive_exact(FRAME_HEADER.size)
        except EndOfStream as e:
            if e.partial:
                raise TransportError("stream closed inside a frame header") from e
            raise

        (length,) = FRAME_HEADER.unpack(header)
        # Reject before allocating anything for the payload
        if length > self.max_frame_size:
            raise FrameTooLarge(f"peer declared a {length} byte frame (limit {self.max_frame_size})")

        try:
            return self.receive_exact(length)
        except EndOfStream as e:
            raise TransportError(
                f"stream closed inside a frame ({len(e.partial)}/{length} payload bytes)"
            ) from e

    # --- Lifecycle ---

    def set_timeout(self, seconds: float | None) -> None:
        settimeout = getattr(self._stream, "settimeout", None)
        if settimeout is not None:
            settimeout(seconds)

    def close(self) -> None:
        """Shuts down both directions, then closes. Safe to call more than once."""
        if self._closed.is_set():
            return
        self._closed.set()
        # shutdown() wakes a thread blocked in recv(); close() alone may not
        try:
            shutdown = getattr(self._stream, "shutdown", None)
            if shutdown is not None:
                shutdown(socket.SHUT_RDWR)
        except OSError as e:
            log.debug("shutdown on an already broken stream: %s", e)
        try:
            close = getattr(self._stream, "close", None)
            if close is not None:
                close()
        except OSError as e:
            log.debug("close failed: %s", e)
