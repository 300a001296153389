"""Duplex stream factory: plain TCP listen+accept for the server, connect for the client."""

from __future__ import annotations

import logging
import socket
from typing import Callable, Optional

from hybridchat.common.config import CONNECT_TIMEOUT, DEFAULT_HOST
from hybridchat.common.errors import TransportError

log = logging.getLogger(__name__)


def listen_and_accept(
    port: int,
    host: str = DEFAULT_HOST,
    on_listening: Optional[Callable[[tuple], None]] = None,
) -> tuple[socket.socket, tuple]:
    """
    Listens on host:port, accepts exactly one client and stops listening.

    on_listening is called with the bound address once the socket is ready
    (useful when port is 0). Returns the connected socket and peer address.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server_sock:
            server_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_sock.bind((host, port))
            server_sock.listen(1)
            bound = server_sock.getsockname()
            log.info("listening on %s:%d", bound[0], bound[1])
            if on_listening is not None:
                on_listening(bound)
            conn, addr = server_sock.accept()
    # bind raises OverflowError for ports outside 0-65535
    except (OSError, OverflowError) as e:
        raise TransportError(f"could not accept a client on {host}:{port}: {e}") from e
    log.info("accepted connection from %s:%d", addr[0], addr[1])
    return conn, addr


def connect(host: str, port: int, timeout: Optional[float] = CONNECT_TIMEOUT) -> socket.socket:
    """Opens a TCP connection; the timeout only bounds the connect itself."""
    try:
        sock = socket.create_connection((host, port), timeout=timeout or None)
    except (OSError, OverflowError) as e:
        raise TransportError(f"could not connect to {host}:{port}: {e}") from e
    sock.settimeout(None)
    log.info("connected to %s:%d", host, port)
    return sock
