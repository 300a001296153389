import os
import socket
import threading

import pytest

from hybridchat.common.protocol import Role
from hybridchat.common.transport import FramedTransport
from hybridchat.crypto import rsa_kex
from hybridchat.crypto.aes import SessionKey
from hybridchat.session import ChatSession


class ChunkedStream:
    """
    In-memory loopback stream: bytes sent can be read back, but every
    send() and recv() call moves at most `chunk` bytes.
    """

    def __init__(self, chunk: int = 1024, data: bytes = b""):
        self.chunk = chunk
        self.buffer = bytearray(data)
        self.pos = 0
        self.send_calls = 0
        self.recv_calls = 0
        self.closed = False

    def send(self, data) -> int:
        self.send_calls += 1
        n = min(len(data), self.chunk)
        self.buffer.extend(data[:n])
        return n

    def recv(self, n: int) -> bytes:
        self.recv_calls += 1
        n = min(n, self.chunk, len(self.buffer) - self.pos)
        out = bytes(self.buffer[self.pos:self.pos + n])
        self.pos += n
        return out

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def chunked_stream():
    return ChunkedStream


@pytest.fixture
def socket_pair():
    a, b = socket.socketpair()
    yield a, b
    for s in (a, b):
        try:
            s.close()
        except OSError:
            pass


@pytest.fixture(scope="session")
def keypair():
    """One RSA keypair for the whole run; RSA generation is slow."""
    return rsa_kex.generate_keypair()


@pytest.fixture(scope="session")
def other_keypair():
    return rsa_kex.generate_keypair()


@pytest.fixture
def keyed_pair(socket_pair):
    """Two sessions over a socketpair that already share a session key."""
    a, b = socket_pair
    secret = os.urandom(32)
    initiator = ChatSession(FramedTransport(a), SessionKey(secret), Role.INITIATOR)
    responder = ChatSession(FramedTransport(b), SessionKey(secret), Role.RESPONDER)
    yield initiator, responder
    initiator.shutdown()
    responder.shutdown()


def run_in_thread(target, *args):
    """Runs target in a thread; returns (thread, box) where box holds 'result' or 'error'."""
    box = {}

    def runner():
        try:
            box["result"] = target(*args)
        except BaseException as e:  # handed back to the test thread
            box["error"] = e

    thread = threading.Thread(target=runner, daemon=True)
    thread.start()
    return thread, box


@pytest.fixture
def spawn():
    return run_in_thread
