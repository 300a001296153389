"""Client side: connect over plain TCP and act as the handshake initiator."""

from hybridchat.common.config import CONNECT_TIMEOUT
from hybridchat.common.errors import TransportError
from hybridchat.common.protocol import Role
from hybridchat.console import run_chat
from hybridchat.network import connect


def main(host: str, port: int) -> int:
    print(f"Connecting to {host}:{port}...")
    try:
        sock = connect(host, port, timeout=CONNECT_TIMEOUT)
    except TransportError as e:
        print(f"[!] {e}")
        return 1

    print("Connected!")
    return run_chat(sock, Role.INITIATOR)
