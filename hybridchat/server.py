"""Server side: accept one client over plain TCP and act as the handshake responder."""

from hybridchat.common.config import DEFAULT_HOST, DEFAULT_PORT
from hybridchat.common.errors import TransportError
from hybridchat.common.protocol import Role
from hybridchat.console import run_chat
from hybridchat.network import listen_and_accept


def main(port: int = DEFAULT_PORT, host: str = DEFAULT_HOST) -> int:
    def announce(bound):
        print(f"[*] Listening on {bound[0]}:{bound[1]}, waiting for a client...")

    try:
        conn, addr = listen_and_accept(port, host, on_listening=announce)
    except TransportError as e:
        print(f"[!] {e}")
        return 1

    print(f"[+] Client connected from {addr[0]}:{addr[1]}")
    return run_chat(conn, Role.RESPONDER)
