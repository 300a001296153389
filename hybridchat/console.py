"""Console front-end: runs the handshake on a connected socket, then chats over stdin/stdout."""

from __future__ import annotations

import logging
from typing import Callable, Iterator

from hybridchat.common.config import EXIT_COMMAND, HANDSHAKE_TIMEOUT
from hybridchat.common.errors import ChatError
from hybridchat.common.protocol import Role
from hybridchat.common.transport import FramedTransport
from hybridchat.handshake import HandshakeCoordinator
from hybridchat.session import ChatSession

log = logging.getLogger(__name__)

PROMPT = "[You]: "


def console_lines(read: Callable[[str], str] = input, prompt: str = PROMPT) -> Iterator[str]:
    """Yields typed lines until EOF or the exit command. Blank lines are skipped."""
    while True:
        try:
            line = read(prompt)
        except EOFError:
            return
        if line.strip() == EXIT_COMMAND:
            return
        if line:
            yield line


def print_incoming(text: str) -> None:
    # Leading newline so the message does not land after our own prompt
    print(f"\n[Peer]: {text}\n{PROMPT}", end="", flush=True)


def run_chat(
    sock,
    role: Role,
    lines: Iterator[str] | None = None,
    deliver: Callable[[str], None] = print_incoming,
    handshake_timeout: float | None = HANDSHAKE_TIMEOUT,
) -> int:
    """
    Handshake + chat on an already connected socket.

    Returns a process exit status: 0 for a clean end, 1 if the handshake or
    the session failed (the reason is printed).
    """
    transport = FramedTransport(sock)

    # --- 1. Key exchange ---
    print("[*] Negotiating session key...")
    coordinator = HandshakeCoordinator(transport, role, timeout=handshake_timeout)
    try:
        session_key = coordinator.run()
    except ChatError as e:
        print(f"[!] Handshake failed: {e}")
        transport.close()
        return 1

    print("[*] Secure channel ready.")
    print(f"[*] Server key fingerprint: {coordinator.peer_fingerprint}")
    print("[*] Compare it with your peer over another channel; keys are not authenticated.")
    print(f"Type {EXIT_COMMAND} to quit.")

    # --- 2. Encrypted chat ---
    with ChatSession(transport, session_key, role) as session:
        error = session.run_duplex(lines if lines is not None else console_lines(), deliver)

    if error is not None:
        print(f"\n[!] Session ended: {error}")
        return 1
    print("\nConnection closed. Goodbye.")
    return 0
