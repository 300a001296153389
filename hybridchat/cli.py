"""Command-line entry point: `hybridchat server [port]` or `hybridchat client <ip> <port>`."""

from __future__ import annotations

import argparse
import sys

from hybridchat import client, server
from hybridchat.common.config import DEFAULT_PORT, LOG_LEVEL
from hybridchat.common.utils import configure_logging


def port_number(value: str) -> int:
    """argparse type for a TCP port; also used by the interactive prompt."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not a number")
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"{port} is outside 0-65535")
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hybridchat",
        description="Two-party chat over TCP with an RSA/AES hybrid encrypted channel",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log handshake and session details")
    sub = parser.add_subparsers(dest="mode")

    server = sub.add_parser("server", help="Wait for one client and chat with it")
    server.add_argument("port", nargs="?", type=port_number, default=DEFAULT_PORT, help=f"Port to listen on (default {DEFAULT_PORT})")

    client = sub.add_parser("client", help="Connect to a waiting server")
    client.add_argument("ip", help="Server address")
    client.add_argument("port", type=port_number, help="Server port")
    return parser


def prompt_args(read=input) -> argparse.Namespace | None:
    """Asks for the mode, IP and port when none were given on the command line."""
    mode = read("Mode (server/client): ").strip().lower()
    try:
        if mode == "server":
            return argparse.Namespace(mode=mode, port=port_number(read("Port: ")), verbose=False)
        if mode == "client":
            ip = read("IP: ").strip()
            return argparse.Namespace(mode=mode, ip=ip, port=port_number(read("Port: ")), verbose=False)
    except argparse.ArgumentTypeError as e:
        print(f"Bad port: {e}")
        return None
    print("Unrecognized mode. Use: server | client")
    return None


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else LOG_LEVEL)

    if args.mode is None:
        try:
            args = prompt_args()
        except EOFError:
            return 1
        if args is None:
            return 1

    if args.mode == "server":
        return server.main(args.port)
    return client.main(args.ip, args.port)


if __name__ == "__main__":
    sys.exit(main())
