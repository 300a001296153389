"""Runtime settings read from the environment (and an optional .env file)."""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


# --- Network ---
DEFAULT_HOST = os.getenv("CHAT_HOST", "0.0.0.0")
DEFAULT_PORT = int(os.getenv("CHAT_PORT", "12345"))
CONNECT_TIMEOUT = _get_float("CHAT_CONNECT_TIMEOUT", 10.0)
# 0 disables the handshake timeout
HANDSHAKE_TIMEOUT = _get_float("CHAT_HANDSHAKE_TIMEOUT", 30.0)

# Largest frame we will send or accept (reject-before-allocate on receive)
MAX_FRAME_SIZE = int(os.getenv("CHAT_MAX_FRAME_SIZE", str(16 * 1024 * 1024)))

LOG_LEVEL = os.getenv("CHAT_LOG_LEVEL", "WARNING").upper()

# --- Protocol constants (not configurable; both peers must agree) ---
RSA_KEY_BITS = 2048
RSA_PUBLIC_EXPONENT = 65537
SESSION_KEY_SIZE = 32
EXIT_COMMAND = "/exit"
