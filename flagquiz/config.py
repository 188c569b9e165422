"""Client configuration: environment variables and timing constants."""

import os
from urllib.parse import urlsplit, urlunsplit

# --- Endpoints ---

BASE_URL = os.environ.get("FLAGQUIZ_BASE_URL", "http://localhost:8080").rstrip("/")


def _derive_ws_url(base_url: str) -> str:
    """http://host:port -> ws://host:port/ws (https -> wss)."""
    parts = urlsplit(base_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    return urlunsplit((scheme, parts.netloc, "/ws", "", ""))


WS_URL = os.environ.get("FLAGQUIZ_WS_URL") or _derive_ws_url(BASE_URL)

HTTP_TIMEOUT = float(os.environ.get("FLAGQUIZ_HTTP_TIMEOUT", "10"))

LOG_LEVEL = os.environ.get("FLAGQUIZ_LOG_LEVEL", "INFO").upper()

# --- Timing (seconds) ---

MCQ_HOLD_SECONDS = 2.0   # answer feedback before the next question, MCQ
MAP_HOLD_SECONDS = 4.0   # map highlight animation takes longer
COUNTDOWN_CLEAR_DELAY = 1.0
TICK_SECONDS = 1.0

# --- Room limits (mirrors the server's checks) ---

USERNAME_MIN_LEN = 4
USERNAME_MAX_LEN = 20
TIME_LIMIT_RANGE = (3, 10)      # minutes
NUM_QUESTIONS_RANGE = (10, 25)
