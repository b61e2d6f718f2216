"""Runtime constants and .env loading.

WHY: A handful of pacing constants (minimum step duration, glyph width
factor, event log size) and server settings need to be tunable without
touching code. Keeping them as plain module-level values makes them easy
to find and override.

HOW: python-dotenv loads the .env file on import. Each constant is read
with os.getenv and a typed default. Malformed values fall back to the
default instead of failing at import time.

RULES:
- Every constant has a sane default; the .env file is optional
- Invalid numbers in the environment never raise, they use the default
- Nothing here is per-session state; sessions read these at construction
"""

from __future__ import annotations

import math
import os

from dotenv import load_dotenv

# Load .env from the working directory
load_dotenv()


def _env_float(name: str, default: float) -> float:
    """Read a finite float from the environment, or return ``default``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if math.isfinite(value) else default


def _env_int(name: str, default: int) -> int:
    """Read an integer from the environment, or return ``default``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Pacing
# ---------------------------------------------------------------------------

MIN_STEP_MS = max(1, _env_int("RSVP_MIN_STEP_MS", 20))
"""Floor for a single timed step, prevents sub-frame timer storms."""

EVENT_LOG_SIZE = max(1, _env_int("RSVP_EVENT_LOG_SIZE", 200))

CHAR_WIDTH_FACTOR = _env_float("RSVP_CHAR_WIDTH_FACTOR", 0.6)
"""Average glyph advance as a fraction of the font size."""

MIN_PX_PER_SECOND = _env_float("RSVP_MIN_PX_PER_SECOND", 10.0)

FRAME_INTERVAL_S = _env_float("RSVP_FRAME_INTERVAL_S", 1.0 / 60.0)

# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------

MAX_SESSIONS = max(1, _env_int("RSVP_MAX_SESSIONS", 100))
SESSION_TTL_SECONDS = max(1, _env_int("RSVP_SESSION_TTL_SECONDS", 3600))
API_HOST = os.getenv("RSVP_API_HOST", "127.0.0.1")
API_PORT = _env_int("RSVP_API_PORT", 8000)
