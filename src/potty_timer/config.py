"""Runtime settings, read from the environment (and a local .env file)."""

import os

from dotenv import load_dotenv

load_dotenv(dotenv_path=".env")

# ============================================================
# STORAGE
# ============================================================

# Only SQLite URLs are accepted; ordering ties rely on its implicit rowid
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./potty-timer.db")

# ============================================================
# EXPIRY TICK
# ============================================================

# Seconds between background expiry passes; <= 0 disables the tick
TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", "1.0"))

# ============================================================
# SERVER
# ============================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8003"))

# ============================================================
# TIMER LIMITS
# ============================================================

# Largest value an INTEGER column holds; durations have no other upper bound
MAX_STORED_INTEGER = 2**63 - 1

DURATION_PRESETS = [
    {"label": "30 Minutes", "value": 1800},
    {"label": "1 Hour", "value": 3600},
    {"label": "2 Hours", "value": 7200},
]
