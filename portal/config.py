"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── AI assistant ─────────────────────────────────────────────────────
MODEL_NAME = "gpt-4.1-mini"
ASSISTANT_MAX_MESSAGES = 10

# ── PIN gate ─────────────────────────────────────────────────────────
PIN_MIN_LENGTH = 4
PIN_MAX_LENGTH = 6
PIN_HASH_METHOD = "pbkdf2:sha256"

# ── Sessions ─────────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
SESSION_COOKIE_NAME = "portal_session"
SESSION_EXPIRY_HOURS = 24

# ── Redirect targets for failed access checks ────────────────────────
LOGIN_URL = "/login"
DASHBOARD_URL = "/dashboard"

# ── Logging ──────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
