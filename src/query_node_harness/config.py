"""
config.py
---------
Runtime configuration for the harness, read from the environment.

Values may be supplied through a ``.env`` file, loaded when this module is
first imported.
"""

from __future__ import annotations
import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(var: str, default: int) -> int:
    try:
        return int(os.getenv(var, str(default)))
    except ValueError:
        return default


def _env_float(var: str, default: float) -> float:
    try:
        return float(os.getenv(var, str(default)))
    except ValueError:
        return default


# ────────────────────────────────────────────────────────────────────────────
# Endpoints
# ────────────────────────────────────────────────────────────────────────────
NODE_URL = os.getenv("NODE_URL", "ws://127.0.0.1:9944")
QUERY_NODE_URL = os.getenv("QUERY_NODE_URL", "http://127.0.0.1:8081/graphql")

# ────────────────────────────────────────────────────────────────────────────
# Accounts (dev URIs)
# ────────────────────────────────────────────────────────────────────────────
TREASURY_ACCOUNT_URI = os.getenv("TREASURY_ACCOUNT_URI", "//Alice")
SUDO_ACCOUNT_URI = os.getenv("SUDO_ACCOUNT_URI", "//Alice")

# ────────────────────────────────────────────────────────────────────────────
# Query node polling
# ────────────────────────────────────────────────────────────────────────────
QUERY_NODE_TIMEOUT_MS = _env_int("QUERY_NODE_TIMEOUT_MS", 210_000)
QUERY_NODE_RETRY_MS = _env_int("QUERY_NODE_RETRY_MS", 30_000)
QUERY_NODE_HTTP_TIMEOUT = _env_float("QUERY_NODE_HTTP_TIMEOUT", 30.0)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
