"""inventory_shared.config — Environment variables, constants, logging.

Values are read once at import time; tests override module attributes.
"""
from __future__ import annotations

import logging
import os

__all__ = [
    "AUTH0_AUDIENCE",
    "AUTH0_DOMAIN",
    "CORS_ORIGIN",
    "INVENTORY_BUCKET",
    "INVENTORY_KEY",
    "INVENTORY_PREFIX",
    "LOG_LEVEL",
    "SCOPE_READ",
    "SCOPE_WRITE",
    "STORE_REGION",
    "UPLOADS_KEY",
    "VALID_STATUSES",
    "configure_logging",
]

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

AUTH0_DOMAIN: str = os.environ.get("AUTH0_DOMAIN", "").strip()
AUTH0_AUDIENCE: str = os.environ.get("AUTH0_AUDIENCE", "").strip()
INVENTORY_BUCKET: str = os.environ.get("INVENTORY_BUCKET", "").strip()
INVENTORY_PREFIX: str = os.environ.get("INVENTORY_PREFIX", "inventory").strip()
STORE_REGION: str = os.environ.get("STORE_REGION", "us-west-2")
CORS_ORIGIN: str = os.environ.get("CORS_ORIGIN", "*")
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

INVENTORY_KEY = "inventory.json"
UPLOADS_KEY = "uploads.json"

SCOPE_READ = "inventory:read"
SCOPE_WRITE = "inventory:write"

VALID_STATUSES = ("Available", "On Hold", "Sold", "Draft")


def configure_logging() -> logging.Logger:
    """Set the Lambda root logger level and return it."""
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    return logger
