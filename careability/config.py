"""
Centralised configuration constants and environment helpers.
"""

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# ── Subject types ────────────────────────────────────────────────────
# Subject types that carry a list of entity ids (entityIds) rather than a
# single entity.
ENTITY_LIST_SUBJECTS = frozenset(
    name.strip()
    for name in os.getenv("ENTITY_LIST_SUBJECTS", "Patient").split(",")
    if name.strip()
)

# ── Rule engine ──────────────────────────────────────────────────────
MANAGE_ACTION = "manage"
ALL_SUBJECTS = "all"
DEFAULT_ALIASES = {
    "crud": ("create", "read", "update", "delete"),
}

# ── CLI ──────────────────────────────────────────────────────────────
MAX_PREVIEW_ROWS = 50
FIXTURES_ENV = "ABILITY_FIXTURES"

# ── Logging ──────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


def configure_logging(level: Optional[str] = None) -> None:
    """Apply LOG_LEVEL (or *level*) to the root logger."""
    logging.basicConfig(level=(level or LOG_LEVEL), format=LOG_FORMAT)
