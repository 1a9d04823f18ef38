"""
ID and timestamp generation for decision events.
"""

import uuid
from datetime import datetime, timezone

DECISION_ID_PREFIX = "dec"


def generate_decision_id() -> str:
    """Generate a fresh decision id, e.g. ``dec_9f1c...``."""
    return f"{DECISION_ID_PREFIX}_{uuid.uuid4().hex}"


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds, e.g. ``2024-01-01T00:00:00.000Z``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
