"""
Shared utility functions for the Elan platform.

This module contains common utilities used across the codebase.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix (e.g., "evt", "loc", "pub")

    Returns:
        A unique ID like "pub_a1b2c3d4e5f6"
    """
    uid = uuid.uuid4().hex[:12]
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def slugify(name: str) -> str:
    """URL-friendly slug: lowercase, runs of other characters become '-'."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
