"""Compatibility shims and small shared helpers."""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta, timezone
from enum import Enum

try:  # Python 3.11+
    from datetime import UTC  # type: ignore[attr-defined]
except ImportError:  # Python 3.10
    UTC = timezone(timedelta(0))

try:  # Python 3.11+
    from enum import StrEnum  # type: ignore[attr-defined]
except ImportError:  # Python 3.10

    class StrEnum(str, Enum):
        """String-valued enum base compatible with Python 3.10+."""

        def __str__(self) -> str:
            return str(self.value)


_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a short random identifier (9 chars, base36 alphabet)."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
