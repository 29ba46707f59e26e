"""Aggregate query helpers.

COUNT and MAX come back from session.exec() as a bare value, a Row, or None
when no rows matched (MAX of the waiting list of an empty sub-event).
"""
from typing import Any


def scalar_int(x: Any, default: int = 0) -> int:
    """Convert COUNT/MAX result to int. Handles int, None or 1-tuple/Row."""
    if x is None:
        return default
    if isinstance(x, (tuple, list)) or hasattr(x, "_mapping"):
        x = x[0]
        if x is None:
            return default
    return int(x)
