"""
Boundary coercion helpers for loosely typed rows returned by stored procedures.

Aggregate rows arrive with numeric columns as numbers, numeric strings,
``Decimal`` or ``NULL``. Every numeric field goes through ``to_number`` before
use so downstream code only ever sees finite floats.
"""
from datetime import date, datetime
from decimal import Decimal
import math
from typing import Any, Optional

import pandas as pd


def to_number(value: Any) -> float:
    """Coerce ``value`` to a float, returning 0.0 for anything non-finite or unparsable."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        text_value = str(value).strip()
        if not text_value:
            return 0.0
        try:
            number = float(text_value)
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0


def to_optional_number(value: Any) -> Optional[float]:
    """Like ``to_number`` but keeps ``None`` as ``None``."""
    if value is None:
        return None
    return to_number(value)


def to_count(value: Any) -> int:
    return int(to_number(value))


def round2(value: Any) -> float:
    return round(to_number(value), 2)


def to_iso_date_or_none(value: Any) -> Optional[str]:
    """Return ``YYYY-MM-DD`` for any parseable date-ish value, else None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    parsed = pd.to_datetime(str(value).strip(), errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date().isoformat()
