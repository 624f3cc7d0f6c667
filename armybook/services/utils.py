from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def round_points(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, Decimal):
        dec_value = value
    else:
        try:
            dec_value = Decimal(str(value))
        except (InvalidOperation, ValueError):
            try:
                numeric = float(value)
            except (TypeError, ValueError):
                return 0
            dec_value = Decimal(str(numeric))
    return int(dec_value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def leading_int(value: Any) -> int | None:
    """Integer prefix of ``value`` (``"3+"`` -> 3), ``None`` when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
