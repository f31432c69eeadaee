"""Text helpers for the dashboard stats: paces, times, dates and trimmed numbers."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

_QUOTED_PACE = re.compile(r"(\d+)'(\d+)''")
_LEADING_INT = re.compile(r"[+-]?\d+")


def to_number(value) -> float:
    """Coerce a JSON value to float; None, junk and NaN become 0."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def _round_half_up(n: float) -> int:
    return int(math.floor(n + 0.5))


def to_fixed_trim(n: float, digits: int) -> str:
    """Round to ``digits`` decimals and drop trailing zeros (510.00 -> "510", 1.50 -> "1.5").

    Ties round away from zero (0.25 -> "0.3"), as the dashboard expects.
    """
    n = to_number(n)
    s = f"{Decimal(repr(n)).quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP):f}"
    s = re.sub(r"\.0+$", "", s)
    return re.sub(r"(\.\d*?)0+$", r"\1", s)


def format_date_dot(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return f"{dt.year}.{dt.month:02d}.{dt.day:02d}"


def format_pace(sec_per_km: float | None) -> str | None:
    """Seconds per km as 5'07''/km, or None if not a positive number."""
    if sec_per_km is None or not math.isfinite(sec_per_km) or sec_per_km <= 0:
        return None
    minutes, seconds = divmod(_round_half_up(sec_per_km), 60)
    return f"{minutes}'{seconds:02d}''/km"


def format_min_sec(sec: float | None) -> str | None:
    """Duration as M:SS (minutes are not wrapped into hours)."""
    if sec is None or not math.isfinite(sec) or sec <= 0:
        return None
    minutes, seconds = divmod(_round_half_up(sec), 60)
    return f"{minutes}:{seconds:02d}"


def _split_min_sec(text: str, sep: str) -> int | None:
    mm, _, ss = text.partition(sep)
    try:
        return int(mm) * 60 + int(ss)
    except ValueError:
        return None


def parse_baseline_time(text) -> int | None:
    """Parse a curated race time into seconds.

    "59:01" and "27.31" both mean minutes and seconds; anything else is
    read as whole minutes from its leading integer ("25 min" -> 1500).
    Returns None for empty or unparsable text.
    """
    if text is None:
        return None
    t = str(text).strip()
    if not t:
        return None
    if ":" in t:
        return _split_min_sec(t, ":")
    if "." in t:
        return _split_min_sec(t, ".")
    match = _LEADING_INT.match(t)
    return int(match.group()) * 60 if match else None


def parse_pace_text(text) -> int:
    """Parse a per-km pace into seconds; 0 when absent or unparsable.

    Accepts 6'05'', 6:05 and 6.05 (the dot separates seconds, it is not a
    fraction of a minute).
    """
    if not text:
        return 0
    t = str(text).strip()
    match = _QUOTED_PACE.search(t)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2))
    for sep in (":", "."):
        if sep in t:
            return _split_min_sec(t.split("/")[0].strip(), sep) or 0
    return 0


def iso_utc(dt: datetime) -> str:
    """UTC timestamp as 2024-05-01T07:00:00.000Z."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
