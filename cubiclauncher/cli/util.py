"""Formatting helpers of the CLI.
"""

from datetime import datetime

from typing import Union


def from_iso_date(raw: str) -> datetime:
    if raw[-1] == "Z":
        raw = raw[:-1] + "+00:00"
    return datetime.fromisoformat(raw)


def format_locale_date(raw: Union[str, float]) -> str:
    if isinstance(raw, float):
        return datetime.fromtimestamp(raw).strftime("%c")
    else:
        return from_iso_date(str(raw)).strftime("%c")


def format_percent(completed: int, total: int) -> str:
    if total <= 0:
        return "100%"
    return f"{min(100, completed * 100 // total):3d}%"


def format_expiry(expires_at: Union[None, float], now: float) -> str:
    """Return a short duration until expiry, with proper suffix s, m, h or d.
    """
    if expires_at is None:
        return "-"
    n = expires_at - now
    if n <= 0:
        return "expired"
    elif n < 60:
        return f"{int(n)} s"
    elif n < 3600:
        return f"{int(n / 60)} m"
    elif n < 86400:
        return f"{int(n / 3600)} h"
    else:
        return f"{int(n / 86400)} d"
