from __future__ import annotations

from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return to_iso(utcnow())


def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_iso(raw: str | None) -> datetime | None:
    """Parse an ISO-8601 date or datetime. Naive values are taken as UTC.

    Returns None for blank input; raises ValueError for anything unparseable.
    """
    s = (raw or "").strip()
    if not s:
        return None
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    if len(s) == 10:
        d = date.fromisoformat(s)
        return datetime.combine(d, time.min, tzinfo=timezone.utc)
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def zone(name: str) -> tzinfo:
    """Resolve an IANA zone name ("Asia/Jakarta"). Raises ZoneInfoNotFoundError if unknown."""
    n = (name or "").strip()
    if not n or n.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(n)
