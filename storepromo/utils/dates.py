# storepromo/utils/dates.py
from datetime import datetime, timezone

from ..errors import InvalidDataError


def parse_iso8601(s, field: str = "date"):
    """ISO8601 string to naive UTC datetime; None passes through."""
    if s is None or s == "":
        return None
    if isinstance(s, datetime):
        return s
    s = str(s).strip()
    # support trailing 'Z' (UTC)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise InvalidDataError(f"{field} must be an ISO8601 datetime")
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def in_window(start, end, now=None) -> bool:
    """True when now lies in [start, end]; a None bound is open."""
    now = now or datetime.utcnow()
    if start and start > now:
        return False
    if end and end < now:
        return False
    return True
