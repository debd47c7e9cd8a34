from datetime import datetime, timezone


def utcnow() -> datetime:
    # naive UTC, matching how every DateTime column is stored
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso(dt_str: str) -> datetime:
    """
    Parse an ISO-8601 string like "2026-01-20T18:00:00" or "2026-01-20T18:00:00Z".
    Values with an offset are converted to naive UTC.
    """
    if not isinstance(dt_str, str):
        raise ValueError("datetime must be an ISO-8601 string")
    value = dt_str.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
