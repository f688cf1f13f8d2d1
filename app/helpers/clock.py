from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from flask import current_app, has_app_context


def discount_timezone():
    name = "UTC"
    if has_app_context():
        name = current_app.config.get("DISCOUNT_TIMEZONE", "UTC")
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_local(now_utc):
    """Convert a naive UTC timestamp to the discount clock (naive result)."""
    return now_utc.replace(tzinfo=timezone.utc).astimezone(discount_timezone()).replace(tzinfo=None)


def local_to_utc(local_dt):
    return local_dt.replace(tzinfo=discount_timezone()).astimezone(timezone.utc).replace(tzinfo=None)


def js_weekday(dt):
    """0 = Sunday ... 6 = Saturday."""
    return (dt.weekday() + 1) % 7


def utcnow():
    return datetime.utcnow()
