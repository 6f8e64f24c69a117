"""
Date formatting for reports, in Australia/Sydney time.

Stored datetimes are naive UTC; they are converted before formatting.
"""
from datetime import datetime, date, timezone
from zoneinfo import ZoneInfo

SYDNEY_TZ = ZoneInfo('Australia/Sydney')


def to_datetime(value):
    """Coerce a datetime, date or ISO string into an aware UTC datetime (None if impossible)"""
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_sydney(value):
    dt = to_datetime(value)
    return dt.astimezone(SYDNEY_TZ) if dt else None


def format_date_sydney(value):
    """DD/MM/YYYY in Sydney time, or an empty string"""
    local = to_sydney(value)
    if not local:
        return ''
    return local.strftime('%d/%m/%Y')


def format_clearance_date_sydney(value):
    """Clearance style date, e.g. '26 February 2025', or 'Unknown'"""
    local = to_sydney(value)
    if not local:
        return 'Unknown'
    # Non-breaking space keeps the day and month together in rendered reports
    return f"{local.day}\u00a0{local.strftime('%B %Y')}"


def today_sydney():
    return datetime.now(SYDNEY_TZ).strftime('%d/%m/%Y')


def now_sydney_datetime():
    """Current date and time in Sydney, e.g. '05/03/2025 14:07'"""
    return datetime.now(SYDNEY_TZ).strftime('%d/%m/%Y %H:%M')
