from datetime import timezone

from bson import ObjectId
from bson.errors import InvalidId

from envirotrack.utils.date_utils import to_datetime


class ValidationError(ValueError):
    """Raised by models when a document fails validation"""


def to_object_id(value):
    """Return an ObjectId for value, or None when it is not a valid id"""
    if isinstance(value, ObjectId):
        return value
    if not value:
        return None
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def parse_datetime(value, field=None):
    """Parse request input into a naive UTC datetime for storage"""
    if value is None or value == '':
        return None
    dt = to_datetime(value)
    if dt is None:
        if field:
            raise ValidationError(f'{field} must be a valid date')
        return None
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
