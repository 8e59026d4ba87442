"""
Firestore query and document helpers.

NOTE: For firebase_admin SDK we use positional `where` arguments, which still
work; the deprecation warning does not affect functionality.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def where_filter(query, field_path: str, op_string: str, value):
    """
    Helper function for Firestore queries.

    Usage:
        query = where_filter(collection, "status", "==", "active")
        query = where_filter(query, "creator_uid", "==", uid)
    """
    return query.where(field_path, op_string, value)


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Convert a Firestore timestamp value to an aware datetime.

    Handles DatetimeWithNanoseconds, protobuf-style Timestamps (to_datetime)
    and ISO strings written by older clients.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if hasattr(value, "to_datetime"):
        return to_datetime(value.to_datetime())
    if isinstance(value, str):
        try:
            return to_datetime(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            logger.warning(f"Unparseable timestamp string: {value!r}")
            return None
    logger.warning(f"Unknown timestamp type: {type(value)}")
    return None


def doc_to_dict(doc, *timestamp_fields: str) -> Dict:
    """Return document data with the given timestamp fields normalised."""
    data = doc.to_dict() or {}
    for field in timestamp_fields:
        if field in data:
            data[field] = to_datetime(data[field])
    return data
