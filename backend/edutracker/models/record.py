"""
Record conversion shared by every cached collection model.

Rows are exchanged with the rest of the engine as plain dicts. Nested lists
are stored as JSON text columns; dates travel as ISO 8601 strings.
"""

import json
from datetime import date, datetime
from sqlalchemy import Date, DateTime


def _parse_json(value, default=None):
    """Parse JSON from string or return list/dict as-is."""
    if isinstance(value, (list, dict)):
        return value
    if isinstance(value, str):
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return default
    return default


def _parse_temporal(column_type, value):
    if not isinstance(value, str):
        return value
    if isinstance(column_type, DateTime):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return datetime.fromisoformat(value)
    if isinstance(column_type, Date):
        return date.fromisoformat(value[:10])
    return value


class RecordMixin:
    """Converts between ORM rows and plain record dicts."""

    # Columns holding a JSON-encoded list
    JSON_FIELDS = ()

    def to_record(self) -> dict:
        record = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if column.key in self.JSON_FIELDS:
                value = _parse_json(value, default=[])
            elif isinstance(value, (date, datetime)):
                value = value.isoformat()
            record[column.key] = value
        return record

    def apply_record(self, record: dict):
        """Copy known keys from a record dict onto this row. Unknown keys are ignored."""
        for column in self.__table__.columns:
            if column.key not in record:
                continue
            value = record[column.key]
            if column.key in self.JSON_FIELDS:
                value = json.dumps(_parse_json(value, default=[]))
            else:
                value = _parse_temporal(column.type, value)
            setattr(self, column.key, value)
        return self
