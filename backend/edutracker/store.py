"""
Record Store - canonical collections addressed by (collection, id).

Stores hold plain record dicts and apply no business rules. Two
implementations share the interface:
- SqlRecordStore: the local cache, one SQLAlchemy table per collection
- MemoryRecordStore: in-process dicts, used as a test double
"""

import abc
import copy
import time
from typing import Dict, List, Optional
from sqlalchemy.orm import sessionmaker

from edutracker.models import MODELS_BY_COLLECTION
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("db")

STUDENTS = "students"
EVALUATIONS = "evaluations"
GROUPS = "reinforcement_groups"
ATTENDANCE = "attendance"
HISTORY = "reinforcement_history"
CLASSES = "classes"
COMPETENCIES = "competencies"
INVITES = "invites"

COLLECTIONS = (STUDENTS, EVALUATIONS, GROUPS, ATTENDANCE, HISTORY, CLASSES, COMPETENCIES, INVITES)


def _matches(record: dict, where: dict) -> bool:
    return all(record.get(key) == value for key, value in where.items())


class RecordStore(abc.ABC):
    """Generic get/list/put/delete over named collections."""

    @abc.abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[dict]:
        """Return the record or None."""

    @abc.abstractmethod
    def list(self, collection: str, **where) -> List[dict]:
        """Return all records, optionally filtered by equality on top-level keys."""

    @abc.abstractmethod
    def put(self, collection: str, record: dict) -> dict:
        """Insert or replace the record keyed by record['id']."""

    @abc.abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        """Remove the record. Returns False when it did not exist."""

    @abc.abstractmethod
    def replace_all(self, collection: str, records: List[dict]) -> int:
        """Overwrite the whole collection with the given records."""


class SqlRecordStore(RecordStore):
    """Local cache backed by SQLAlchemy. Each call is its own committed transaction."""

    def __init__(self, session_factory: sessionmaker):
        self._sessions = session_factory

    @property
    def sessions(self) -> sessionmaker:
        return self._sessions

    @staticmethod
    def _model(collection: str):
        try:
            return MODELS_BY_COLLECTION[collection]
        except KeyError:
            raise ValueError("Unknown collection: {}".format(collection)) from None

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        model = self._model(collection)
        with self._sessions() as db:
            row = db.get(model, record_id)
            return row.to_record() if row else None

    def list(self, collection: str, **where) -> List[dict]:
        model = self._model(collection)
        with self._sessions() as db:
            query = db.query(model)
            # JSON list columns cannot be compared in SQL; filter those in Python
            sql_where = {k: v for k, v in where.items() if k not in model.JSON_FIELDS}
            if sql_where:
                query = query.filter_by(**sql_where)
            records = [row.to_record() for row in query.all()]
        if len(sql_where) != len(where):
            records = [r for r in records if _matches(r, where)]
        return records

    def write_row(self, db, collection: str, record: dict):
        """Insert or replace a record inside the caller's transaction."""
        model = self._model(collection)
        row = db.get(model, record["id"])
        if row is None:
            row = model()
            db.add(row)
        row.apply_record(record)

    def delete_row(self, db, collection: str, record_id: str) -> bool:
        """Delete a record inside the caller's transaction."""
        row = db.get(self._model(collection), record_id)
        if row is None:
            return False
        db.delete(row)
        return True

    def put(self, collection: str, record: dict) -> dict:
        with self._sessions.begin() as db:
            self.write_row(db, collection, record)
        log_with_context(logger, "DEBUG", "Stored {} record".format(collection),
                         context={"collection": collection, "record_id": record["id"]})
        return record

    def delete(self, collection: str, record_id: str) -> bool:
        with self._sessions.begin() as db:
            existed = self.delete_row(db, collection, record_id)
        if existed:
            log_with_context(logger, "DEBUG", "Deleted {} record".format(collection),
                             context={"collection": collection, "record_id": record_id})
        return existed

    def replace_all(self, collection: str, records: List[dict]) -> int:
        start_time = time.time()
        model = self._model(collection)
        with self._sessions.begin() as db:
            db.query(model).delete()
            for record in records:
                db.add(model().apply_record(record))
        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "INFO",
            "Replaced {} collection with {} records".format(collection, len(records)),
            context={"collection": collection},
            extra_data={"duration_ms": round(duration_ms, 2)})
        return len(records)


class MemoryRecordStore(RecordStore):
    """In-process store. Records are deep-copied in and out like a real store."""

    def __init__(self, initial: Dict[str, List[dict]] = None):
        self._data: Dict[str, Dict[str, dict]] = {}
        for collection, records in (initial or {}).items():
            self.replace_all(collection, records)

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self._data.setdefault(collection, {})

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        record = self._collection(collection).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def list(self, collection: str, **where) -> List[dict]:
        return [copy.deepcopy(r) for r in self._collection(collection).values() if _matches(r, where)]

    def put(self, collection: str, record: dict) -> dict:
        self._collection(collection)[record["id"]] = copy.deepcopy(record)
        return record

    def delete(self, collection: str, record_id: str) -> bool:
        return self._collection(collection).pop(record_id, None) is not None

    def replace_all(self, collection: str, records: List[dict]) -> int:
        self._data[collection] = {r["id"]: copy.deepcopy(r) for r in records}
        return len(records)
