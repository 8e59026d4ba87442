"""
In-memory Firestore stand-in for local development (USE_MOCK_DB=true) and tests.

Implements the subset of the google-cloud-firestore client API used by the
services in this package:

- collection(name).document(id) / auto-id documents
- get / set(merge=...) / update(option=...) / create / delete
- where / order_by / limit / stream / get on queries
- on_snapshot live queries that re-emit the full result set after every write
- SERVER_TIMESTAMP, Increment and DELETE_FIELD transforms
- batch() write batches committed all-or-nothing
- write_option(last_update_time=...) preconditions

Writes are optionally persisted to a JSON file so the dev server keeps state
across restarts.
"""

import copy
import json
import logging
import os
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions

logger = logging.getLogger(__name__)

_MISSING = object()


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def wrapped(left, right):
        if left is _MISSING or left is None:
            return False
        try:
            return op(left, right)
        except TypeError:
            return False
    return wrapped


def _sort_key(value: Any):
    # nulls sort first, as in Firestore
    return (value is not None, value)


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda left, right: left is not _MISSING and left == right,
    "!=": lambda left, right: left is not _MISSING and left != right,
    "<": _compare(lambda left, right: left < right),
    "<=": _compare(lambda left, right: left <= right),
    ">": _compare(lambda left, right: left > right),
    ">=": _compare(lambda left, right: left >= right),
    "in": lambda left, right: left is not _MISSING and left in right,
    "not-in": lambda left, right: left is not _MISSING and left not in right,
    "array-contains": lambda left, right: isinstance(left, list) and right in left,
    "array-contains-any": lambda left, right: isinstance(left, list) and any(v in left for v in right),
}


class _StoredDocument:
    __slots__ = ("data", "create_time", "update_time")

    def __init__(self, data: Dict, create_time: datetime, update_time: datetime):
        self.data = data
        self.create_time = create_time
        self.update_time = update_time


class _WriteOption:
    def __init__(self, last_update_time: Optional[datetime] = None, exists: Optional[bool] = None):
        self.last_update_time = last_update_time
        self.exists = exists


class MockDocumentSnapshot:
    def __init__(self, reference: "MockDocumentReference", stored: Optional[_StoredDocument]):
        self.reference = reference
        self.id = reference.id
        self.exists = stored is not None
        self._data = copy.deepcopy(stored.data) if stored else None
        self.create_time = stored.create_time if stored else None
        self.update_time = stored.update_time if stored else None

    def to_dict(self) -> Optional[Dict]:
        return copy.deepcopy(self._data) if self._data is not None else None

    def get(self, field_path: str) -> Any:
        if self._data is None:
            return None
        return self._data.get(field_path)


class MockWatch:
    """Handle returned by on_snapshot; unsubscribe() stops delivery immediately."""

    def __init__(self, db: "MockFirestore", query: "MockQuery", callback: Callable):
        self._db = db
        self._query = query
        self._callback = callback
        self._lock = threading.RLock()
        self.closed = False

    def _deliver(self) -> None:
        with self._lock:
            if self.closed:
                return
            docs = self._query.get()
            self._callback(docs, [], datetime.now(timezone.utc))

    def unsubscribe(self) -> None:
        with self._lock:
            self.closed = True
        self._db._remove_watch(self)


class MockQuery:
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"

    def __init__(self, db: "MockFirestore", collection_name: str, filters=None, orders=None, limit_count=None):
        self._db = db
        self._collection_name = collection_name
        self._filters = list(filters or [])
        self._orders = list(orders or [])
        self._limit = limit_count

    def _copy(self, **changes) -> "MockQuery":
        return MockQuery(
            self._db,
            self._collection_name,
            filters=changes.get("filters", self._filters),
            orders=changes.get("orders", self._orders),
            limit_count=changes.get("limit_count", self._limit),
        )

    def where(self, field_path: Optional[str] = None, op_string: Optional[str] = None, value: Any = None, *, filter=None) -> "MockQuery":
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        if op_string not in _OPERATORS:
            raise ValueError(f"Unsupported operator: {op_string}")
        return self._copy(filters=self._filters + [(field_path, op_string, value)])

    def order_by(self, field_path: str, direction: str = ASCENDING) -> "MockQuery":
        return self._copy(orders=self._orders + [(field_path, direction)])

    def limit(self, count: int) -> "MockQuery":
        return self._copy(limit_count=count)

    def _matches(self, data: Dict) -> bool:
        for field_path, op_string, value in self._filters:
            if not _OPERATORS[op_string](data.get(field_path, _MISSING), value):
                return False
        # Firestore omits documents that lack an ordered-by field
        return all(field_path in data for field_path, _ in self._orders)

    def get(self, transaction=None) -> List[MockDocumentSnapshot]:
        collection = MockCollection(self._db, self._collection_name)
        with self._db._lock:
            items = [
                (doc_id, stored)
                for doc_id, stored in self._db._collections.get(self._collection_name, {}).items()
                if self._matches(stored.data)
            ]
            for field_path, direction in reversed(self._orders):
                items.sort(
                    key=lambda item, field_path=field_path: _sort_key(item[1].data.get(field_path)),
                    reverse=direction == self.DESCENDING,
                )
            if self._limit is not None:
                items = items[: self._limit]
            return [MockDocumentSnapshot(collection.document(doc_id), stored) for doc_id, stored in items]

    def stream(self, transaction=None):
        return iter(self.get())

    def on_snapshot(self, callback: Callable) -> MockWatch:
        watch = MockWatch(self._db, self, callback)
        self._db._add_watch(self._collection_name, watch)
        watch._deliver()
        return watch


class MockCollection(MockQuery):
    def __init__(self, db: "MockFirestore", name: str):
        super().__init__(db, name)
        self.id = name

    def document(self, document_id: Optional[str] = None) -> "MockDocumentReference":
        return MockDocumentReference(self._db, self._collection_name, document_id or uuid.uuid4().hex[:20])

    def add(self, document_data: Dict, document_id: Optional[str] = None):
        ref = self.document(document_id)
        ref.create(document_data)
        return ref.get().update_time, ref


class MockDocumentReference:
    def __init__(self, db: "MockFirestore", collection_name: str, document_id: str):
        self._db = db
        self._collection_name = collection_name
        self.id = document_id

    @property
    def path(self) -> str:
        return f"{self._collection_name}/{self.id}"

    def get(self, field_paths=None, transaction=None) -> MockDocumentSnapshot:
        with self._db._lock:
            stored = self._db._collections.get(self._collection_name, {}).get(self.id)
            return MockDocumentSnapshot(self, stored)

    def create(self, document_data: Dict):
        with self._db._lock:
            self._create(document_data)
        self._db._after_write(self._collection_name)

    def set(self, document_data: Dict, merge: bool = False):
        with self._db._lock:
            self._set(document_data, merge)
        self._db._after_write(self._collection_name)

    def update(self, field_updates: Dict, option: Optional[_WriteOption] = None):
        with self._db._lock:
            self._update(field_updates, option)
        self._db._after_write(self._collection_name)

    def delete(self):
        with self._db._lock:
            self._delete()
        self._db._after_write(self._collection_name)

    # The underscored writers expect the store lock to be held.

    def _create(self, document_data: Dict):
        docs = self._db._collections.setdefault(self._collection_name, {})
        if self.id in docs:
            raise gcp_exceptions.AlreadyExists(f"Document already exists: {self.path}")
        now = self._db._next_timestamp()
        docs[self.id] = _StoredDocument(self._db._apply_transforms({}, document_data, now), now, now)

    def _set(self, document_data: Dict, merge: bool = False):
        docs = self._db._collections.setdefault(self._collection_name, {})
        now = self._db._next_timestamp()
        existing = docs.get(self.id)
        base = copy.deepcopy(existing.data) if (existing and merge) else {}
        data = self._db._apply_transforms(base, document_data, now)
        create_time = existing.create_time if existing else now
        docs[self.id] = _StoredDocument(data, create_time, now)

    def _update(self, field_updates: Dict, option: Optional[_WriteOption] = None):
        existing = self._db._collections.get(self._collection_name, {}).get(self.id)
        if existing is None:
            raise gcp_exceptions.NotFound(f"No document to update: {self.path}")
        if option is not None and option.last_update_time is not None:
            if existing.update_time != option.last_update_time:
                raise gcp_exceptions.FailedPrecondition(f"Document {self.path} was modified concurrently")
        now = self._db._next_timestamp()
        existing.data = self._db._apply_transforms(copy.deepcopy(existing.data), field_updates, now)
        existing.update_time = now

    def _delete(self):
        self._db._collections.get(self._collection_name, {}).pop(self.id, None)


class MockWriteBatch:
    """
    Queues writes and applies them all-or-nothing on commit(). If any write
    fails, every document the batch touched is restored.
    """

    def __init__(self, db: "MockFirestore"):
        self._db = db
        self._writes: List[tuple] = []

    def create(self, reference: MockDocumentReference, document_data: Dict) -> "MockWriteBatch":
        self._writes.append((reference, "_create", (document_data,)))
        return self

    def set(self, reference: MockDocumentReference, document_data: Dict, merge: bool = False) -> "MockWriteBatch":
        self._writes.append((reference, "_set", (document_data, merge)))
        return self

    def update(self, reference: MockDocumentReference, field_updates: Dict, option: Optional[_WriteOption] = None) -> "MockWriteBatch":
        self._writes.append((reference, "_update", (field_updates, option)))
        return self

    def delete(self, reference: MockDocumentReference) -> "MockWriteBatch":
        self._writes.append((reference, "_delete", ()))
        return self

    def commit(self) -> None:
        touched = set()
        with self._db._lock:
            saved = {}
            for reference, _, _ in self._writes:
                key = (reference._collection_name, reference.id)
                if key not in saved:
                    stored = self._db._collections.get(reference._collection_name, {}).get(reference.id)
                    saved[key] = copy.deepcopy(stored)
            try:
                for reference, method, args in self._writes:
                    getattr(reference, method)(*args)
                    touched.add(reference._collection_name)
            except Exception:
                for (collection_name, doc_id), stored in saved.items():
                    docs = self._db._collections.setdefault(collection_name, {})
                    if stored is None:
                        docs.pop(doc_id, None)
                    else:
                        docs[doc_id] = stored
                raise
        self._writes = []
        for collection_name in touched:
            self._db._after_write(collection_name)


class MockFirestore:
    """Thread-safe in-memory document store mirroring the Firestore client surface."""

    def __init__(self, path: Optional[str] = None):
        self._path = path
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, _StoredDocument]] = {}
        self._watches: Dict[str, List[MockWatch]] = {}
        self._last_timestamp: Optional[datetime] = None
        if path and os.path.exists(path):
            self._load()

    def collection(self, name: str) -> MockCollection:
        return MockCollection(self, name)

    def collections(self) -> List[MockCollection]:
        with self._lock:
            return [MockCollection(self, name) for name in self._collections]

    def batch(self) -> MockWriteBatch:
        return MockWriteBatch(self)

    @staticmethod
    def write_option(**kwargs) -> _WriteOption:
        return _WriteOption(**kwargs)

    def reset(self) -> None:
        with self._lock:
            self._collections.clear()

    def _next_timestamp(self) -> datetime:
        # strictly increasing so last_update_time preconditions are unambiguous
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _apply_transforms(self, base: Dict, updates: Dict, now: datetime) -> Dict:
        for key, value in updates.items():
            if value is firestore.SERVER_TIMESTAMP:
                base[key] = now
            elif value is firestore.DELETE_FIELD:
                base.pop(key, None)
            elif isinstance(value, firestore.Increment):
                base[key] = (base.get(key) or 0) + value.value
            else:
                base[key] = copy.deepcopy(value)
        return base

    def _add_watch(self, collection_name: str, watch: MockWatch) -> None:
        with self._lock:
            self._watches.setdefault(collection_name, []).append(watch)

    def _remove_watch(self, watch: MockWatch) -> None:
        with self._lock:
            for watches in self._watches.values():
                if watch in watches:
                    watches.remove(watch)

    def _after_write(self, collection_name: str) -> None:
        with self._lock:
            watches = list(self._watches.get(collection_name, []))
            if self._path:
                self._save()
        for watch in watches:
            try:
                watch._deliver()
            except Exception as e:
                logger.error(f"Snapshot listener on '{collection_name}' failed: {e}", exc_info=True)

    def _save(self) -> None:
        payload = {
            name: {doc_id: stored.data for doc_id, stored in docs.items()}
            for name, docs in self._collections.items()
        }
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(payload, f, default=_encode_value, indent=2)

    def _load(self) -> None:
        with open(self._path, "r", encoding="utf-8") as f:
            payload = json.load(f, object_hook=_decode_value)
        now = self._next_timestamp()
        for name, docs in payload.items():
            self._collections[name] = {
                doc_id: _StoredDocument(data, now, now) for doc_id, data in docs.items()
            }
        logger.info(f"[MOCK DB] Loaded {len(payload)} collection(s) from {self._path}")


def _encode_value(value: Any):
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode_value(obj: Dict):
    if set(obj.keys()) == {"__datetime__"}:
        return datetime.fromisoformat(obj["__datetime__"])
    return obj


_mock_db: Optional[MockFirestore] = None


def get_mock_db(path: Optional[str] = None) -> MockFirestore:
    """Get or create the process-wide mock database."""
    global _mock_db
    if _mock_db is None:
        _mock_db = MockFirestore(path)
    return _mock_db
