"""
Document store used by the quiz engine.

Documents are addressed by slash paths ("xp_ledger/s1__p1"), the same layout
Firestore uses. The engine only needs four primitives from a backend:

- read a document by path
- atomic per-field increments (dotted field paths, e.g. "franchises.f1.totalXp")
- compare-and-set, expressed as read + conditional write inside a transaction
- all-or-nothing transactions

FirestoreStore is the production backend. MemoryStore keeps everything in
process and is used for local development and the test suite; it serializes
transactions under one lock and commits buffered writes in a single step.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Tuple
import copy
import logging
import threading

from firebase_admin import firestore

logger = logging.getLogger(__name__)

Doc = Dict[str, Any]


class DocumentExists(Exception):
    pass


def _nest(flat: Dict[str, Any]) -> Dict[str, Any]:
    """{"a.b": 1} -> {"a": {"b": 1}}"""
    out: Dict[str, Any] = {}
    for key, value in flat.items():
        parts = key.split(".")
        node = out
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
    return out


def _deep_merge(base: Doc, patch: Doc) -> Doc:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _split(path: str) -> Tuple[str, str]:
    collection, _, doc_id = path.rpartition("/")
    return collection, doc_id


# ============================================================================
# In-process backend
# ============================================================================

class MemoryTransaction:
    def __init__(self, store: "MemoryStore"):
        self._store = store
        self._writes: List[Tuple[str, str, Doc]] = []
        self._created: set = set()

    def get(self, path: str) -> Optional[Doc]:
        return self._store.get(path)

    def list(self, collection: str, order_by: Optional[str] = None) -> List[Tuple[str, Doc]]:
        return self._store.query(collection, order_by=order_by)

    def create(self, path: str, data: Doc) -> None:
        if path in self._created or self._store.get(path) is not None:
            raise DocumentExists(path)
        self._created.add(path)
        self._writes.append(("set", path, copy.deepcopy(data)))

    def set(self, path: str, data: Doc, merge: bool = False) -> None:
        self._writes.append(("merge" if merge else "set", path, copy.deepcopy(data)))

    def increment(self, path: str, deltas: Dict[str, float], fields: Optional[Doc] = None) -> None:
        self._writes.append(("increment", path, {"deltas": dict(deltas), "fields": copy.deepcopy(fields or {})}))


class MemoryStore:
    def __init__(self):
        self._docs: Dict[str, Doc] = {}
        self._lock = threading.RLock()

    # ---- plain reads / writes ----
    def get(self, path: str) -> Optional[Doc]:
        with self._lock:
            doc = self._docs.get(path)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, path: str, data: Doc, merge: bool = False) -> None:
        self.transaction(lambda tx: tx.set(path, data, merge=merge))

    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Doc]]:
        filters = filters or {}
        with self._lock:
            rows = []
            for path, doc in self._docs.items():
                parent, doc_id = _split(path)
                if parent != collection:
                    continue
                if all(doc.get(k) == v for k, v in filters.items()):
                    rows.append((doc_id, copy.deepcopy(doc)))
        if order_by:
            # Firestore leaves out documents that lack the ordering field
            rows = [r for r in rows if r[1].get(order_by) is not None]
            rows.sort(key=lambda r: r[1][order_by], reverse=descending)
        else:
            rows.sort(key=lambda r: r[0])
        return rows[:limit] if limit else rows

    # ---- transactions ----
    def transaction(self, fn: Callable[[MemoryTransaction], Any]) -> Any:
        with self._lock:
            tx = MemoryTransaction(self)
            result = fn(tx)
            self._commit(tx._writes)
            return result

    def _commit(self, writes: List[Tuple[str, str, Doc]]) -> None:
        # Stage every write against copies first; the live dict only changes
        # once all of them succeeded.
        staged: Dict[str, Optional[Doc]] = {}
        for op, path, data in writes:
            current = staged[path] if path in staged else copy.deepcopy(self._docs.get(path))
            staged[path] = self._apply(op, path, current, data)
        self._docs.update(staged)

    def _apply(self, op: str, path: str, current: Optional[Doc], data: Doc) -> Doc:
        if op == "set":
            return copy.deepcopy(data)
        doc = current or {}
        if op == "merge":
            return _deep_merge(doc, data)
        if op == "increment":
            for key, delta in data["deltas"].items():
                parts = key.split(".")
                node = doc
                for part in parts[:-1]:
                    node = node.setdefault(part, {})
                node[parts[-1]] = (node.get(parts[-1]) or 0) + delta
            return _deep_merge(doc, data["fields"])
        raise ValueError(f"unknown write op {op!r}")


# ============================================================================
# Firestore backend
# ============================================================================

class FirestoreTransaction:
    def __init__(self, db, transaction):
        self._db = db
        self._tx = transaction

    def get(self, path: str) -> Optional[Doc]:
        snap = self._db.document(path).get(transaction=self._tx)
        return (snap.to_dict() or {}) if snap.exists else None

    def list(self, collection: str, order_by: Optional[str] = None) -> List[Tuple[str, Doc]]:
        col = self._db.collection(collection)
        query = col.order_by(order_by) if order_by else col
        return [(d.id, d.to_dict() or {}) for d in query.stream(transaction=self._tx)]

    def create(self, path: str, data: Doc) -> None:
        self._tx.create(self._db.document(path), data)

    def set(self, path: str, data: Doc, merge: bool = False) -> None:
        self._tx.set(self._db.document(path), data, merge=merge)

    def increment(self, path: str, deltas: Dict[str, float], fields: Optional[Doc] = None) -> None:
        payload = _nest({k: firestore.Increment(v) for k, v in deltas.items()})
        _deep_merge(payload, fields or {})
        self._tx.set(self._db.document(path), payload, merge=True)


class FirestoreStore:
    def __init__(self, db=None):
        if db is None:
            from franchise_games.services.firebase import get_db
            db = get_db()
        self._db = db

    def get(self, path: str) -> Optional[Doc]:
        snap = self._db.document(path).get()
        return (snap.to_dict() or {}) if snap.exists else None

    def set(self, path: str, data: Doc, merge: bool = False) -> None:
        self._db.document(path).set(data, merge=merge)

    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Doc]]:
        q = self._db.collection(collection)
        for field, value in (filters or {}).items():
            q = q.where(field, "==", value)
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            q = q.order_by(order_by, direction=direction)
        if limit:
            q = q.limit(limit)
        return [(d.id, d.to_dict() or {}) for d in q.stream()]

    def transaction(self, fn: Callable[[FirestoreTransaction], Any]) -> Any:
        # Firestore re-runs the function when a document read inside it
        # changed before commit, so fn must only touch the store through tx.
        @firestore.transactional
        def _run(transaction):
            return fn(FirestoreTransaction(self._db, transaction))

        return _run(self._db.transaction())
