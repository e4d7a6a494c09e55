# tests/fake_firestore.py
"""In-memory stand-in for google.cloud.firestore.AsyncClient (the subset the stores use)."""

from __future__ import annotations

import copy
import itertools
import uuid
from typing import Any, Optional

from google.api_core.exceptions import FailedPrecondition, NotFound

_clock = itertools.count(1)


def _lookup(data: dict, field_path: str) -> Any:
    cur: Any = data
    for part in field_path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


def _deep_merge(base: dict, patch: dict) -> dict:
    out = dict(base)
    for key, val in patch.items():
        if isinstance(val, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], val)
        else:
            out[key] = val
    return out


_OPS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "array_contains": lambda a, b: isinstance(a, list) and b in a,
}


class FakeWriteOption:
    def __init__(self, last_update_time):
        self.last_update_time = last_update_time


class FakeSnapshot:
    def __init__(self, ref: "FakeDocumentRef", record: Optional[dict]):
        self.reference = ref
        self.id = ref.id
        self.exists = record is not None
        self._data = copy.deepcopy(record["data"]) if record else None
        self.update_time = record["update_time"] if record else None

    def to_dict(self) -> Optional[dict]:
        return copy.deepcopy(self._data) if self._data is not None else None

    def get(self, field_path: str) -> Any:
        return _lookup(self._data or {}, field_path)


class FakeDocumentRef:
    def __init__(self, collection: "FakeCollection", doc_id: str):
        self._collection = collection
        self.id = doc_id

    @property
    def _docs(self) -> dict:
        return self._collection._docs

    async def get(self) -> FakeSnapshot:
        return FakeSnapshot(self, self._docs.get(self.id))

    async def set(self, data: dict, merge: bool = False) -> None:
        current = self._docs.get(self.id)
        payload = copy.deepcopy(data)
        if merge and current is not None:
            payload = _deep_merge(current["data"], payload)
        self._docs[self.id] = {"data": payload, "update_time": next(_clock)}

    async def create(self, data: dict) -> None:
        if self.id in self._docs:
            raise FailedPrecondition(f"{self.id} already exists")
        await self.set(data)

    async def update(self, data: dict, option: Optional[FakeWriteOption] = None) -> None:
        current = self._docs.get(self.id)
        if current is None:
            raise NotFound(f"{self.id} does not exist")
        if option is not None and option.last_update_time != current["update_time"]:
            raise FailedPrecondition(f"{self.id} changed since it was read")
        merged = dict(current["data"])
        merged.update(copy.deepcopy(data))
        self._docs[self.id] = {"data": merged, "update_time": next(_clock)}

    async def delete(self) -> None:
        self._docs.pop(self.id, None)


class FakeQuery:
    def __init__(self, collection: "FakeCollection", filters=(), order=None, limit=None):
        self._collection = collection
        self._filters = list(filters)
        self._order = order
        self._limit = limit

    def where(self, filter=None):
        return FakeQuery(self._collection, [*self._filters, filter], self._order, self._limit)

    def order_by(self, field_path: str, direction: str = "ASCENDING"):
        return FakeQuery(self._collection, self._filters, (field_path, direction), self._limit)

    def limit(self, count: int):
        return FakeQuery(self._collection, self._filters, self._order, count)

    def _matches(self, data: dict) -> bool:
        return all(
            _OPS[f.op_string](_lookup(data, f.field_path), f.value) for f in self._filters
        )

    async def stream(self):
        rows = [
            (doc_id, rec)
            for doc_id, rec in list(self._collection._docs.items())
            if self._matches(rec["data"])
        ]
        if self._order:
            field_path, direction = self._order
            present = [r for r in rows if _lookup(r[1]["data"], field_path) is not None]
            present.sort(
                key=lambda r: _lookup(r[1]["data"], field_path),
                reverse=str(direction).upper().startswith("DESC"),
            )
            rows = present
        if self._limit is not None:
            rows = rows[: self._limit]
        for doc_id, rec in rows:
            yield FakeSnapshot(FakeDocumentRef(self._collection, doc_id), rec)


class FakeCollection(FakeQuery):
    def __init__(self, name: str, docs: dict):
        self.name = name
        self._docs = docs
        super().__init__(self)

    def document(self, doc_id: Optional[str] = None) -> FakeDocumentRef:
        return FakeDocumentRef(self, doc_id or uuid.uuid4().hex)

    async def add(self, data: dict):
        ref = self.document()
        await ref.set(data)
        return self._docs[ref.id]["update_time"], ref


class FakeFirestore:
    def __init__(self):
        self._store: dict[str, dict] = {}
        self.closed = False

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(name, self._store.setdefault(name, {}))

    @staticmethod
    def write_option(last_update_time=None) -> FakeWriteOption:
        return FakeWriteOption(last_update_time)

    def close(self) -> None:
        self.closed = True

    # --- test helpers ---

    def docs(self, name: str) -> dict[str, dict]:
        return {k: copy.deepcopy(v["data"]) for k, v in self._store.get(name, {}).items()}

    def seed(self, name: str, doc_id: str, data: dict) -> None:
        self._store.setdefault(name, {})[doc_id] = {
            "data": copy.deepcopy(data),
            "update_time": next(_clock),
        }
