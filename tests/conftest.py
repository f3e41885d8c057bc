from __future__ import annotations

import copy
import itertools
import random
from datetime import datetime, timezone

import pytest
from google.api_core import exceptions as gexc
from google.cloud.firestore_v1 import ArrayRemove, ArrayUnion, Increment

from studybits import firebase_init
from studybits.local_store import LocalStore


def _apply_transforms(current: dict, data: dict) -> dict:
    result = dict(current)
    for key, value in data.items():
        if isinstance(value, Increment):
            result[key] = (result.get(key) or 0) + value.value
        elif isinstance(value, ArrayUnion):
            existing = list(result.get(key) or [])
            for item in value.values:
                if item not in existing:
                    existing.append(item)
            result[key] = existing
        elif isinstance(value, ArrayRemove):
            result[key] = [item for item in result.get(key) or [] if item not in value.values]
        else:
            result[key] = copy.deepcopy(value)
    return result


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, db, path):
        self._db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def _check(self, op):
        self._db.calls.append((op, self.path))
        error = self._db.errors.get((op, self.path))
        if error is not None:
            raise error

    def get(self):
        self._check("get")
        return FakeSnapshot(self.id, self._db.docs.get(self.path))

    def set(self, data, merge=False):
        self._check("set")
        current = self._db.docs.get(self.path, {}) if merge else {}
        self._db.docs[self.path] = _apply_transforms(current, data)

    def update(self, data):
        self._check("update")
        if self.path not in self._db.docs:
            raise gexc.NotFound(f"No document to update: {self.path}")
        self._db.docs[self.path] = _apply_transforms(self._db.docs[self.path], data)

    def delete(self):
        self._check("delete")
        self._db.docs.pop(self.path, None)

    def collection(self, name):
        return FakeCollection(self._db, f"{self.path}/{name}")


class FakeQuery:
    def __init__(self, db, path, order=None, limit=None):
        self._db = db
        self.path = path
        self._order = order
        self._limit = limit

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(self._db, self.path, (field, direction), self._limit)

    def limit(self, count):
        return FakeQuery(self._db, self.path, self._order, count)

    def stream(self):
        self._db.calls.append(("stream", self.path))
        error = self._db.errors.get(("stream", self.path))
        if error is not None:
            raise error
        depth = self.path.count("/") + 1
        docs = [
            (path, data)
            for path, data in self._db.docs.items()
            if path.startswith(self.path + "/") and path.count("/") == depth
        ]
        if self._order is not None:
            field, direction = self._order
            docs = [item for item in docs if field in item[1]]
            docs.sort(key=lambda item: item[1][field], reverse=direction == "DESCENDING")
        if self._limit is not None:
            docs = docs[: self._limit]
        for path, data in docs:
            yield FakeSnapshot(path.rsplit("/", 1)[-1], copy.deepcopy(data))


class FakeCollection(FakeQuery):
    def document(self, doc_id):
        return FakeDocument(self._db, f"{self.path}/{doc_id}")

    def add(self, data):
        doc = self.document(f"auto{next(self._db.ids)}")
        doc.set(data)
        return datetime.now(timezone.utc), doc


class FakeFirestore:
    """In-memory stand-in for a firestore.Client, enough for the DAO layer."""

    def __init__(self):
        self.docs = {}
        self.errors = {}
        self.calls = []
        self.ids = itertools.count(1)

    def collection(self, name):
        return FakeCollection(self, name)

    # Test helpers

    def put(self, path, data):
        self.docs[path] = copy.deepcopy(data)

    def data(self, path):
        return self.docs.get(path)

    def count(self, op, path):
        return sum(1 for call in self.calls if call == (op, path))


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeFirestore()
    monkeypatch.setattr(firebase_init, "_db", db)
    monkeypatch.setattr(firebase_init, "_app", object())
    return db


@pytest.fixture
def store():
    local = LocalStore(":memory:")
    yield local
    local.close()


@pytest.fixture
def rng():
    return random.Random(1234)


def course_doc(key, name="Course", last_modified=1, dependency=0, creator="owner", description=""):
    return {
        "key": key,
        "name": name,
        "description": description,
        "picUrl": "",
        "creator": creator,
        "lastModified": last_modified,
        "dependency": dependency,
        "numQuestions": 0,
    }
