from datetime import datetime, timezone

import pytest
from pymongo.errors import PyMongoError

from store.connection import StoreConnection


# -------------------------
# IN-MEMORY MONGO CLIENT
# -------------------------

def _matches(doc, query) -> bool:
    for key, cond in query.items():
        value = doc.get(key)
        if not isinstance(cond, dict):
            if value != cond:
                return False
            continue
        for op, arg in cond.items():
            if op == "$in" and value not in arg:
                return False
            if op == "$nin" and value in arg:
                return False
            if op == "$ne" and value == arg:
                return False
            if op == "$gte" and not (value is not None and value >= arg):
                return False
            if op == "$lt" and not (value is not None and value < arg):
                return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, keys):
        for key, direction in reversed(keys):
            self._docs.sort(key=lambda d: d[key], reverse=direction < 0)
        return self

    def __iter__(self):
        return iter(self._docs)


class FakeCollection:
    def __init__(self):
        self.docs = []
        self.queries = []
        self.fail_with = None

    def insert_many(self, docs):
        self.docs.extend(docs)

    def find(self, query):
        self.queries.append(query)
        if self.fail_with is not None:
            raise self.fail_with
        return FakeCursor(d for d in self.docs if _matches(d, query))


class FakeDatabase:
    def __init__(self):
        self.collections = {}
        self.status = {"version": "7.0.4"}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    def command(self, name):
        if isinstance(self.status, Exception):
            raise self.status
        return self.status


class FakeClient:
    def __init__(self, url, tz_aware=False):
        self.url = url
        self.tz_aware = tz_aware
        self.closed = False
        self.databases = {}

    def __getitem__(self, name):
        return self.databases.setdefault(name, FakeDatabase())

    def close(self):
        self.closed = True


def ts(second: int) -> datetime:
    return datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc).replace(second=second % 60, minute=second // 60)


@pytest.fixture
def connection():
    conn = StoreConnection("mongodb://fake", "testdb", client_factory=FakeClient)
    conn.connect()
    yield conn
    conn.close()


@pytest.fixture
def db(connection):
    return connection.database()


@pytest.fixture
def seeded_db(db):
    db["projects"].insert_many([
        {"_id": "P1", "displayName": "Home", "organizationDisplayName": "Acme"},
        {"_id": "P2", "displayName": "Office", "organizationDisplayName": "Acme"},
    ])
    db["devices"].insert_many([
        {"_id": "A", "labels": {"name": "kitchen"}, "project_id": "P1", "type": "temperature"},
        {"_id": "B", "labels": {"name": "hall"}, "project_id": "P1", "type": "proximity"},
        {"_id": "C", "labels": {"name": "desk"}, "project_id": "P2", "type": "temperature"},
    ])
    db["events"].insert_many([
        {"_id": "e1", "device_id": "A", "project_id": "P1", "eventType": "temperature",
         "timestamp": ts(100), "data": {"temperature": {"value": 21.5}}},
        {"_id": "e2", "device_id": "A", "project_id": "P1", "eventType": "touch",
         "timestamp": ts(110), "data": {}},
        {"_id": "e3", "device_id": "B", "project_id": "P1", "eventType": "objectPresent",
         "timestamp": ts(105), "data": {"objectPresent": {"state": "NOT_PRESENT"}}},
        {"_id": "e4", "device_id": "C", "project_id": "P2", "eventType": "temperature",
         "timestamp": ts(120), "data": {"temperature": {"value": 19.0}}},
        {"_id": "e5", "device_id": "A", "project_id": "P1", "eventType": "networkStatus",
         "timestamp": ts(101), "data": {"networkStatus": {"signalStrength": 80, "rssi": -60}}},
    ])
    return db


class BrokenStoreError(PyMongoError):
    pass
