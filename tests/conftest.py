"""Shared test fixtures for specscans."""

import copy
import threading

import pytest

from specscans.errors import DocumentStoreError
from specscans.query.routing import default_routing_table
from specscans.records.validator import SchemaValidator
from specscans.service import ScanService, ServiceContext
from specscans.storage.motor_store import MotorStore


_MISSING = object()


def _lookup(document, path):
    value = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _compare(value, op, argument):
    try:
        if op == "$lt":
            return value < argument
        if op == "$lte":
            return value <= argument
        if op == "$gt":
            return value > argument
        return value >= argument
    except TypeError:
        return False


def _matches_value(value, condition):
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, argument in condition.items():
            if op == "$exists":
                if (value is not _MISSING) != bool(argument):
                    return False
            elif op == "$eq":
                if value is _MISSING or value != argument:
                    return False
            elif op == "$ne":
                if value is not _MISSING and value == argument:
                    return False
            elif op == "$in":
                if value is _MISSING or value not in argument:
                    return False
            elif op in ("$lt", "$lte", "$gt", "$gte"):
                if value is _MISSING or not _compare(value, op, argument):
                    return False
            else:
                raise DocumentStoreError(f"unknown operator {op}")
        return True
    if value is _MISSING:
        return False
    if isinstance(value, list) and not isinstance(condition, list):
        return condition in value
    return value == condition


def matches(document, query):
    return all(_matches_value(_lookup(document, key), cond) for key, cond in (query or {}).items())


class InMemoryDocumentStore:
    """Stand-in for DocumentStore keeping collections in dicts."""

    def __init__(self):
        self.collections = {}
        self._lock = threading.Lock()
        self.connected = False

    def connect(self):
        self.connected = True

    def disconnect(self):
        self.connected = False

    def ensure_indexes(self, collection_name):
        self.collections.setdefault(collection_name, [])

    def insert(self, collection_name, documents):
        with self._lock:
            collection = self.collections.setdefault(collection_name, [])
            existing = {doc.get("sid") for doc in collection}
            for document in documents:
                if document.get("sid") in existing:
                    raise DocumentStoreError(f"duplicate sid {document.get('sid')}")
            collection.extend(copy.deepcopy(documents))
            return len(documents)

    def get(self, collection_name, query=None, offset=0, limit=0):
        with self._lock:
            found = [d for d in self.collections.get(collection_name, []) if matches(d, query)]
        found = found[offset:]
        if limit:
            found = found[:limit]
        return copy.deepcopy(found)

    def count(self, collection_name, query=None):
        return len(self.get(collection_name, query))

    def upsert(self, collection_name, match, update):
        fields = update.get("$set", update)
        with self._lock:
            collection = self.collections.setdefault(collection_name, [])
            for document in collection:
                if matches(document, match):
                    document.update(copy.deepcopy(fields))
                    return 1
            collection.append({**match, **copy.deepcopy(fields)})
            return 1


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def motor_store():
    store = MotorStore(db_type="sqlite", db_file=":memory:")
    store.connect()
    yield store
    store.disconnect()


@pytest.fixture
def context(motor_store, document_store):
    return ServiceContext(
        motor_store=motor_store,
        document_store=document_store,
        routing_table=default_routing_table(),
        validator=SchemaValidator(),
        max_workers=4,
    )


@pytest.fixture
def service(context):
    return ScanService(context)


@pytest.fixture
def sample_record():
    return {
        "did": "/beamline=3a/btr=1234-a/cycle=2024-3/sample_name=foil",
        "beamline": "3a",
        "btr": "1234-a",
        "cycle": "2024-3",
        "spec_file": "/data/3a/2024-3/foil.spec",
        "scan_number": 7,
        "start_time": 1700000000.5,
        "command": "ascan samx 0 1 10 0.1",
        "status": "completed",
        "motors": {"samx": 0.25, "samz": -1.5, "th": 12.0},
    }


def _make_record(start_time, beamline="3a", motors=None, **extra):
    record = {
        "did": f"/beamline={beamline}/scan={start_time}",
        "beamline": beamline,
        "spec_file": f"/data/{beamline}/scans.spec",
        "scan_number": int(start_time),
        "start_time": start_time,
    }
    if motors is not None:
        record["motors"] = motors
    record.update(extra)
    return record


@pytest.fixture
def make_record():
    return _make_record
