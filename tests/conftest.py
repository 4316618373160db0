from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from backend.main import app, get_batch_index, get_store
from backend.directory import BatchIndex
from backend.store import LocalStore, RecordStore, RemoteStore
from schemas import AdmissionRecord, FeeSummary, Installment, StudentContact


class FakeResult:
    def __init__(self, deleted_count=0):
        self.deleted_count = deleted_count


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = []

    def find(self, filter_dict=None):
        filter_dict = filter_dict or {}
        return [dict(d) for d in self.docs if all(d.get(k) == v for k, v in filter_dict.items())]

    def replace_one(self, filter_dict, doc, upsert=False):
        for i, d in enumerate(self.docs):
            if all(d.get(k) == v for k, v in filter_dict.items()):
                self.docs[i] = dict(doc)
                return
        if upsert:
            self.docs.append(dict(doc))

    def delete_one(self, filter_dict):
        for i, d in enumerate(self.docs):
            if all(d.get(k) == v for k, v in filter_dict.items()):
                del self.docs[i]
                return FakeResult(1)
        return FakeResult(0)


class FakeDatabase:
    """Just enough of pymongo's Database for the store."""

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection(name))

    def list_collection_names(self):
        return list(self.collections)


class DownDatabase(FakeDatabase):
    def __getitem__(self, name):
        raise ServerSelectionTimeoutError("no servers available")

    def list_collection_names(self):
        raise ServerSelectionTimeoutError("no servers available")


@pytest.fixture
def local(tmp_path):
    return LocalStore(str(tmp_path / "store"))


@pytest.fixture
def remote_db():
    return FakeDatabase()


@pytest.fixture
def store(local):
    return RecordStore(None, local)


@pytest.fixture
def remote_store(local, remote_db):
    return RecordStore(RemoteStore(remote_db), local)


@pytest.fixture
def client(store):
    batches = BatchIndex()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_batch_index] = lambda: batches
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admission():
    return AdmissionRecord(
        id="adm-1",
        student=StudentContact(name="Ayesha Khan", email="ayesha@institute.pk", phone="0300-1234567"),
        course="Python Programming",
        batch="PY-01",
        campus="Main Campus",
        fee=FeeSummary(
            total=30000,
            installments=[
                Installment(id="I1", amount=15000, due_date="2023-01-01"),
                Installment(id="I2", amount=15000, due_date="2099-01-01"),
            ],
        ),
        created_at=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
    )
