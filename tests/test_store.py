import json
import threading
import time

from backend.catalog import DEFAULT_COURSES
from backend.store import RecordStore, RemoteStore, Subscription
from schemas import Course
from tests.conftest import DownDatabase


def test_local_store_put_replaces_by_key(local):
    local.put("course", {"id": "a", "name": "One"})
    local.put("course", {"id": "b", "name": "Two"})
    local.put("course", {"id": "a", "name": "Uno"})
    assert local.get("course") == [{"id": "a", "name": "Uno"}, {"id": "b", "name": "Two"}]
    assert local.remove("course", "a")
    assert not local.remove("course", "a")


def test_corrupt_local_file_reads_empty(local, tmp_path):
    local.put("course", {"id": "a", "name": "One"})
    with open(local._path("course"), "w") as f:
        f.write("{not json")
    assert local.get("course") == []


def test_courses_fall_back_to_builtin_list(store):
    assert {c["id"] for c in store.load("course")} == {c["id"] for c in DEFAULT_COURSES}


def test_save_without_remote_lands_locally(store):
    assert store.save("course", Course(id="x", name="Local Only")) == "local"
    assert [c["id"] for c in store.load("course")] == ["x"]


def test_remote_rows_win_and_are_cached(remote_store, remote_db, local):
    local.put("course", {"id": "x", "name": "Stale", "description": "offline note"})
    local.put("course", {"id": "y", "name": "Offline course"})
    remote_db["course"].docs.append({"_id": "oid", "id": "x", "name": "Fresh", "created_at": "2024-02-01"})

    courses = remote_store.load("course")
    by_id = {c["id"]: c for c in courses}
    assert by_id["x"]["name"] == "Fresh"
    assert by_id["x"]["description"] == "offline note"
    assert "y" in by_id
    assert {c["id"] for c in local.get("course")} == {"x", "y"}


def test_malformed_remote_rows_are_dropped(remote_store, remote_db):
    remote_db["course"].docs.extend([{"id": "ok", "name": "Fine"}, {"id": "bad", "fees": -5, "name": "Neg"}])
    assert [c["id"] for c in remote_store.load("course")] == ["ok"]


def test_save_goes_remote_when_available(remote_store, remote_db, local):
    assert remote_store.save("course", Course(id="r", name="Remote")) == "remote"
    assert remote_db["course"].docs[0]["id"] == "r"
    assert local.get("course") == []


def test_unreachable_remote_falls_back_everywhere(local):
    store = RecordStore(RemoteStore(DownDatabase()), local)
    assert store.save("course", Course(id="z", name="Saved offline")) == "local"
    assert [c["id"] for c in store.load("course")] == ["z"]
    assert store.delete("course", "z")
    assert {c["id"] for c in store.load("course")} == {c["id"] for c in DEFAULT_COURSES}


def test_unconfigured_remote_is_ignored(local):
    assert RecordStore(RemoteStore(None), local).remote is None


def test_subscribe_without_remote_returns_none(store):
    assert store.subscribe("batch", lambda e: None) is None


class FakeStream:
    def __init__(self, events):
        self.events = list(events)
        self.alive = True

    def try_next(self):
        if self.events:
            return self.events.pop(0)
        time.sleep(0.01)
        return None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.alive = False


class WatchedCollection:
    name = "batch"

    def __init__(self, events):
        self.stream = FakeStream(events)
        self.options = None

    def watch(self, **kwargs):
        self.options = kwargs
        return self.stream


def test_subscription_delivers_events_and_releases():
    received = []
    done = threading.Event()

    def on_change(event):
        received.append(event["operationType"])
        if len(received) == 2:
            done.set()

    collection = WatchedCollection([{"operationType": "insert"}, {"operationType": "update"}])
    with Subscription(collection, on_change).start() as sub:
        assert done.wait(2)
        assert sub.active
    assert not sub.active
    assert received == ["insert", "update"]
    assert not collection.stream.alive
    sub.close()


def test_local_files_are_json(local):
    local.put("student", {"id": "s1", "name": "Ali"})
    with open(local._path("student"), encoding="utf-8") as f:
        assert json.load(f) == [{"id": "s1", "name": "Ali"}]


def test_subscription_asks_for_pre_images():
    collection = WatchedCollection([])
    with Subscription(collection, lambda e: None).start():
        deadline = time.time() + 2
        while collection.options is None and time.time() < deadline:
            time.sleep(0.01)
    assert collection.options["full_document"] == "updateLookup"
    assert collection.options["full_document_before_change"] == "whenAvailable"


def test_remote_with_only_malformed_courses_uses_builtin_list(remote_store, remote_db, local):
    remote_db["course"].docs.extend([{"id": "bad", "fees": -1, "name": "x"}, {"nope": 1}])
    assert {c["id"] for c in remote_store.load("course")} == {c["id"] for c in DEFAULT_COURSES}


def test_unchanged_course_cache_is_not_rewritten(remote_store, remote_db, local, monkeypatch):
    remote_db["course"].docs.append({"id": "x", "name": "Fresh", "created_at": "2024-02-01"})
    writes = []
    put_many = local.put_many

    def counting_put_many(kind, records):
        writes.append(kind)
        put_many(kind, records)

    monkeypatch.setattr(local, "put_many", counting_put_many)
    first = remote_store.load("course")
    second = remote_store.load("course")
    assert first == second
    assert writes == ["course"]

    remote_db["course"].docs[0]["name"] = "Renamed"
    remote_store.load("course")
    assert writes == ["course", "course"]
