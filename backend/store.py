"""
Record store

RemoteStore passes straight through to MongoDB (see ``database.py``),
LocalStore keeps one JSON file per record kind, and RecordStore combines
them: reads merge remote over local with the built-in fallback, writes go
remote first and land locally when the remote is missing or fails.
No failure here propagates to the caller.
"""
import json
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from pymongo.errors import PyMongoError

import database
from schemas import AdmissionRecord, Batch, Course, StudentRecord
from .catalog import DEFAULT_COURSES
from .merge import load_with_fallback

logger = logging.getLogger(__name__)

MODELS = {
    "course": Course,
    "admission": AdmissionRecord,
    "student": StudentRecord,
    "batch": Batch,
}
KEYS = {"batch": "batch_code"}
FALLBACKS = {"course": DEFAULT_COURSES}
# Kinds whose remote rows are mirrored into the local store after a read
CACHED_KINDS = {"course"}


def _created_at(record: Dict[str, Any]) -> str:
    return str(record.get("created_at") or "")


SORTS = {"course": _created_at, "admission": _created_at}


class LocalStore:
    """JSON file per kind under ``directory``."""

    def __init__(self, directory: str):
        self.directory = directory
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock(self, kind: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(kind, threading.Lock())

    def _path(self, kind: str) -> str:
        return os.path.join(self.directory, f"{kind}.json")

    def _read(self, kind: str) -> List[Dict[str, Any]]:
        path = self._path(kind)
        if not os.path.exists(path):
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Local {kind} store unreadable, treating as empty: {e}")
            return []
        return data if isinstance(data, list) else []

    def _write(self, kind: str, records: List[Dict[str, Any]]):
        os.makedirs(self.directory, exist_ok=True)
        path = self._path(kind)
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(records, f, ensure_ascii=False, indent=2, default=str)
        os.replace(tmp, path)

    def get(self, kind: str) -> List[Dict[str, Any]]:
        with self._lock(kind):
            return self._read(kind)

    def put(self, kind: str, record: Dict[str, Any], key: str = "id"):
        with self._lock(kind):
            records = self._read(kind)
            for i, r in enumerate(records):
                if r.get(key) == record[key]:
                    records[i] = record
                    break
            else:
                records.append(record)
            self._write(kind, records)

    def put_many(self, kind: str, records: List[Dict[str, Any]]):
        with self._lock(kind):
            self._write(kind, records)

    def remove(self, kind: str, value: Any, key: str = "id") -> bool:
        with self._lock(kind):
            records = self._read(kind)
            kept = [r for r in records if r.get(key) != value]
            if len(kept) == len(records):
                return False
            self._write(kind, kept)
            return True


class Subscription:
    """Change-stream listener on one collection, released by ``close()``."""

    def __init__(self, collection, on_change: Callable[[dict], None], max_await_ms: int = 500):
        self.collection = collection
        self.on_change = on_change
        self.max_await_ms = max_await_ms
        self._closed = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"watch-{collection.name}", daemon=True)

    def start(self) -> "Subscription":
        self._thread.start()
        return self

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._closed.is_set()

    def watch_options(self) -> Dict[str, Any]:
        # Delete events only carry the old document when the collection has
        # changeStreamPreAndPostImages enabled; otherwise just documentKey
        return {
            "full_document": "updateLookup",
            "full_document_before_change": "whenAvailable",
            "max_await_time_ms": self.max_await_ms,
        }

    def _run(self):
        try:
            with self.collection.watch(**self.watch_options()) as stream:
                while not self._closed.is_set() and stream.alive:
                    change = stream.try_next()
                    if change is None:
                        continue
                    try:
                        self.on_change(change)
                    except Exception as e:
                        logger.error(f"Change handler for {self.collection.name} failed: {e!r}")
        except PyMongoError as e:
            if not self._closed.is_set():
                logger.warning(f"Realtime updates for {self.collection.name} stopped: {e}")

    def close(self, timeout: float = 5.0):
        if self._closed.is_set():
            return
        self._closed.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class RemoteStore:
    def __init__(self, db):
        self.db = db

    @property
    def configured(self) -> bool:
        return self.db is not None

    def list(self, kind: str) -> List[Dict[str, Any]]:
        return database.get_documents(kind, database=self.db)

    def upsert(self, kind: str, record: Dict[str, Any], conflict_key: str = "id"):
        database.upsert_document(kind, record, conflict_key, database=self.db)

    def delete(self, kind: str, value: Any, key: str = "id") -> int:
        return database.delete_document(kind, value, key, database=self.db)

    def subscribe(self, kind: str, on_change: Callable[[dict], None]) -> Subscription:
        return Subscription(self.db[kind], on_change).start()


class RecordStore:
    def __init__(self, remote: Optional[RemoteStore], local: LocalStore):
        self.remote = remote if remote is not None and remote.configured else None
        self.local = local

    def load(self, kind: str) -> List[Dict[str, Any]]:
        reached = []

        def fetch():
            if self.remote is None:
                return None
            rows = self.remote.list(kind)
            reached.append(True)
            return rows

        sort_key = SORTS.get(kind)
        local_rows = self.local.get(kind)
        records = load_with_fallback(
            fetch,
            local_rows,
            fallback=FALLBACKS.get(kind, ()),
            model=MODELS[kind],
            key=KEYS.get(kind, "id"),
            sort_key=sort_key,
            reverse=sort_key is not None,
        )
        if reached and kind in CACHED_KINDS and records != local_rows:
            self.local.put_many(kind, records)
        return records

    def load_models(self, kind: str) -> List[BaseModel]:
        model = MODELS[kind]
        return [model.model_validate(r) for r in self.load(kind)]

    def get(self, kind: str, record_id: str) -> Optional[BaseModel]:
        key = KEYS.get(kind, "id")
        for r in self.load(kind):
            if r.get(key) == record_id:
                return MODELS[kind].model_validate(r)
        return None

    def ids(self, kind: str) -> set:
        key = KEYS.get(kind, "id")
        return {r[key] for r in self.load(kind) if r.get(key)}

    def save(self, kind: str, record: BaseModel) -> str:
        """Upsert ``record``; returns "remote" or "local" for where it landed."""
        key = KEYS.get(kind, "id")
        payload = record.model_dump(mode="json")
        if self.remote is not None:
            try:
                self.remote.upsert(kind, payload, key)
                return "remote"
            except Exception as e:
                logger.warning(f"Remote upsert of {kind} {payload[key]} failed, saving locally: {e!r}")
        self.local.put(kind, payload, key)
        return "local"

    def delete(self, kind: str, record_id: str) -> bool:
        key = KEYS.get(kind, "id")
        removed = False
        if self.remote is not None:
            try:
                removed = self.remote.delete(kind, record_id, key) > 0
            except Exception as e:
                logger.warning(f"Remote delete of {kind} {record_id} failed: {e!r}")
        return self.local.remove(kind, record_id, key) or removed

    def subscribe(self, kind: str, on_change: Callable[[dict], None]) -> Optional[Subscription]:
        if self.remote is None:
            return None
        try:
            return self.remote.subscribe(kind, on_change)
        except Exception as e:
            logger.warning(f"Could not subscribe to {kind} changes: {e!r}")
            return None
