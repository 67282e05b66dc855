"""
In-memory stand-ins for the Firestore AsyncClient and the storage Bucket,
covering only the calls the report pipeline makes.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from google.cloud import firestore

from rmt_backend.core.narrative import NarrativeComposer
from rmt_backend.core.pdf_renderer import ReportDocumentRenderer
from rmt_backend.core.report_service import ReportService
from rmt_backend.core.report_store import ReportStore
from rmt_backend.core.sensor_reader import SensorSnapshotReader

BASE_TIME = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)


class FakeSnapshot:
    def __init__(self, doc_id: str, data: dict | None):
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict | None:
        return None if self._data is None else dict(self._data)


class FakeDocumentRef:
    def __init__(self, collection: "FakeCollection", doc_id: str):
        self._collection = collection
        self.id = doc_id

    async def get(self) -> FakeSnapshot:
        self._collection.db.calls.append(("get", self._collection.path, self.id))
        return FakeSnapshot(self.id, self._collection.docs.get(self.id))


class FakeQuery:
    def __init__(self, collection: "FakeCollection", field: str | None = None,
                 descending: bool = False, limit: int | None = None):
        self._collection = collection
        self._field = field
        self._descending = descending
        self._limit = limit

    def order_by(self, field: str, direction: str = firestore.Query.ASCENDING) -> "FakeQuery":
        return FakeQuery(self._collection, field, direction == firestore.Query.DESCENDING, self._limit)

    def limit(self, count: int) -> "FakeQuery":
        return FakeQuery(self._collection, self._field, self._descending, count)

    async def get(self) -> list[FakeSnapshot]:
        db = self._collection.db
        db.calls.append(("query", self._collection.path))
        if self._collection.path in db.failing_paths:
            raise RuntimeError(f"query failed: {self._collection.path}")
        items = list(self._collection.docs.items())
        if self._field:
            items.sort(key=lambda kv: kv[1][self._field], reverse=self._descending)
        if self._limit is not None:
            items = items[: self._limit]
        return [FakeSnapshot(doc_id, data) for doc_id, data in items]


class FakeCollection(FakeQuery):
    def __init__(self, db: "FakeFirestore", path: str):
        super().__init__(self)
        self.db = db
        self.path = path

    @property
    def docs(self) -> dict[str, dict]:
        return self.db.data.setdefault(self.path, {})

    def document(self, doc_id: str) -> FakeDocumentRef:
        return FakeDocumentRef(self, doc_id)

    async def add(self, data: dict[str, Any]):
        self.db.calls.append(("add", self.path))
        if self.db.fail_writes:
            raise RuntimeError("write failed")
        doc_id = f"report-{next(self.db.ids)}"
        stored = {
            k: (self.db.server_now() if v is firestore.SERVER_TIMESTAMP else v)
            for k, v in data.items()
        }
        self.docs[doc_id] = stored
        return self.db.server_now(), FakeDocumentRef(self, doc_id)


class FakeFirestore:
    def __init__(self):
        self.data: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple] = []
        self.failing_paths: set[str] = set()
        self.fail_writes = False
        self.ids = itertools.count(1)
        self._ticks = itertools.count()

    def server_now(self) -> datetime:
        return BASE_TIME + timedelta(seconds=next(self._ticks))

    def collection(self, path: str) -> FakeCollection:
        return FakeCollection(self, path)

    def seed(self, path: str, doc_id: str, data: dict) -> None:
        self.data.setdefault(path, {})[doc_id] = data


class FakeBlob:
    def __init__(self, bucket: "FakeBucket", name: str):
        self._bucket = bucket
        self.name = name
        self.metadata: dict | None = None

    def upload_from_string(self, data: bytes, content_type: str | None = None) -> None:
        self._bucket.calls.append(("upload", self.name))
        if self._bucket.fail_uploads:
            raise ConnectionError("upload failed")
        self._bucket.objects[self.name] = {
            "data": data,
            "content_type": content_type,
            "metadata": dict(self.metadata or {}),
        }


class FakeBucket:
    def __init__(self, name: str = "rmt-test.appspot.com"):
        self.name = name
        self.objects: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_uploads = False

    def blob(self, name: str) -> FakeBlob:
        return FakeBlob(self, name)


@pytest.fixture
def db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def bucket() -> FakeBucket:
    return FakeBucket()


@pytest.fixture
def store(db, bucket) -> ReportStore:
    clock = itertools.count(1760862600000)
    return ReportStore(db, bucket, token_factory=lambda: "tok-123", clock_ms=lambda: next(clock))


@pytest.fixture
def service(db, store) -> ReportService:
    return ReportService(
        reader=SensorSnapshotReader(db),
        composer=NarrativeComposer(None),
        renderer=ReportDocumentRenderer(clock=lambda: BASE_TIME),
        store=store,
    )
