import copy
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from pymongo.errors import DuplicateKeyError

from docmove.migrations.applier import Applier
from docmove.migrations.models import ChangeLog, ChangeType
from docmove.migrations.source import ChangeSource


def _matches(doc: dict, query: dict) -> bool:
    for field, expected in query.items():
        if isinstance(expected, dict):
            if field not in doc:
                return False
            value = doc[field]
            for op, operand in expected.items():
                if op == "$in" and value not in operand:
                    return False
                if op == "$lt" and not value < operand:
                    return False
        elif expected is None:
            if doc.get(field) is not None:
                return False
        elif doc.get(field, object()) != expected:
            return False
    return True


class _Cursor:
    def __init__(self, docs):
        self._docs = docs

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._docs:
            raise StopAsyncIteration
        return self._docs.pop(0)


class FakeCollection:
    """In-memory stand-in for an async MongoDB collection."""

    def __init__(self, name: str, calls: list):
        self.name = name
        self.docs: dict = {}
        self._calls = calls

    def _record(self, operation: str) -> None:
        self._calls.append((self.name, operation))

    async def insert_one(self, doc):
        self._record("insert_one")
        if doc["_id"] in self.docs:
            raise DuplicateKeyError(f"E11000 duplicate key error: {doc['_id']}", code=11000)
        self.docs[doc["_id"]] = copy.deepcopy(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query):
        self._record("find_one")
        for doc in self.docs.values():
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query=None):
        self._record("find")
        query = query or {}
        return _Cursor([copy.deepcopy(d) for d in self.docs.values() if _matches(d, query)])

    async def replace_one(self, query, doc, upsert=False):
        self._record("replace_one")
        for key, existing in self.docs.items():
            if _matches(existing, query):
                replacement = copy.deepcopy(doc)
                replacement["_id"] = key
                self.docs[key] = replacement
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            self.docs[doc["_id"]] = copy.deepcopy(doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def delete_one(self, query):
        self._record("delete_one")
        for key, existing in list(self.docs.items()):
            if _matches(existing, query):
                del self.docs[key]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def create_index(self, *args, **kwargs):
        self._record("create_index")
        return "index"

    async def create_indexes(self, indexes):
        self._record("create_indexes")
        return [index.document["name"] for index in indexes]


class FakeDatabase:
    """In-memory stand-in for an async MongoDB database."""

    def __init__(self, name: str = "testdb"):
        self.name = name
        self.calls: list = []
        self.collections: dict[str, FakeCollection] = {}
        self.command = AsyncMock(return_value={"ok": 1})
        self.drop_collection = AsyncMock()

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name, self.calls)
        return self.collections[name]

    def calls_on(self, collection_name: str) -> list:
        return [op for name, op in self.calls if name == collection_name]


class InMemorySource(ChangeSource):
    """Changelog source handing out fresh copies of fixed candidates."""

    def __init__(self, changelogs: list[ChangeLog]):
        self.changelogs = changelogs
        self.list_calls = 0

    def list(self) -> list[ChangeLog]:
        self.list_calls += 1
        return [copy.deepcopy(c) for c in self.changelogs]

    def read_file(self, script: str) -> str:
        return "[]"

    def read_documents(self, script: str) -> dict[str, dict[str, str]]:
        return {}


class RecordingApplier(Applier):
    """Applier recording applied versions, failing for chosen ones."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.applied: list[str] = []

    async def apply(self, changelog: ChangeLog) -> bool:
        self.applied.append(changelog.version)
        return changelog.version not in self.fail_on


def _changelog(version: str, description: str = None, change_type=ChangeType.QUERY_SCRIPT, **kwargs):
    description = description or f"change {version}"
    return ChangeLog(
        version=version,
        description=description,
        type=change_type,
        script=f"V{version}__{description.replace(' ', '_')}",
        checksum=kwargs.pop("checksum", f"checksum-{version}"),
        **kwargs,
    )


@pytest.fixture
def make_changelog():
    """Factory for changelog candidates with a stable checksum."""
    return _changelog


@pytest.fixture
def memory_source():
    """Factory for in-memory changelog sources."""
    return InMemorySource


@pytest.fixture
def recording_applier():
    """Factory for appliers recording what they apply."""
    return RecordingApplier


@pytest.fixture
def fake_db():
    """Create an in-memory MongoDB database."""
    return FakeDatabase()
