import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from studydata.main import create_app
from studydata.repositories import (
    FileStudyDataRepository,
    InMemoryStudyDataRepository,
    MongoStudyDataRepository,
    SQLStudyDataRepository,
)


class FakeCollection:
    """Just enough of a pymongo collection for the study-data repository."""

    def __init__(self):
        self.docs = []

    def _match(self, doc, flt):
        return all(doc.get(k) == v for k, v in flt.items())

    def find_one(self, flt, projection=None):
        for doc in self.docs:
            if self._match(doc, flt):
                projection = projection or {}
                included = [f for f, keep in projection.items() if keep]
                out = {f: doc[f] for f in included if f in doc} if included else dict(doc)
                if included and projection.get("_id", 1):
                    out["_id"] = doc["_id"]
                for field, keep in projection.items():
                    if not keep:
                        out.pop(field, None)
                return out
        return None

    def replace_one(self, flt, replacement, upsert=False):
        for i, doc in enumerate(self.docs):
            if self._match(doc, flt):
                self.docs[i] = {"_id": doc["_id"], **replacement}
                return
        if upsert:
            self.docs.append({"_id": len(self.docs) + 1, **replacement})

    def delete_one(self, flt):
        self.docs = [d for d in self.docs if not self._match(d, flt)]


class FakeMongoClient:
    def __init__(self, uri, reachable=True, **kwargs):
        self.uri = uri
        self.kwargs = kwargs
        self.reachable = reachable
        self.closed = False
        self.collection = FakeCollection()
        self.admin = self

    def command(self, name):
        if not self.reachable:
            raise ServerSelectionTimeoutError("no servers found")
        return {"ok": 1.0}

    def __getitem__(self, name):
        return {"studyData": self.collection}

    def close(self):
        self.closed = True


@pytest.fixture
def memory_repo():
    return InMemoryStudyDataRepository()


@pytest.fixture
def file_repo(tmp_path):
    return FileStudyDataRepository(tmp_path / "data" / "study-data.json")


@pytest.fixture
def sqlite_repo(tmp_path):
    repo = SQLStudyDataRepository(f"sqlite:///{tmp_path / 'study.db'}")
    repo.connect()
    yield repo
    repo.close()


@pytest.fixture
def mongo_repo():
    repo = MongoStudyDataRepository("mongodb://fake:27017", client_factory=FakeMongoClient)
    repo.connect()
    return repo


@pytest.fixture(params=["memory", "file", "sqlite", "mongo"])
def any_repo(request):
    """Every storage backend, so contract tests run against each one."""
    return request.getfixturevalue(f"{request.param}_repo")


@pytest.fixture
def client(memory_repo):
    with TestClient(create_app(repository=memory_repo)) as c:
        yield c
