"""Repository classes encapsulating storage operations.

`StudyDataRepository` is the storage contract for the single study
document: `read` never fails on absence (it returns the empty state),
`write` replaces the whole document and `clear` is idempotent. One
implementation exists per backend (process memory, JSON file, MongoDB,
SQLite). `InMemoryLegacyRepository` holds the flashcards/sessions/password
state of the legacy routes.
"""

import copy
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional

from pymongo import MongoClient
from pymongo.errors import PyMongoError
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from . import models
from .database import create_db_and_tables, make_engine, session_scope
from .documents import DOCUMENT_KEY, empty_study_data
from .errors import CorruptStateError, StorageUnavailableError

logger = logging.getLogger("studydata.storage")


def _corrupt_suffix() -> str:
    return datetime.now(timezone.utc).strftime("corrupt-%Y%m%dT%H%M%S%fZ")


class StudyDataRepository:
    """Storage contract shared by every backend."""
    name = "base"
    format = "json"

    def connect(self) -> None:
        """Establish any connection the backend needs. No-op by default."""

    def close(self) -> None:
        """Release backend resources. No-op by default."""

    def read(self) -> dict:
        raise NotImplementedError

    def exists(self) -> bool:
        """Whether a document has been persisted; `read` alone cannot tell."""
        raise NotImplementedError

    def write(self, doc: dict) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def healthy(self) -> bool:
        return True

    def status(self) -> dict:
        """Backend-specific fields reported by the health endpoint."""
        return {
            "storage": self.name,
            "format": self.format,
            "database": "Connected" if self.healthy() else "Disconnected",
        }


class InMemoryStudyDataRepository(StudyDataRepository):
    """Keeps the document on the instance; lost when the object goes away."""
    name = "memory"
    format = "in-memory"

    def __init__(self):
        self._doc: Optional[dict] = None

    def read(self) -> dict:
        if self._doc is None:
            return empty_study_data()
        return copy.deepcopy(self._doc)

    def exists(self) -> bool:
        return self._doc is not None

    def write(self, doc: dict) -> None:
        self._doc = copy.deepcopy(doc)

    def clear(self) -> None:
        self._doc = None


class FileStudyDataRepository(StudyDataRepository):
    """Persist the document as one indented JSON file.

    There is no file locking: concurrent writers race and the last one
    wins. Writes go to a temporary sibling that is then renamed over the
    data file, so a read never observes a partial write. A file that cannot
    be parsed is renamed aside before `CorruptStateError` is raised, so the
    next read starts empty.
    """
    name = "file"

    def __init__(self, path):
        self.path = Path(path)

    def read(self) -> dict:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return empty_study_data()
        try:
            doc = json.loads(raw)
        except ValueError as exc:
            raise self._quarantine(f"unparsable JSON: {exc}")
        if not isinstance(doc, dict):
            raise self._quarantine(f"top-level value is {type(doc).__name__}, expected object")
        return doc

    def exists(self) -> bool:
        return self.path.exists()

    def write(self, doc: dict) -> None:
        # readers only ever see the old or the new complete file
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(doc, indent=2, ensure_ascii=False)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp", delete=False
        ) as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        try:
            os.replace(fh.name, self.path)
        except OSError:
            os.unlink(fh.name)
            raise

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def status(self) -> dict:
        out = super().status()
        out["dataFile"] = str(self.path)
        out["exists"] = self.path.exists()
        return out

    def _quarantine(self, reason: str) -> CorruptStateError:
        backup = self.path.with_name(f"{self.path.name}.{_corrupt_suffix()}")
        self.path.rename(backup)
        logger.error("corrupt data file %s (%s); moved aside to %s", self.path, reason, backup)
        return CorruptStateError("stored study data could not be parsed and was moved aside", backup=backup.name)


class MongoStudyDataRepository(StudyDataRepository):
    """Store the document in a MongoDB collection under a fixed key.

    The connection is made once by `connect()` at startup and shared for the
    process lifetime. Operations on an unconnected repository raise
    `StorageUnavailableError` rather than trying to connect per request.
    """
    name = "mongo"
    KEY_FIELD = "documentKey"
    DATA_FIELD = "data"

    def __init__(
        self,
        uri: str,
        db_name: str = "study_app",
        collection_name: str = "studyData",
        timeout_ms: int = 5000,
        client_factory: Callable[..., Any] = MongoClient,
        key: str = DOCUMENT_KEY,
    ):
        self.uri = uri
        self.db_name = db_name
        self.collection_name = collection_name
        self.timeout_ms = timeout_ms
        self.key = key
        self._client_factory = client_factory
        self._client = None
        self._collection = None

    def connect(self) -> None:
        client = None
        try:
            client = self._client_factory(self.uri, serverSelectionTimeoutMS=self.timeout_ms)
            client.admin.command("ping")
        except PyMongoError as exc:
            if client is not None:
                client.close()
            logger.error("MongoDB connection failed: %s", exc)
            raise StorageUnavailableError(f"could not connect to MongoDB: {exc}") from exc
        self._client = client
        self._collection = client[self.db_name][self.collection_name]
        logger.info("connected to MongoDB database=%s collection=%s", self.db_name, self.collection_name)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._collection = None

    def healthy(self) -> bool:
        return self._collection is not None

    def status(self) -> dict:
        out = super().status()
        out["databaseName"] = self.db_name
        out["collection"] = self.collection_name
        return out

    def _require_collection(self):
        if self._collection is None:
            raise StorageUnavailableError("database not connected")
        return self._collection

    def _find(self) -> Optional[dict]:
        col = self._require_collection()
        try:
            return col.find_one({self.KEY_FIELD: self.key}, {"_id": 0, self.DATA_FIELD: 1})
        except PyMongoError as exc:
            raise StorageUnavailableError(f"database read failed: {exc}") from exc

    def exists(self) -> bool:
        return self._find() is not None

    def read(self) -> dict:
        stored = self._find()
        if stored is None:
            return empty_study_data()
        doc = stored.get(self.DATA_FIELD)
        if not isinstance(doc, dict):
            raise CorruptStateError(f"stored document has no {self.DATA_FIELD!r} object")
        return doc

    def write(self, doc: dict) -> None:
        col = self._require_collection()
        # user fields live under DATA_FIELD so none can collide with the key field
        replacement = {
            self.KEY_FIELD: self.key,
            self.DATA_FIELD: {k: v for k, v in doc.items() if k != "_id"},
        }
        try:
            col.replace_one({self.KEY_FIELD: self.key}, replacement, upsert=True)
        except PyMongoError as exc:
            raise StorageUnavailableError(f"database write failed: {exc}") from exc

    def clear(self) -> None:
        col = self._require_collection()
        try:
            col.delete_one({self.KEY_FIELD: self.key})
        except PyMongoError as exc:
            raise StorageUnavailableError(f"database delete failed: {exc}") from exc


class SQLStudyDataRepository(StudyDataRepository):
    """Store the document as JSON text in a single SQLModel row."""
    name = "sqlite"

    def __init__(self, url: str, key: str = DOCUMENT_KEY):
        self.url = url
        self.key = key
        self.engine = make_engine(url)

    def connect(self) -> None:
        create_db_and_tables(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def read(self) -> dict:
        with session_scope(self.engine) as session:
            row = session.get(models.StudyDocument, self.key)
            if row is None:
                return empty_study_data()
            try:
                doc = json.loads(row.payload)
            except ValueError as exc:
                raise self._quarantine(session, row, f"unparsable JSON: {exc}")
            if not isinstance(doc, dict):
                raise self._quarantine(session, row, "top-level value is not an object")
            return doc

    def exists(self) -> bool:
        with session_scope(self.engine) as session:
            return session.get(models.StudyDocument, self.key) is not None

    def write(self, doc: dict) -> None:
        payload = json.dumps(doc, ensure_ascii=False)
        now = datetime.now(timezone.utc)
        if self.engine.dialect.name != "sqlite":
            with session_scope(self.engine) as session:
                session.merge(models.StudyDocument(key=self.key, payload=payload, updated_at=now))
                session.commit()
            return
        # single-statement upsert: two first writers cannot both INSERT the key
        stmt = sqlite_insert(models.StudyDocument.__table__).values(key=self.key, payload=payload, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"payload": stmt.excluded.payload, "updated_at": stmt.excluded.updated_at},
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def clear(self) -> None:
        with session_scope(self.engine) as session:
            row = session.get(models.StudyDocument, self.key)
            if row is not None:
                session.delete(row)
                session.commit()

    def healthy(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except SQLAlchemyError:
            return False
        return True

    def status(self) -> dict:
        out = super().status()
        out["databaseUrl"] = self.engine.url.render_as_string(hide_password=True)
        return out

    def _quarantine(self, session, row, reason: str) -> CorruptStateError:
        backup_key = f"{self.key}.{_corrupt_suffix()}"
        session.add(models.StudyDocument(key=backup_key, payload=row.payload))
        session.delete(row)
        session.commit()
        logger.error("corrupt study document %r (%s); moved aside to %r", self.key, reason, backup_key)
        return CorruptStateError("stored study data could not be parsed and was moved aside", backup=backup_key)


class InMemoryLegacyRepository:
    """State for the legacy flashcards/sessions/password routes."""
    def __init__(self):
        self.flashcards: List[Any] = []
        self.sessions: List[Any] = []
        self.password_hash: Optional[str] = None

    def replace_flashcards(self, flashcards: List[Any]) -> None:
        """Replace the whole flashcard list."""
        self.flashcards = list(flashcards)

    def append_session(self, session: Any) -> None:
        """Record one more study session."""
        self.sessions.append(session)

    def set_password_hash(self, password_hash: str) -> None:
        self.password_hash = password_hash


def build_repository(settings) -> StudyDataRepository:
    """Return the repository selected by `settings.STORAGE_BACKEND`."""
    backend = settings.STORAGE_BACKEND
    if backend == "memory":
        return InMemoryStudyDataRepository()
    if backend == "file":
        return FileStudyDataRepository(settings.DATA_FILE)
    if backend == "mongo":
        return MongoStudyDataRepository(
            settings.MONGODB_URI,
            db_name=settings.MONGODB_DB,
            collection_name=settings.MONGODB_COLLECTION,
            timeout_ms=settings.MONGODB_TIMEOUT_MS,
        )
    if backend == "sqlite":
        return SQLStudyDataRepository(settings.SQLITE_URL)
    raise RuntimeError(f"unknown storage backend {backend!r}")
