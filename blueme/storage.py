import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Union

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from blueme.config import settings
from blueme.utils import now_iso

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()

Collection = Union[list, dict]

# Empty value for each collection when nothing has been stored yet
COLLECTION_DEFAULTS = {
    "users": list,
    "contacts": dict,
    "messages": list,
}


def empty_collection(name: str) -> Collection:
    try:
        return COLLECTION_DEFAULTS[name]()
    except KeyError:
        raise ValueError(f"Unknown collection: {name}") from None


class RecordStore(ABC):
    """
    Whole-collection persistence for users, contacts and messages.

    Every save overwrites the complete collection. There is no locking:
    two concurrent read-modify-write cycles race and the later save wins.
    """

    @abstractmethod
    def load(self, collection: str) -> Collection:
        """Return the whole collection, or its empty default when absent."""

    @abstractmethod
    def save(self, collection: str, value: Collection) -> None:
        """Overwrite the whole collection."""

    @abstractmethod
    def check_health(self) -> bool:
        """True if the backing storage is reachable and writable."""


# =============================================================================
# JSON file backend
# =============================================================================

class JsonFileStore(RecordStore):
    """
    One <collection>.json file per collection inside data_dir.

    The directory and files are created lazily. When the filesystem is
    unwritable the failure is logged and the request keeps working on its
    in-memory copy.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def path_for(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _ensure_file(self, collection: str) -> None:
        path = self.path_for(collection)
        if path.exists():
            return
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(empty_collection(collection), indent=2), encoding="utf-8")
            logger.debug(f"Created empty collection file: {path}")
        except OSError as e:
            logger.warning(f"Could not create {path}, continuing in memory: {e}")

    def load(self, collection: str) -> Collection:
        default = empty_collection(collection)
        self._ensure_file(collection)
        path = self.path_for(collection)

        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return default
        except OSError as e:
            logger.error(f"Error reading {path}: {e}")
            return default

        if not raw.strip():
            return default

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt collection file {path}: {e}")
            return default

        if not isinstance(data, type(default)):
            logger.error(f"Collection file {path} holds {type(data).__name__}, expected {type(default).__name__}")
            return default

        return data

    def save(self, collection: str, value: Collection) -> None:
        empty_collection(collection)
        path = self.path_for(collection)
        logger.debug(f"Writing collection {collection} to {path}")

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file and swap it in so readers never see a torn file
            fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{collection}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(value, fh, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error(f"Failed to write {path}, change kept in memory for this request only: {e}")

    def check_health(self) -> bool:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Data directory unavailable: {e}")
            return False
        return os.access(self.data_dir, os.W_OK)


# =============================================================================
# SQL backend
# =============================================================================

class SQLRecordStore(RecordStore):
    """
    Stores each collection as one JSON payload row via SQLAlchemy.
    Same whole-collection contract as JsonFileStore.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        url = make_url(database_url)
        connect_args = {}
        if url.get_backend_name() == "sqlite":
            # check_same_thread=False is required for SQLite with FastAPI's threadpool
            connect_args["check_same_thread"] = False
            if url.database and url.database != ":memory:":
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(database_url, connect_args=connect_args, echo=False)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.init_db()

    def init_db(self) -> None:
        """Create the stored_collections table if it is missing."""
        logger.debug(f"Initializing database with URL: {self.database_url}")
        try:
            # Import models to register them with Base.metadata
            from blueme.models import StoredCollection  # noqa: F401

            Base.metadata.create_all(bind=self.engine)
            logger.info("Database initialized successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def load(self, collection: str) -> Collection:
        from blueme.models import StoredCollection

        default = empty_collection(collection)
        try:
            with self.SessionLocal() as db:
                row = db.get(StoredCollection, collection)
        except SQLAlchemyError as e:
            logger.error(f"Error reading collection {collection}: {e}")
            return default

        if row is None:
            return default

        try:
            data = json.loads(row.payload)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt payload for collection {collection}: {e}")
            return default

        return data if isinstance(data, type(default)) else default

    def save(self, collection: str, value: Collection) -> None:
        from blueme.models import StoredCollection

        empty_collection(collection)
        with self.SessionLocal() as db:
            try:
                db.merge(StoredCollection(
                    name=collection,
                    payload=json.dumps(value),
                    updated_at=now_iso(),
                ))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to store collection {collection}, change kept in memory for this request only: {e}")

    def check_health(self) -> bool:
        logger.debug("Checking database health...")
        try:
            with self.SessionLocal() as db:
                db.execute(text("SELECT 1"))
            if not inspect(self.engine).has_table("stored_collections"):
                logger.error("Database schema not applied: 'stored_collections' table not found")
                return False
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False


# =============================================================================
# Dependency
# =============================================================================

def build_store(backend: str, data_dir: str, database_url: str) -> RecordStore:
    if backend == "json":
        return JsonFileStore(data_dir)
    if backend == "sql":
        return SQLRecordStore(database_url)
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend!r}")


@lru_cache()
def get_store() -> RecordStore:
    """
    FastAPI dependency returning the configured record store.
    Built once per process; tests replace it through app.dependency_overrides.
    """
    return build_store(settings.STORAGE_BACKEND, settings.DATA_DIR, settings.DATABASE_URL)
