"""
SQLite/SQLAlchemy-backed key-value store.

Blocking database work runs in a worker thread so the event loop keeps
serving other refreshes while a write is in progress.
"""
import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from freshness.errors import StorageFailure

logger = logging.getLogger("storage.sql")

Base = declarative_base()

DEFAULT_DATABASE_URL = "sqlite:///./freshness_cache.db"


class KeyValueRecord(Base):
    """One stored value per key."""
    __tablename__ = "kv_store"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<KeyValueRecord(key='{self.key}')>"


class SqlKeyValueStore:
    """
    Key-value store persisted through SQLAlchemy.

    Any database error surfaces as StorageFailure.
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, echo: bool = False):
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args, echo=echo)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self, operation: str, key: Optional[str] = None):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageFailure(operation, key, e) from e
        finally:
            session.close()

    # =========================================================================
    # Blocking operations
    # =========================================================================

    def _get(self, key: str) -> Optional[str]:
        with self._session("get", key) as session:
            record = session.get(KeyValueRecord, key)
            return record.value if record is not None else None

    def _set(self, key: str, value: str) -> None:
        with self._session("set", key) as session:
            session.merge(KeyValueRecord(key=key, value=value, updated_at=datetime.utcnow()))

    def _remove(self, key: str) -> None:
        with self._session("remove", key) as session:
            session.query(KeyValueRecord).filter(KeyValueRecord.key == key).delete()

    def _clear(self) -> None:
        with self._session("clear") as session:
            count = session.query(KeyValueRecord).delete()
            logger.info(f"Cleared {count} stored values")

    def _keys(self) -> List[str]:
        with self._session("keys") as session:
            return [row.key for row in session.query(KeyValueRecord.key).all()]

    # =========================================================================
    # Async contract
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)

    async def keys(self) -> List[str]:
        return await asyncio.to_thread(self._keys)

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
