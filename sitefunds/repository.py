"""
Record Repository Module

Document-style persistence for fund flow records keyed by (kind, id).
Workflows load a record, change a copy, and write it back inside a
transaction; a failed operation therefore never leaves a partial write.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import JSON, Column, DateTime, MetaData, String, Table, and_, delete, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from .exceptions import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """One page of a filtered listing."""

    items: list[Any] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def pages(self) -> int:
        if not self.page_size:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    def to_dict(self) -> dict:
        return {
            "items": [i.to_dict() if hasattr(i, "to_dict") else i for i in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "pages": self.pages,
        }


def paginate(items: list[Any], page: int = 1, page_size: int = 20) -> Page:
    """Slice a list into a Page (page numbers start at 1)."""
    page = max(page, 1)
    offset = (page - 1) * page_size
    return Page(
        items=items[offset:offset + page_size],
        total=len(items),
        page=page,
        page_size=page_size,
    )


def _matches(data: dict, filters: dict[str, Any]) -> bool:
    for key, expected in filters.items():
        actual = data.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class Repository(ABC):
    """Abstract record store."""

    @abstractmethod
    def get(self, kind: str, record_id: str) -> dict | None:
        """Get a record document, or None if it does not exist."""

    @abstractmethod
    def find(self, kind: str, **filters: Any) -> list[dict]:
        """Find records whose fields equal the filters.

        A list/tuple/set filter value matches any of its members.
        """

    @abstractmethod
    def insert(self, kind: str, record_id: str, data: dict) -> None:
        """Insert a new record. Raises ConflictError on duplicate id."""

    @abstractmethod
    def update(self, kind: str, record_id: str, data: dict) -> None:
        """Replace a record. Raises NotFoundError if missing."""

    @abstractmethod
    def delete(self, kind: str, record_id: str) -> None:
        """Delete a record. Raises NotFoundError if missing."""

    @abstractmethod
    def transaction(self) -> Any:
        """Context manager grouping writes into one atomic unit."""

    def exists(self, kind: str, **filters: Any) -> bool:
        return bool(self.find(kind, **filters))


class MemoryRepository(Repository):
    """In-process store used for development and tests."""

    def __init__(self):
        self._data: dict[str, dict[str, dict]] = {}
        self._lock = threading.RLock()
        self._depth = 0

    def get(self, kind: str, record_id: str) -> dict | None:
        with self._lock:
            data = self._data.get(kind, {}).get(record_id)
            return copy.deepcopy(data) if data is not None else None

    def find(self, kind: str, **filters: Any) -> list[dict]:
        with self._lock:
            return [
                copy.deepcopy(data)
                for data in self._data.get(kind, {}).values()
                if _matches(data, filters)
            ]

    def insert(self, kind: str, record_id: str, data: dict) -> None:
        with self._lock:
            table = self._data.setdefault(kind, {})
            if record_id in table:
                raise ConflictError(f"{kind} record already exists: {record_id}")
            table[record_id] = copy.deepcopy(data)

    def update(self, kind: str, record_id: str, data: dict) -> None:
        with self._lock:
            table = self._data.get(kind, {})
            if record_id not in table:
                raise NotFoundError(kind, record_id)
            table[record_id] = copy.deepcopy(data)

    def delete(self, kind: str, record_id: str) -> None:
        with self._lock:
            table = self._data.get(kind, {})
            if record_id not in table:
                raise NotFoundError(kind, record_id)
            del table[record_id]

    @contextmanager
    def transaction(self) -> Iterator["MemoryRepository"]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = copy.deepcopy(self._data)
            self._depth = 1
            try:
                yield self
            except Exception:
                self._data = snapshot
                raise
            finally:
                self._depth = 0


metadata = MetaData()

records_table = Table(
    "records",
    metadata,
    Column("kind", String(40), primary_key=True),
    Column("id", String(64), primary_key=True),
    Column("payload", JSON, nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)


class SqlRepository(Repository):
    """SQLAlchemy-backed store: one document table keyed by (kind, id)."""

    def __init__(self, engine: Engine, create_tables: bool = True):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine
            create_tables: Create the records table if missing
        """
        self.engine = engine
        self._local = threading.local()
        if create_tables:
            metadata.create_all(engine)

    @property
    def _active(self) -> Connection | None:
        return getattr(self._local, "connection", None)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        if self._active is not None:
            yield self._active
        else:
            with self.engine.begin() as conn:
                yield conn

    @contextmanager
    def transaction(self) -> Iterator["SqlRepository"]:
        if self._active is not None:
            yield self
            return

        with self.engine.begin() as conn:
            self._local.connection = conn
            try:
                yield self
            finally:
                self._local.connection = None

    def _key(self, kind: str, record_id: str):
        return and_(records_table.c.kind == kind, records_table.c.id == record_id)

    def get(self, kind: str, record_id: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                select(records_table.c.payload).where(self._key(kind, record_id))
            ).first()
        return dict(row[0]) if row else None

    def find(self, kind: str, **filters: Any) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                select(records_table.c.payload)
                .where(records_table.c.kind == kind)
                .order_by(records_table.c.created_at, records_table.c.id)
            ).fetchall()
        return [dict(row[0]) for row in rows if _matches(row[0], filters)]

    def insert(self, kind: str, record_id: str, data: dict) -> None:
        now = datetime.now()
        try:
            with self._connect() as conn:
                conn.execute(
                    insert(records_table).values(
                        kind=kind,
                        id=record_id,
                        payload=data,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as e:
            raise ConflictError(f"{kind} record already exists: {record_id}") from e

    def update(self, kind: str, record_id: str, data: dict) -> None:
        with self._connect() as conn:
            result = conn.execute(
                update(records_table)
                .where(self._key(kind, record_id))
                .values(payload=data, updated_at=datetime.now())
            )
        if result.rowcount == 0:
            raise NotFoundError(kind, record_id)

    def delete(self, kind: str, record_id: str) -> None:
        with self._connect() as conn:
            result = conn.execute(delete(records_table).where(self._key(kind, record_id)))
        if result.rowcount == 0:
            raise NotFoundError(kind, record_id)
