"""PostgreSQL implementation of DocumentStore.

Documents live in one JSONB table.  Values that JSON cannot carry are
tagged on the way in and restored on the way out:

    DocumentRef("classes", "c1")   <->  {"$ref": "classes/c1"}
    datetime(2025, 1, 1, tzinfo=UTC)  <->  {"$ts": "2025-01-01T00:00:00+00:00"}

Driver exceptions are translated into RemoteStoreError codes so the
resilience layer classifies a Postgres outage exactly like any other
store outage.
"""

from __future__ import annotations

import datetime
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import false, or_, select, text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_service.db.tables import DocumentRow
from assessment_service.models.document import Document, DocumentRef, FieldFilter
from assessment_service.repos.document_store import RemoteStoreError
from assessment_service.services.connectivity import ConnectivityMonitor

# SQLSTATE class/code -> store error code
_SQLSTATE_CODES = {
    "42501": "permission-denied",
    "28000": "unauthenticated",
    "28P01": "unauthenticated",
    "57014": "deadline-exceeded",
    "40001": "aborted",
    "40P01": "aborted",
    "53": "resource-exhausted",
    "08": "unavailable",
    "57P": "unavailable",
    "23": "failed-precondition",
}


def encode_value(value: Any) -> Any:
    if isinstance(value, DocumentRef):
        return {"$ref": value.path}
    if isinstance(value, datetime.datetime):
        return {"$ts": value.isoformat()}
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"$ref"}:
            return DocumentRef.from_path(value["$ref"])
        if set(value) == {"$ts"}:
            return datetime.datetime.fromisoformat(value["$ts"])
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def _store_code(exc: DBAPIError) -> str:
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate:
        for prefix in (sqlstate, sqlstate[:3], sqlstate[:2]):
            if prefix in _SQLSTATE_CODES:
                return _SQLSTATE_CODES[prefix]
    if isinstance(exc, (OperationalError, InterfaceError)) or exc.connection_invalidated:
        return "unavailable"
    return "unknown"


class PgDocumentStore:
    """Satisfies the DocumentStore Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        monitor: ConnectivityMonitor | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._monitor = monitor

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                yield session
        except TimeoutError as exc:
            raise RemoteStoreError("deadline-exceeded", str(exc)) from exc
        except DBAPIError as exc:
            code = _store_code(exc)
            if code == "unavailable" and self._monitor is not None:
                self._monitor.set_online(False)
            raise RemoteStoreError(code, str(exc.orig or exc)) from exc
        except OSError as exc:
            if self._monitor is not None:
                self._monitor.set_online(False)
            raise RemoteStoreError("unavailable", str(exc)) from exc
        if self._monitor is not None:
            self._monitor.set_online(True)

    async def fetch_one(self, collection: str, doc_id: str) -> Document | None:
        stmt = select(DocumentRow).where(
            DocumentRow.collection == collection, DocumentRow.id == doc_id
        )
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_document(row)

    async def fetch_many(
        self, collection: str, filters: Sequence[FieldFilter] = ()
    ) -> list[Document]:
        stmt = select(DocumentRow).where(DocumentRow.collection == collection)
        for f in filters:
            stmt = stmt.where(_filter_clause(f))
        stmt = stmt.order_by(DocumentRow.created_at, DocumentRow.id)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_document(row) for row in rows]

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))


def _filter_clause(f: FieldFilter):
    if f.op == "==":
        return DocumentRow.data.contains({f.field: encode_value(f.value)})
    values = list(f.value)
    if not values:
        return false()
    return or_(*(DocumentRow.data.contains({f.field: encode_value(v)}) for v in values))


def _row_to_document(row: DocumentRow) -> Document:
    return Document(
        collection=row.collection,
        id=row.id,
        data=decode_value(dict(row.data or {})),
    )
