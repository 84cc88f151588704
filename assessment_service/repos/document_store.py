from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from assessment_service.models.document import Document, FieldFilter


class RemoteStoreError(Exception):
    """A failure reported by the document store.

    `code` uses the store's own vocabulary (unavailable, deadline-exceeded,
    permission-denied, ...).  The resilience layer maps it to a cause.
    """

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message


class DocumentStore(Protocol):
    async def fetch_one(self, collection: str, doc_id: str) -> Document | None: ...
    async def fetch_many(
        self, collection: str, filters: Sequence[FieldFilter] = ()
    ) -> list[Document]: ...


class InMemoryDocumentStore:
    """Dict-backed store for local dev and tests.

    Documents are kept per collection in insertion order so `fetch_many`
    is deterministic.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def put(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> Document:
        self._collections.setdefault(collection, {})[doc_id] = dict(data)
        return Document(collection=collection, id=doc_id, data=dict(data))

    def clear(self) -> None:
        self._collections.clear()

    async def fetch_one(self, collection: str, doc_id: str) -> Document | None:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(collection=collection, id=doc_id, data=dict(data))

    async def fetch_many(
        self, collection: str, filters: Sequence[FieldFilter] = ()
    ) -> list[Document]:
        return [
            Document(collection=collection, id=doc_id, data=dict(data))
            for doc_id, data in self._collections.get(collection, {}).items()
            if all(f.matches(data) for f in filters)
        ]

    async def ping(self) -> None:
        return None
