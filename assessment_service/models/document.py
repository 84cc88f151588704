from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

FilterOp = Literal["==", "in"]


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """Pointer to a document in another collection.

    Two refs built independently for the same document compare equal:
    equality and hashing go through (collection, id), never identity.
    """

    collection: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    @staticmethod
    def from_path(path: str) -> DocumentRef:
        collection, sep, doc_id = path.strip("/").rpartition("/")
        if not sep or not collection or not doc_id:
            raise ValueError(f"not a document path: {path!r}")
        return DocumentRef(collection=collection, id=doc_id)


@dataclass(frozen=True, slots=True)
class Document:
    collection: str
    id: str
    data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(collection=self.collection, id=self.id)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True, slots=True)
class FieldFilter:
    """One `where` clause: field == value, or field in values."""

    field: str
    op: FilterOp
    value: Any

    def matches(self, data: Mapping[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual = data[self.field]
        if self.op == "==":
            return actual == self.value
        return actual in tuple(self.value)


def where(field_name: str, op: FilterOp, value: Any) -> FieldFilter:
    if op == "in":
        value = tuple(value)
    return FieldFilter(field=field_name, op=op, value=value)
