"""Repository contract and the dictionary-backed store used by default."""

from __future__ import annotations

from typing import Callable, Dict, Generic, Iterator, List, Optional, Protocol, TypeVar

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """An insert collided with a stored id."""


class RecordNotFoundError(RepositoryError):
    """A lookup, update or delete targeted an id that is not stored."""


class StoreError(RepositoryError):
    """The backing store failed to execute an operation."""


def missing_record(kind: str, item_id: object) -> RecordNotFoundError:
    return RecordNotFoundError(f"No {kind} with id {item_id!r}")


def duplicate_record(kind: str, item_id: object) -> DuplicateRecordError:
    return DuplicateRecordError(f"A {kind} with id {item_id!r} already exists")


class Repository(Protocol[T]):
    """Operations the service layer needs from a store, in memory or SQLite."""

    kind: str

    def __contains__(self, item_id: object) -> bool: ...

    def __len__(self) -> int: ...

    def __iter__(self) -> Iterator[T]: ...

    def add(self, item_id: str, item: T) -> None: ...

    def upsert(self, item_id: str, item: T) -> None: ...

    def get(self, item_id: str) -> T: ...

    def find(self, item_id: Optional[str]) -> Optional[T]: ...

    def remove(self, item_id: str) -> None: ...

    def list(self) -> List[T]: ...

    def filter(self, predicate: Callable[[T], bool]) -> List[T]: ...


class InMemoryRepository(Generic[T]):
    """Keeps records in a dict keyed by id, in insertion order.

    Records are returned as the stored objects, so callers must still
    ``upsert`` after a change to stay compatible with the SQLite store.
    """

    def __init__(self, kind: str = "record") -> None:
        self.kind = kind
        self._items: Dict[str, T] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))

    def add(self, item_id: str, item: T) -> None:
        if item_id in self._items:
            raise duplicate_record(self.kind, item_id)
        self._items[item_id] = item

    def upsert(self, item_id: str, item: T) -> None:
        self._items[item_id] = item

    def get(self, item_id: str) -> T:
        item = self.find(item_id)
        if item is None:
            raise missing_record(self.kind, item_id)
        return item

    def find(self, item_id: Optional[str]) -> Optional[T]:
        """Return the record, or ``None`` for an empty or dangling reference."""

        if item_id is None:
            return None
        return self._items.get(item_id)

    def remove(self, item_id: str) -> None:
        if self._items.pop(item_id, None) is None:
            raise missing_record(self.kind, item_id)

    def list(self) -> List[T]:
        return list(self._items.values())

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]


__all__ = [
    "Repository",
    "InMemoryRepository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
    "StoreError",
    "missing_record",
    "duplicate_record",
]
