"""SQLite-backed persistence helpers for the shop dashboard."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Generic,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)

from .domain import (
    Expense,
    Machine,
    Material,
    Order,
    OrderStaffAssignment,
    Payment,
    Service,
    Staff,
    Supplier,
)
from .repository import (
    RecordNotFoundError,
    StoreError,
    duplicate_record,
    missing_record,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SQLiteSession:
    """Shared connection that commits per statement unless inside ``atomic``."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self.connection = connection
        self._depth = 0

    def execute(self, sql: str, parameters: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self.connection.execute(sql, parameters)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def commit(self) -> None:
        if self._depth == 0:
            try:
                self.connection.commit()
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Group several writes into one transaction."""

        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                logger.warning("Rolling back transaction after error")
                self.connection.rollback()
            raise
        self._depth -= 1
        self.commit()


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite.

    Records are stored as JSON documents and decoded with ``decoder`` on
    every read, so normalisation of stale enum values happens here.
    """

    def __init__(
        self,
        session: SQLiteSession,
        table: str,
        decoder: Callable[[Mapping[str, Any]], T],
        kind: str = "record",
    ) -> None:
        self.kind = kind
        self._session = session
        self._table = table
        self._decoder = decoder
        self._session.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            "id TEXT PRIMARY KEY, payload TEXT NOT NULL)"
        )
        self._session.commit()

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        cursor = self._session.execute(
            f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
        )
        return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:
        cursor = self._session.execute(f"SELECT COUNT(1) FROM {self._table}")
        value = cursor.fetchone()
        return int(value[0]) if value else 0

    def _decode(self, payload: str) -> T:
        return self._decoder(json.loads(payload))

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        if item_id in self:
            raise duplicate_record(self.kind, item_id)
        payload = json.dumps(item.to_record())  # type: ignore[attr-defined]
        self._session.execute(
            f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
            (item_id, payload),
        )
        self._session.commit()

    def upsert(self, item_id: str, item: T) -> None:
        payload = json.dumps(item.to_record())  # type: ignore[attr-defined]
        self._session.execute(
            f"INSERT INTO {self._table} (id, payload) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
            (item_id, payload),
        )
        self._session.commit()

    def get(self, item_id: str) -> T:
        cursor = self._session.execute(
            f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
        )
        row = cursor.fetchone()
        if row is None:
            raise missing_record(self.kind, item_id)
        return self._decode(row[0])

    def find(self, item_id: Optional[str]) -> Optional[T]:
        if item_id is None:
            return None
        try:
            return self.get(item_id)
        except RecordNotFoundError:
            return None

    def remove(self, item_id: str) -> None:
        cursor = self._session.execute(
            f"DELETE FROM {self._table} WHERE id = ?", (item_id,)
        )
        if cursor.rowcount == 0:
            raise missing_record(self.kind, item_id)
        self._session.commit()

    def list(self) -> List[T]:
        cursor = self._session.execute(
            f"SELECT payload FROM {self._table} ORDER BY id"
        )
        return [self._decode(row[0]) for row in cursor.fetchall()]

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]


class ShopDatabase:
    """Convenience facade bundling SQLite repositories for all aggregates."""

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        self._session = SQLiteSession(connection)
        session = self._session
        self.materials = SQLiteRepository[Material](
            session, "materials", Material.from_record, "material"
        )
        self.services = SQLiteRepository[Service](
            session, "services", Service.from_record, "service"
        )
        self.machines = SQLiteRepository[Machine](
            session, "machines", Machine.from_record, "machine"
        )
        self.staff = SQLiteRepository[Staff](
            session, "staff", Staff.from_record, "staff member"
        )
        self.orders = SQLiteRepository[Order](
            session, "orders", Order.from_record, "order"
        )
        self.order_staff = SQLiteRepository[OrderStaffAssignment](
            session, "order_staff", OrderStaffAssignment.from_record, "staff assignment"
        )
        self.payments = SQLiteRepository[Payment](
            session, "payments", Payment.from_record, "payment"
        )
        self.expenses = SQLiteRepository[Expense](
            session, "expenses", Expense.from_record, "expense"
        )
        self.suppliers = SQLiteRepository[Supplier](
            session, "suppliers", Supplier.from_record, "supplier"
        )
        logger.info("Opened shop database at %s", path)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._session.connection

    def atomic(self):
        return self._session.atomic()

    def close(self) -> None:
        self._session.connection.close()

    def __enter__(self) -> "ShopDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLiteSession", "SQLiteRepository", "ShopDatabase"]
