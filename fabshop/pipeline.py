"""Order status pipeline used for workflow tracking and Kanban columns."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .domain import Order, OrderStatus

PIPELINE: Tuple[OrderStatus, ...] = tuple(OrderStatus)


class PipelineError(ValueError):
    """Base exception for rejected status changes."""


class InvalidStatusError(PipelineError):
    """Raised when a status outside the pipeline is requested."""


class TransitionNotAllowedError(PipelineError):
    """Raised when the transition table forbids a status change."""


def _allow_all() -> Dict[OrderStatus, FrozenSet[OrderStatus]]:
    return {status: frozenset(PIPELINE) for status in PIPELINE}


@dataclass(slots=True)
class TransitionTable:
    """Allowed target statuses per current status.

    The default table permits every status to move to every other status,
    including out of ``completed`` and ``cancelled``.
    """

    allowed: Mapping[OrderStatus, FrozenSet[OrderStatus]] = field(
        default_factory=_allow_all
    )

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[Any, Iterable[Any]]
    ) -> "TransitionTable":
        allowed = {
            parse_status(source): frozenset(parse_status(target) for target in targets)
            for source, targets in mapping.items()
        }
        return cls(allowed=allowed)

    def can_transition(self, current: OrderStatus, target: OrderStatus) -> bool:
        return target in self.allowed.get(current, frozenset())

    def targets(self, current: OrderStatus) -> List[OrderStatus]:
        allowed = self.allowed.get(current, frozenset())
        return [status for status in PIPELINE if status in allowed]

    def choices(self, current: OrderStatus) -> List[OrderStatus]:
        """Options for a status picker: the allowed targets plus ``current``."""

        allowed = self.allowed.get(current, frozenset())
        return [status for status in PIPELINE if status == current or status in allowed]


DEFAULT_TRANSITIONS = TransitionTable()


def parse_status(value: Any) -> OrderStatus:
    """Strictly parse a requested status."""

    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError as exc:
        raise InvalidStatusError(f"Unknown order status {value!r}") from exc


def normalize_status(value: Any) -> OrderStatus:
    """Lenient parse used on read; unknown values fall back to ``lead``."""

    return OrderStatus.coerce(value)


def set_status(
    order: Order,
    new_status: Any,
    table: Optional[TransitionTable] = None,
) -> Order:
    table = table or DEFAULT_TRANSITIONS
    target = parse_status(new_status)
    if not table.can_transition(order.status, target):
        raise TransitionNotAllowedError(
            f"Order cannot move from {order.status.value!r} to {target.value!r}"
        )
    order.status = target
    return order


def bucket_orders(orders: Iterable[Order]) -> Dict[OrderStatus, List[Order]]:
    """Group orders into one column per pipeline status."""

    columns: Dict[OrderStatus, List[Order]] = {status: [] for status in PIPELINE}
    for order in orders:
        columns[order.status].append(order)
    return columns


__all__ = [
    "PIPELINE",
    "PipelineError",
    "InvalidStatusError",
    "TransitionNotAllowedError",
    "TransitionTable",
    "DEFAULT_TRANSITIONS",
    "parse_status",
    "normalize_status",
    "set_status",
    "bucket_orders",
]
