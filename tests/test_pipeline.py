import itertools
import logging

import pytest

from fabshop.domain import Order, OrderStatus
from fabshop.pipeline import (
    PIPELINE,
    InvalidStatusError,
    TransitionNotAllowedError,
    TransitionTable,
    bucket_orders,
    normalize_status,
    set_status,
)


def make_order(status=OrderStatus.LEAD, order_id="o1"):
    return Order(id=order_id, client_name="Client", status=status)


def test_pipeline_order():
    assert [status.value for status in PIPELINE] == [
        "lead",
        "contacted",
        "confirmed",
        "progressing",
        "completed",
        "cancelled",
    ]


@pytest.mark.parametrize("current, target", list(itertools.product(PIPELINE, PIPELINE)))
def test_any_status_can_move_to_any_other(current, target):
    order = make_order(current)
    set_status(order, target.value)
    assert order.status is target


def test_unknown_status_is_rejected_without_change():
    order = make_order(OrderStatus.CONFIRMED)
    with pytest.raises(InvalidStatusError):
        set_status(order, "archived")
    assert order.status is OrderStatus.CONFIRMED


def test_unknown_stored_status_normalizes_to_lead(caplog):
    with caplog.at_level(logging.WARNING, logger="fabshop.domain"):
        assert normalize_status("archived") is OrderStatus.LEAD
    assert "archived" in caplog.text


def test_order_record_with_unknown_status_loads_as_lead():
    record = make_order(OrderStatus.COMPLETED).to_record()
    record["status"] = "archived"
    assert Order.from_record(record).status is OrderStatus.LEAD


def test_stricter_table_blocks_transitions():
    table = TransitionTable.from_mapping({"lead": ["contacted"], "contacted": ["confirmed"]})
    order = make_order()
    set_status(order, OrderStatus.CONTACTED, table)
    with pytest.raises(TransitionNotAllowedError):
        set_status(order, OrderStatus.LEAD, table)
    assert order.status is OrderStatus.CONTACTED
    assert table.targets(OrderStatus.CONTACTED) == [OrderStatus.CONFIRMED]
    assert table.targets(OrderStatus.COMPLETED) == []


def test_status_choices_keep_the_current_status():
    table = TransitionTable.from_mapping({"lead": ["contacted"], "contacted": ["confirmed"]})
    assert table.choices(OrderStatus.LEAD) == [OrderStatus.LEAD, OrderStatus.CONTACTED]
    assert table.choices(OrderStatus.COMPLETED) == [OrderStatus.COMPLETED]
    assert TransitionTable().choices(OrderStatus.CANCELLED) == list(PIPELINE)


def test_default_table_allows_leaving_cancelled():
    order = make_order(OrderStatus.CANCELLED)
    set_status(order, OrderStatus.LEAD)
    assert order.status is OrderStatus.LEAD


def test_each_order_lands_in_exactly_one_bucket():
    orders = [
        make_order(status, f"o{index}")
        for index, status in enumerate(
            [OrderStatus.LEAD, OrderStatus.LEAD, OrderStatus.COMPLETED, OrderStatus.CANCELLED]
        )
    ]
    columns = bucket_orders(orders)
    assert list(columns) == list(PIPELINE)
    assert [o.id for o in columns[OrderStatus.LEAD]] == ["o0", "o1"]
    assert columns[OrderStatus.PROGRESSING] == []
    assert sum(len(bucket) for bucket in columns.values()) == len(orders)
