"""
Unit tests for the receiving queue.
"""
import threading

import pytest
from pydantic import ValidationError

from intake.receiving_queue import ReceivingQueue
from models.receiving import QueueEntry


def _entry(line_id: str = "line-1", quantity: float = 1, unit_cost: float = 12.5, **kw) -> QueueEntry:
    return QueueEntry(
        order_line_id=line_id,
        product_id=kw.get("product_id", "prod-1"),
        product_name=kw.get("product_name", "Ergonomic Chair"),
        sku=kw.get("sku", "PROD-001"),
        barcode=kw.get("barcode", "7891234567890"),
        quantity=quantity,
        unit_cost=unit_cost,
    )


@pytest.mark.unit
class TestReceivingQueue:
    """Tests for ReceivingQueue class."""

    @pytest.fixture
    def queue(self):
        return ReceivingQueue("po-1")

    def test_new_queue_is_empty(self, queue):
        assert queue.order_id == "po-1"
        assert queue.item_count() == 0
        assert queue.total_value() == 0
        assert queue.is_empty()
        assert queue.entries() == ()

    def test_repeated_adds_merge_into_one_entry(self, queue):
        """Quantities for the same order line accumulate."""
        for qty in (2, 3, 1):
            queue.add(_entry(quantity=qty))

        entries = queue.entries()
        assert len(entries) == 1
        assert entries[0].order_line_id == "line-1"
        assert entries[0].quantity == 6
        assert queue.item_count() == 1

    def test_add_returns_merged_entry(self, queue):
        queue.add(_entry(quantity=2))
        merged = queue.add(_entry(quantity=5))
        assert merged.quantity == 7

    def test_merge_keeps_unit_cost_from_first_add(self, queue):
        queue.add(_entry(quantity=1, unit_cost=10.0))
        queue.add(_entry(quantity=1, unit_cost=99.0))
        assert queue.get("line-1").unit_cost == 10.0
        assert queue.total_value() == 20.0

    def test_same_product_on_two_lines_stays_separate(self, queue):
        """Keyed by order line, never by product or barcode."""
        queue.add(_entry("line-1", quantity=2, unit_cost=12.5))
        queue.add(_entry("line-4", quantity=3, unit_cost=11.0, barcode=None))

        assert queue.item_count() == 2
        assert [e.order_line_id for e in queue.entries()] == ["line-1", "line-4"]

    def test_insertion_order_preserved_on_merge(self, queue):
        queue.add(_entry("line-1"))
        queue.add(_entry("line-2"))
        queue.add(_entry("line-1", quantity=4))
        assert [e.order_line_id for e in queue.entries()] == ["line-1", "line-2"]

    def test_item_count_counts_lines_not_units(self, queue):
        queue.add(_entry("line-1", quantity=10))
        queue.add(_entry("line-2", quantity=5))
        assert queue.item_count() == 2
        assert queue.total_quantity() == 15

    def test_remove_then_add_starts_fresh(self, queue):
        queue.add(_entry(quantity=5))
        assert queue.remove("line-1") is True
        queue.add(_entry(quantity=2))
        assert queue.get("line-1").quantity == 2

    def test_remove_missing_is_noop(self, queue):
        queue.add(_entry())
        assert queue.remove("nope") is False
        assert queue.item_count() == 1

    def test_clear(self, queue):
        queue.add(_entry("line-1"))
        queue.add(_entry("line-2"))
        queue.clear()
        assert queue.is_empty()
        assert queue.total_value() == 0

    def test_total_value_recomputed_after_every_mutation(self, queue):
        queue.add(_entry("line-1", quantity=2, unit_cost=12.5))
        assert queue.total_value() == 25.0
        queue.add(_entry("line-2", quantity=4, unit_cost=2.25))
        assert queue.total_value() == 34.0
        queue.add(_entry("line-1", quantity=1, unit_cost=12.5))
        assert queue.total_value() == 46.5
        queue.remove("line-2")
        assert queue.total_value() == 37.5

    def test_snapshots_cannot_mutate_queue(self, queue):
        queue.add(_entry(quantity=2))
        snapshot = queue.entries()[0]
        snapshot.quantity = 50
        returned = queue.add(_entry(quantity=1))
        returned.quantity = 70
        assert queue.get("line-1").quantity == 3

    def test_entry_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            _entry(quantity=0)
        with pytest.raises(ValidationError):
            _entry(quantity=-1)

    def test_to_finalize_items(self, queue):
        queue.add(_entry("line-1", quantity=2))
        queue.add(_entry("line-3", quantity=4))
        items = queue.to_finalize_items()
        assert [(i.order_line_id, i.quantity_received) for i in items] == [
            ("line-1", 2), ("line-3", 4),
        ]

    def test_container_protocol(self, queue):
        queue.add(_entry("line-1"))
        assert "line-1" in queue
        assert "line-2" not in queue
        assert len(queue) == 1
        assert [e.order_line_id for e in queue] == ["line-1"]
        assert queue.quantity_for("line-1") == 1
        assert queue.quantity_for("line-2") == 0


@pytest.mark.unit
class TestReceivingQueueSubscriptions:
    """Tests for the observable snapshot stream."""

    def test_subscriber_gets_current_snapshot_immediately(self):
        queue = ReceivingQueue("po-1")
        queue.add(_entry(quantity=3))
        seen = []
        queue.subscribe(seen.append)
        assert len(seen) == 1
        assert seen[0][0].quantity == 3

    def test_subscriber_notified_after_each_mutation(self):
        queue = ReceivingQueue("po-1")
        seen = []
        queue.subscribe(seen.append)

        queue.add(_entry(quantity=1))
        queue.add(_entry(quantity=2))
        queue.remove("line-1")
        queue.remove("line-1")          # no-op: no notification
        queue.add(_entry("line-2"))
        queue.clear()

        assert [len(s) for s in seen] == [0, 1, 1, 0, 1, 0]
        assert seen[2][0].quantity == 3

    def test_unsubscribe(self):
        queue = ReceivingQueue("po-1")
        seen = []
        unsubscribe = queue.subscribe(seen.append)
        unsubscribe()
        queue.add(_entry())
        assert len(seen) == 1

    def test_failing_subscriber_does_not_block_others(self):
        queue = ReceivingQueue("po-1")
        seen = []

        def broken(snapshot):
            raise RuntimeError("view crashed")

        queue.subscribe(broken)
        queue.subscribe(seen.append)
        queue.add(_entry(quantity=2))

        assert queue.get("line-1").quantity == 2
        assert seen[-1][0].quantity == 2


@pytest.mark.unit
def test_concurrent_adds_merge_without_losing_updates():
    """Interleaved callers never create duplicate entries or drop quantity."""
    queue = ReceivingQueue("po-1")
    threads = [
        threading.Thread(target=lambda: [queue.add(_entry(quantity=1)) for _ in range(200)])
        for _ in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert queue.item_count() == 1
    assert queue.get("line-1").quantity == 1600
