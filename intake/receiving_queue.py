"""
Session-scoped receiving queue.

Accumulates (order line, quantity-to-receive) entries for one purchase order
until they are finalized or the session is cancelled. The queue is owned by
the IntakeController that created it; nothing else mutates it.

Merge rule: adding an entry whose order_line_id is already queued increments
that entry's quantity instead of replacing it, so repeated scans of the same
item accumulate. Bounds against the order's pending quantity are checked by
the controller before add() is called, not here.

Subscribers receive an immutable snapshot immediately on subscribe and again
after every mutation.
"""
import logging
import threading
from typing import Callable, Iterator

from models.receiving import FinalizeItem, QueueEntry

logger = logging.getLogger(__name__)

QueueSnapshot = tuple[QueueEntry, ...]
QueueSubscriber = Callable[[QueueSnapshot], None]


class ReceivingQueue:
    """Ordered mapping of order_line_id → QueueEntry for a single order."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        self._entries: dict[str, QueueEntry] = {}
        self._subscribers: list[QueueSubscriber] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, entry: QueueEntry) -> QueueEntry:
        """
        Add *entry*, merging by order_line_id.

        Returns a copy of the resulting queue entry.
        """
        with self._lock:
            existing = self._entries.get(entry.order_line_id)
            if existing is not None:
                existing.quantity = existing.quantity + entry.quantity
                current = existing
                logger.debug(
                    "Queue %s: line %s +%g → %g",
                    self.order_id, entry.order_line_id, entry.quantity, current.quantity,
                )
            else:
                current = entry.model_copy()
                self._entries[entry.order_line_id] = current
                logger.debug(
                    "Queue %s: new line %s (%s) qty %g",
                    self.order_id, entry.order_line_id, entry.sku, entry.quantity,
                )
            result = current.model_copy()
            self._publish()
        return result

    def remove(self, order_line_id: str) -> bool:
        """Drop the entry for *order_line_id*. Returns False if it was not queued."""
        with self._lock:
            if self._entries.pop(order_line_id, None) is None:
                return False
            logger.debug("Queue %s: removed line %s", self.order_id, order_line_id)
            self._publish()
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            logger.debug("Queue %s: cleared", self.order_id)
            self._publish()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def entries(self) -> QueueSnapshot:
        """Copies of the current entries, in first-added order."""
        with self._lock:
            return tuple(e.model_copy() for e in self._entries.values())

    def get(self, order_line_id: str) -> QueueEntry | None:
        with self._lock:
            entry = self._entries.get(order_line_id)
            return entry.model_copy() if entry is not None else None

    def quantity_for(self, order_line_id: str) -> float:
        with self._lock:
            entry = self._entries.get(order_line_id)
            return entry.quantity if entry is not None else 0

    def total_value(self) -> float:
        """Sum of quantity × unit_cost, recomputed on every call."""
        with self._lock:
            return sum(e.quantity * e.unit_cost for e in self._entries.values())

    def item_count(self) -> int:
        """Number of distinct lines queued (not the summed quantities)."""
        with self._lock:
            return len(self._entries)

    def total_quantity(self) -> float:
        with self._lock:
            return sum(e.quantity for e in self._entries.values())

    def is_empty(self) -> bool:
        return self.item_count() == 0

    def to_finalize_items(self) -> list[FinalizeItem]:
        """Translate the queue into per-line received quantities."""
        return [
            FinalizeItem(order_line_id=e.order_line_id, quantity_received=e.quantity)
            for e in self.entries()
        ]

    def __len__(self) -> int:
        return self.item_count()

    def __contains__(self, order_line_id: object) -> bool:
        with self._lock:
            return order_line_id in self._entries

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(self.entries())

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, callback: QueueSubscriber) -> Callable[[], None]:
        """
        Register *callback* for queue snapshots.

        The callback fires immediately with the current contents, then after
        each mutation. Returns a function that unsubscribes it.
        """
        with self._lock:
            self._subscribers.append(callback)
            self._notify(callback, self.entries())

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def _publish(self) -> None:
        snapshot = self.entries()
        for callback in list(self._subscribers):
            self._notify(callback, snapshot)

    def _notify(self, callback: QueueSubscriber, snapshot: QueueSnapshot) -> None:
        try:
            callback(snapshot)
        except Exception:
            # A broken view must not undo or block a mutation that already happened
            logger.exception("Queue subscriber %r failed", callback)
