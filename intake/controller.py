"""
Intake workflow controller.

State machine for one worker receiving one purchase order at a time:

    SELECTING_ORDER → LOADING_DETAIL → SCANNING
    SCANNING → CONFIRMING_QUANTITY → SCANNING        (barcode path)
    SCANNING → MANUAL_ENTRY → SCANNING               (search path)
    SCANNING ⇄ SUMMARIZING
    SUMMARIZING → FINALIZING → DONE → SELECTING_ORDER
    SUMMARIZING → FINALIZING → SUMMARIZING            (finalize failed, queue kept)
    LOADING_DETAIL → ERROR → SELECTING_ORDER          (detail could not be loaded)

Quantities are bounded per confirmation by the pending quantity the backend
reported when the order was loaded. Pending is never decremented locally, so
several confirmations of the same line may add up to more than was pending;
that is allowed (over-receipt across deliveries is legitimate) and only
produces an over_receipt warning.

User mistakes (unknown barcode, bad quantity, fully received line) never
raise: they produce a Notice and leave the state where it was. Calling an
operation the current state does not offer raises WorkflowStateError.
"""
import logging
import math
import threading
from datetime import date
from enum import Enum
from typing import Callable, Iterable, Optional

from config import Config
from models.purchase_order import OrderDetail, OrderLine, OrderSummary
from models.receiving import FinalizeRequest, FinalizeResult, QueueEntry
from models.result import Notice
from .barcode_resolver import BarcodeResolver
from .catalog import CsvOrderCatalog, HttpOrderCatalog, OrderCatalogProvider
from .errors import (
    AlreadyReceivedError,
    BarcodeNotFoundError,
    InvalidQuantityError,
    LineNotFoundError,
    OrderNotFoundError,
    TransportFailure,
    WorkflowStateError,
)
from .gateway import FinalizationGateway, HttpFinalizationGateway, LocalFinalizationGateway
from .http_client import JsonHttpClient
from .receiving_queue import QueueSubscriber, ReceivingQueue

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    SELECTING_ORDER = "selecting_order"
    LOADING_DETAIL = "loading_detail"
    SCANNING = "scanning"
    CONFIRMING_QUANTITY = "confirming_quantity"
    MANUAL_ENTRY = "manual_entry"
    SUMMARIZING = "summarizing"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


# States from which a new order may be picked
_SELECTABLE = {WorkflowState.SELECTING_ORDER, WorkflowState.DONE, WorkflowState.ERROR}

# States that belong to an open receiving session
_IN_SESSION = {
    WorkflowState.SCANNING,
    WorkflowState.CONFIRMING_QUANTITY,
    WorkflowState.MANUAL_ENTRY,
    WorkflowState.SUMMARIZING,
}

StateSubscriber = Callable[[WorkflowState, WorkflowState], None]
NoticeSubscriber = Callable[[Notice], None]

_LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "success": logging.INFO,
}


class IntakeController:
    """
    Orchestrates order selection, scanning, confirmation, summary and finalize.

    Usage:
        controller = IntakeController(catalog, gateway, tenant_id="t-1")
        controller.select_order("po-1")
        if controller.scan("7891234567890"):
            controller.confirm(2)
        controller.open_summary()
        result = controller.finalize()

    Every Notice raised is appended to ``notices`` and pushed to notice
    subscribers; operations also return a typed result (None when rejected).
    """

    def __init__(
        self,
        catalog: OrderCatalogProvider,
        gateway: FinalizationGateway,
        tenant_id: str,
        resolver: Optional[BarcodeResolver] = None,
        warn_on_over_receipt: bool = True,
    ):
        self.catalog = catalog
        self.gateway = gateway
        self.tenant_id = tenant_id
        self.resolver = resolver or BarcodeResolver()
        self.warn_on_over_receipt = warn_on_over_receipt

        self.notices: list[Notice] = []
        self.last_result: Optional[FinalizeResult] = None

        self._state = WorkflowState.SELECTING_ORDER
        self._order: Optional[OrderDetail] = None
        self._queue: Optional[ReceivingQueue] = None
        self._pending_line: Optional[OrderLine] = None
        self._proposed_quantity: Optional[float] = None

        self._state_subscribers: list[StateSubscriber] = []
        self._notice_subscribers: list[NoticeSubscriber] = []
        # token -> (callback, detach from the current queue or None)
        self._queue_subscriptions: dict[object, tuple[QueueSubscriber, Optional[Callable[[], None]]]] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: Optional[Config] = None, dry_run: bool = False) -> "IntakeController":
        """Build a controller with the catalog and gateway selected by *config*."""
        config = config or Config()
        client = JsonHttpClient(
            config.api_base_url,
            token=config.api_token,
            timeout=config.request_timeout_seconds,
        )
        catalog: OrderCatalogProvider
        if config.catalog_source == "csv":
            catalog = CsvOrderCatalog(
                config.po_csv, config.po_lines_csv, supplier_id=config.supplier_id,
            )
        else:
            catalog = HttpOrderCatalog(client, supplier_id=config.supplier_id)

        gateway: FinalizationGateway
        if dry_run or config.catalog_source == "csv":
            gateway = LocalFinalizationGateway(catalog)
        else:
            gateway = HttpFinalizationGateway(
                client,
                payload_template=config.finalize_payload_template,
                template_dir=config.config_dir,
            )

        return cls(
            catalog,
            gateway,
            tenant_id=config.tenant_id,
            resolver=BarcodeResolver(fuzzy_threshold=config.manual_search_fuzzy_threshold),
            warn_on_over_receipt=config.warn_on_over_receipt,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def order(self) -> Optional[OrderDetail]:
        return self._order

    @property
    def queue(self) -> Optional[ReceivingQueue]:
        return self._queue

    @property
    def pending_line(self) -> Optional[OrderLine]:
        """The line awaiting a quantity (confirmation or manual selection)."""
        return self._pending_line

    @property
    def proposed_quantity(self) -> Optional[float]:
        return self._proposed_quantity

    @property
    def last_notice(self) -> Optional[Notice]:
        return self.notices[-1] if self.notices else None

    @property
    def can_finalize(self) -> bool:
        return (
            self._state == WorkflowState.SUMMARIZING
            and self._queue is not None
            and not self._queue.is_empty()
        )

    # ------------------------------------------------------------------
    # Order selection
    # ------------------------------------------------------------------

    def list_orders(self) -> list[OrderSummary]:
        """Pending-receipt orders for the tenant. Transport errors are re-raised."""
        try:
            return self.catalog.list_pending(self.tenant_id)
        except TransportFailure as e:
            self._emit("transport_failure", "error", f"Could not load pending orders: {e}")
            raise

    def select_order(self, order: str | OrderSummary) -> Optional[OrderDetail]:
        """
        Load the order's detail and open a receiving session on it.

        Returns the detail, or None if it could not be loaded (state is then
        ERROR and a notice says why).
        """
        order_id = order.id if isinstance(order, OrderSummary) else order
        with self._lock:
            self._require("select_order", _SELECTABLE)
            self._set_state(WorkflowState.LOADING_DETAIL)
            try:
                detail = self.catalog.get_detail(self.tenant_id, order_id)
            except OrderNotFoundError as e:
                self._emit("order_not_found", "error", str(e))
                self._set_state(WorkflowState.ERROR)
                return None
            except TransportFailure as e:
                self._emit("transport_failure", "error", f"Could not load order {order_id}: {e}")
                self._set_state(WorkflowState.ERROR)
                return None
            except Exception:
                self._set_state(WorkflowState.ERROR)
                raise

            self._order = detail
            self._bind_queue(ReceivingQueue(detail.id))
            self._clear_pending()
            self._emit(
                "order_loaded", "info",
                f"Order {detail.order_number} loaded ({len(detail.items)} lines)",
            )
            self._set_state(WorkflowState.SCANNING)
            return detail

    def acknowledge_error(self) -> None:
        """Leave the ERROR state and go back to order selection."""
        with self._lock:
            self._require("acknowledge_error", {WorkflowState.ERROR})
            self._set_state(WorkflowState.SELECTING_ORDER)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan(self, barcode: str) -> Optional[OrderLine]:
        """
        Resolve a decoded barcode against the active order.

        Returns the line now awaiting confirmation, or None if the scan was
        rejected (unknown barcode, nothing pending).
        """
        with self._lock:
            self._require("scan", {WorkflowState.SCANNING})
            try:
                line = self.resolver.resolve(self._order, barcode)
                if line is None:
                    raise BarcodeNotFoundError(barcode)
                self._check_receivable(line)
            except BarcodeNotFoundError as e:
                self._emit("barcode_not_found", "warning", str(e), barcode=barcode)
                return None
            except AlreadyReceivedError as e:
                self._emit(
                    "already_received", "warning", str(e),
                    barcode=barcode, order_line_id=e.line_id,
                )
                return None

            self._pending_line = line
            self._proposed_quantity = min(1, line.quantity_pending)
            self._set_state(WorkflowState.CONFIRMING_QUANTITY)
            return line

    def handle_scan_event(self, barcode: str) -> Optional[OrderLine]:
        """
        Entry point for scanner callbacks.

        Unlike scan(), a barcode arriving while no scanning screen is active
        is reported as a scan_ignored notice instead of raising.
        """
        with self._lock:
            if self._state != WorkflowState.SCANNING:
                self._emit(
                    "scan_ignored", "warning",
                    f"Scan of {barcode} ignored while {self._state.value}",
                    barcode=barcode,
                )
                return None
            return self.scan(barcode)

    def confirm(self, quantity: float) -> Optional[QueueEntry]:
        """
        Confirm *quantity* for the line under confirmation or manual selection.

        Valid iff 0 < quantity <= the line's pending quantity at load time.
        On success the entry is merged into the queue and the workflow returns
        to SCANNING; returns the resulting queue entry. On failure returns
        None and nothing changes.
        """
        with self._lock:
            self._require("confirm", {WorkflowState.CONFIRMING_QUANTITY, WorkflowState.MANUAL_ENTRY})
            line = self._pending_line
            if line is None:
                raise WorkflowStateError("confirm", self._state)

            try:
                self._check_quantity(line, quantity)
            except InvalidQuantityError as e:
                self._emit(
                    "invalid_quantity", "warning", str(e),
                    order_line_id=line.id, quantity=_as_number(quantity),
                    expected_value=f"{line.quantity_pending:g}",
                )
                return None

            entry = self._queue.add(QueueEntry.from_line(line, quantity))
            self._emit(
                "item_added", "success",
                f"{line.product_name} ({quantity:g} un.) added to queue",
                order_line_id=line.id, barcode=line.barcode, quantity=quantity,
            )
            if self.warn_on_over_receipt and entry.quantity > line.quantity_pending:
                self._emit(
                    "over_receipt", "warning",
                    f"{line.product_name}: {entry.quantity:g} queued but only "
                    f"{line.quantity_pending:g} pending on the order",
                    order_line_id=line.id, quantity=entry.quantity,
                    expected_value=f"{line.quantity_pending:g}",
                )
            self._clear_pending()
            self._set_state(WorkflowState.SCANNING)
            return entry

    def cancel_confirmation(self) -> None:
        """Close the quantity prompt or manual entry without touching the queue."""
        with self._lock:
            self._require(
                "cancel_confirmation",
                {WorkflowState.CONFIRMING_QUANTITY, WorkflowState.MANUAL_ENTRY},
            )
            self._clear_pending()
            self._set_state(WorkflowState.SCANNING)

    # ------------------------------------------------------------------
    # Manual entry
    # ------------------------------------------------------------------

    def open_manual_entry(self) -> list[OrderLine]:
        """Switch to manual entry; returns every line of the order."""
        with self._lock:
            self._require("open_manual_entry", {WorkflowState.SCANNING})
            self._clear_pending()
            self._set_state(WorkflowState.MANUAL_ENTRY)
            return list(self._order.items)

    def search(self, text: str) -> list[OrderLine]:
        with self._lock:
            self._require("search", {WorkflowState.MANUAL_ENTRY})
            return self.resolver.search(self._order, text)

    def select_line(self, line_id: str) -> Optional[OrderLine]:
        """Pick a line in manual entry; it then awaits confirm()."""
        with self._lock:
            self._require("select_line", {WorkflowState.MANUAL_ENTRY})
            line = self._order.line(line_id)
            if line is None:
                e = LineNotFoundError(line_id)
                self._emit("line_not_found", "warning", str(e), order_line_id=line_id)
                return None
            self._pending_line = line
            self._proposed_quantity = min(1, line.quantity_pending)
            return line

    # ------------------------------------------------------------------
    # Summary and finalize
    # ------------------------------------------------------------------

    def open_summary(self) -> None:
        with self._lock:
            self._require("open_summary", {WorkflowState.SCANNING})
            self._set_state(WorkflowState.SUMMARIZING)

    def resume_scanning(self) -> None:
        with self._lock:
            self._require("resume_scanning", {WorkflowState.SUMMARIZING})
            self._set_state(WorkflowState.SCANNING)

    def remove(self, order_line_id: str) -> bool:
        """Drop a line from the queue while reviewing the summary."""
        with self._lock:
            self._require("remove", {WorkflowState.SUMMARIZING})
            removed = self._queue.remove(order_line_id)
            if removed:
                self._emit(
                    "item_removed", "info",
                    f"Line {order_line_id} removed from queue",
                    order_line_id=order_line_id,
                )
            else:
                self._emit(
                    "line_not_found", "warning",
                    f"Line {order_line_id} is not in the queue",
                    order_line_id=order_line_id,
                )
            return removed

    def finalize(
        self,
        receiving_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Optional[FinalizeResult]:
        """
        Submit the queue to the finalization gateway.

        Success clears the queue and returns to order selection. Failure keeps
        the queue exactly as it was and returns to the summary for a retry.
        """
        with self._lock:
            self._require("finalize", {WorkflowState.SUMMARIZING})
            if self._queue.is_empty():
                self._emit("empty_queue", "error", "Nothing to finalize: the receiving queue is empty")
                return None

            request = FinalizeRequest(
                order_id=self._queue.order_id,
                receiving_date=receiving_date or date.today(),
                notes=notes,
                items=self._queue.to_finalize_items(),
            )
            self._set_state(WorkflowState.FINALIZING)
            try:
                result = self.gateway.finalize(self.tenant_id, request)
            except TransportFailure as e:
                self._emit(
                    "finalize_failed", "error",
                    f"Receiving was not recorded: {e}. The queue is unchanged; try again.",
                )
                self._set_state(WorkflowState.SUMMARIZING)
                return None
            except Exception:
                self._set_state(WorkflowState.SUMMARIZING)
                raise

            self.last_result = result
            order_number = self._order.order_number if self._order else request.order_id
            label = f"Receiving {result.receiving_number}" if result.receiving_number else "Receiving"
            self._queue.clear()
            self._emit(
                "finalized", "success",
                f"{label} finalized for order {order_number}",
                quantity=sum(item.quantity_received for item in request.items),
            )
            self._set_state(WorkflowState.DONE)
            self._end_session()
            return result

    def cancel_session(self) -> None:
        """Explicit cancel: discard the queue and return to order selection."""
        with self._lock:
            self._require("cancel_session", _IN_SESSION)
            discarded = self._queue.item_count() if self._queue else 0
            if self._queue is not None:
                self._queue.clear()
            self._emit(
                "session_cancelled", "info",
                f"Receiving cancelled; {discarded} queued line(s) discarded",
            )
            self._end_session()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe_state(self, callback: StateSubscriber) -> Callable[[], None]:
        """callback(old_state, new_state) after every transition."""
        return _register(self._lock, self._state_subscribers, callback)

    def subscribe_notices(self, callback: NoticeSubscriber) -> Callable[[], None]:
        return _register(self._lock, self._notice_subscribers, callback)

    def subscribe_queue(self, callback: QueueSubscriber) -> Callable[[], None]:
        """
        Follow the receiving queue across sessions: attached to the current
        queue now (if any) and to every queue opened later.
        """
        token = object()
        with self._lock:
            detach = self._queue.subscribe(callback) if self._queue is not None else None
            self._queue_subscriptions[token] = (callback, detach)

        def _unsubscribe() -> None:
            with self._lock:
                _, detach = self._queue_subscriptions.pop(token, (None, None))
                if detach is not None:
                    detach()

        return _unsubscribe

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, operation: str, allowed: Iterable[WorkflowState]) -> None:
        if self._state not in allowed:
            raise WorkflowStateError(operation, self._state)

    def _set_state(self, new_state: WorkflowState) -> None:
        old_state = self._state
        self._state = new_state
        logger.debug("Intake: %s → %s", old_state.value, new_state.value)
        for callback in list(self._state_subscribers):
            try:
                callback(old_state, new_state)
            except Exception:
                logger.exception("State subscriber %r failed", callback)

    def _emit(self, type_: str, severity: str, description: str, **fields) -> Notice:
        notice = Notice(type=type_, severity=severity, description=description, **fields)
        self.notices.append(notice)
        logger.log(_LOG_LEVELS[severity], "[%s] %s", type_, description)
        for callback in list(self._notice_subscribers):
            try:
                callback(notice)
            except Exception:
                logger.exception("Notice subscriber %r failed", callback)
        return notice

    def _bind_queue(self, queue: Optional[ReceivingQueue]) -> None:
        self._queue = queue
        self._rebind_queue_subscribers()

    def _rebind_queue_subscribers(self) -> None:
        for token, (callback, detach) in list(self._queue_subscriptions.items()):
            if detach is not None:
                detach()
            new_detach = self._queue.subscribe(callback) if self._queue is not None else None
            self._queue_subscriptions[token] = (callback, new_detach)

    def _clear_pending(self) -> None:
        self._pending_line = None
        self._proposed_quantity = None

    def _end_session(self) -> None:
        self._clear_pending()
        self._order = None
        self._bind_queue(None)
        self._set_state(WorkflowState.SELECTING_ORDER)

    @staticmethod
    def _check_receivable(line: OrderLine) -> None:
        if line.quantity_pending <= 0:
            raise AlreadyReceivedError(line.id, line.product_name)

    @staticmethod
    def _check_quantity(line: OrderLine, quantity: float) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, (int, float)):
            raise InvalidQuantityError(quantity, line.quantity_pending)
        if not math.isfinite(quantity) or quantity <= 0 or quantity > line.quantity_pending:
            raise InvalidQuantityError(quantity, line.quantity_pending)


def _register(lock: threading.RLock, subscribers: list, callback) -> Callable[[], None]:
    with lock:
        subscribers.append(callback)

    def _unsubscribe() -> None:
        with lock:
            if callback in subscribers:
                subscribers.remove(callback)

    return _unsubscribe


def _as_number(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None

