"""
Single-consumer event queue between the barcode scanner and the controller.

Scanner callbacks may fire from any thread and in quick bursts. They only
enqueue the decoded string; one worker thread feeds the barcodes to the
controller strictly in the order they were decoded, one at a time, so two
scans of the same item can never interleave their queue updates.
"""
import logging
import queue
import threading
from typing import Optional

from .controller import IntakeController

logger = logging.getLogger(__name__)

_STOP = object()


class ScanEventQueue:
    """
    Usage:
        events = ScanEventQueue(controller)
        events.start()
        scanner.on_decode(events.submit)
        ...
        events.stop()
    """

    def __init__(self, controller: IntakeController):
        self.controller = controller
        self._events: queue.Queue = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._stop_requested = False
        self.processed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        if self.running:
            if not self._stop_requested:
                return
            # A timed-out stop() is still pending; let that worker reach its sentinel
            self._worker.join()
        self._stop_requested = False
        self._worker = threading.Thread(
            target=self._run, name="scan-events", daemon=True
        )
        self._worker.start()
        logger.debug("Scan event worker started")

    def submit(self, barcode: str) -> None:
        """Enqueue a decoded barcode. Safe to call from any thread."""
        self._events.put(barcode)

    def drain(self) -> None:
        """Block until every barcode submitted so far has been handled."""
        self._events.join()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Handle what is already queued, then stop the worker."""
        if not self.running:
            return
        if not self._stop_requested:
            self._stop_requested = True
            self._events.put(_STOP)
        self._worker.join(timeout)
        if self._worker.is_alive():
            # Still working through the backlog; it exits when it reaches the sentinel
            logger.warning("Scan event worker did not stop within %ss", timeout)
            return
        self._worker = None
        logger.debug("Scan event worker stopped after %d scan(s)", self.processed)

    def _run(self) -> None:
        while True:
            barcode = self._events.get()
            try:
                if barcode is _STOP:
                    return
                self.controller.handle_scan_event(barcode)
                self.processed += 1
            except Exception:
                logger.exception("Scan of %r could not be processed", barcode)
            finally:
                self._events.task_done()
