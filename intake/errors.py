"""
Exception hierarchy for the receiving intake workflow.

NotFoundError, InvalidQuantityError and AlreadyReceivedError are local and
recoverable: the controller turns them into warning notices and stays where
it was. TransportFailure comes from the catalog or the finalization gateway.
WorkflowStateError means the caller asked for something the current state
does not allow, which is a programming error rather than a user mistake.
"""
from typing import Optional


class ReceivingError(Exception):
    """Base class for all intake errors."""


class NotFoundError(ReceivingError):
    pass


class BarcodeNotFoundError(NotFoundError):
    def __init__(self, barcode: str):
        super().__init__(f"Barcode '{barcode}' is not on this order")
        self.barcode = barcode


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        super().__init__(f"Purchase order '{order_id}' not found")
        self.order_id = order_id


class LineNotFoundError(NotFoundError):
    def __init__(self, line_id: str):
        super().__init__(f"Order line '{line_id}' is not on this order")
        self.line_id = line_id


class InvalidQuantityError(ReceivingError):
    def __init__(self, quantity, pending: float):
        shown = f"{quantity:g}" if isinstance(quantity, (int, float)) else repr(quantity)
        super().__init__(f"Quantity must be greater than 0 and at most {pending:g} (got {shown})")
        self.quantity = quantity
        self.pending = pending


class AlreadyReceivedError(ReceivingError):
    def __init__(self, line_id: str, product_name: str):
        super().__init__(f"All units of {product_name} have already been received")
        self.line_id = line_id
        self.product_name = product_name


class TransportFailure(ReceivingError):
    """
    The catalog or gateway could not be reached, or the backend rejected the
    request. rejected=True means the server answered with a validation or
    conflict error rather than failing to answer at all.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, rejected: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.rejected = rejected


class WorkflowStateError(ReceivingError):
    def __init__(self, operation: str, state):
        super().__init__(f"'{operation}' is not allowed while {state.value}")
        self.operation = operation
        self.state = state
