from .purchase_order import ItemsSummary, OrderSummary, OrderLine, OrderDetail
from .receiving import QueueEntry, FinalizeItem, FinalizeRequest, FinalizeResult
from .result import Notice

__all__ = [
    "ItemsSummary", "OrderSummary", "OrderLine", "OrderDetail",
    "QueueEntry", "FinalizeItem", "FinalizeRequest", "FinalizeResult",
    "Notice",
]
