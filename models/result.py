from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime, timezone


NoticeType = Literal[
    # Scanning
    "barcode_not_found",
    "already_received",
    "scan_ignored",
    # Quantity confirmation
    "invalid_quantity",
    "over_receipt",
    "item_added",
    # Manual entry
    "line_not_found",
    # Summary
    "item_removed",
    "empty_queue",
    # Session / transport
    "order_loaded",
    "order_not_found",
    "transport_failure",
    "finalize_failed",
    "finalized",
    "session_cancelled",
]

SeverityLevel = Literal["error", "warning", "info", "success"]


class Notice(BaseModel):
    """
    A user-facing signal raised by the intake workflow.

    Every rejected operation produces one of these, so the caller is always
    told why nothing happened.
    """
    type: str                               # One of NoticeType values
    severity: SeverityLevel
    description: str                        # Human-readable explanation
    order_line_id: Optional[str] = None
    barcode: Optional[str] = None
    quantity: Optional[float] = None        # Quantity involved, if any
    expected_value: Optional[str] = None    # e.g. the pending bound that was violated
    raised_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def is_error(self) -> bool:
        return self.severity == "error"

    @property
    def is_warning(self) -> bool:
        return self.severity == "warning"
