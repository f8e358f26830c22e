"""
Order line lookup for the active receiving session.

Two ways to reach a line:
  1. Barcode scan   -- exact, case-sensitive match on the line's barcode
  2. Manual entry   -- case-insensitive substring search on product name / SKU,
                       with a rapidfuzz fallback on the product name when the
                       substring search finds nothing

Lines without a barcode can only be reached through manual entry.
"""
import logging
from typing import Optional

from rapidfuzz import fuzz

from models.purchase_order import OrderDetail, OrderLine

logger = logging.getLogger(__name__)

# Minimum rapidfuzz score for the manual-entry fallback
SEARCH_FUZZY_THRESHOLD = 70


class BarcodeResolver:
    """
    Stateless lookups against an OrderDetail.

    Usage:
        resolver = BarcodeResolver()
        line = resolver.resolve(detail, "7891234567890")
        candidates = resolver.search(detail, "widget")
    """

    def __init__(self, fuzzy_threshold: int = SEARCH_FUZZY_THRESHOLD):
        self.fuzzy_threshold = fuzzy_threshold

    def resolve(self, detail: OrderDetail, barcode: str) -> Optional[OrderLine]:
        """
        Return the first line (in order) whose barcode equals *barcode* exactly.

        No trimming or case folding: scanners deliver the exact symbol.
        If upstream data has the same barcode on several lines, the first one
        wins; the duplicate is logged so it can be fixed at the source.
        """
        if not barcode:
            return None

        matches = [line for line in detail.items if line.barcode and line.barcode == barcode]
        if not matches:
            logger.debug("Barcode %s not on order %s", barcode, detail.order_number)
            return None
        if len(matches) > 1:
            logger.warning(
                "Barcode %s appears on %d lines of order %s (%s) — using line %s",
                barcode, len(matches), detail.order_number,
                ", ".join(m.id for m in matches), matches[0].id,
            )
        return matches[0]

    def search(self, detail: OrderDetail, text: str) -> list[OrderLine]:
        """Lines whose product name or SKU contains *text* (case-insensitive)."""
        needle = (text or "").strip().lower()
        if not needle:
            return list(detail.items)

        hits = [
            line for line in detail.items
            if needle in line.product_name.lower() or needle in line.sku.lower()
        ]
        if hits or self.fuzzy_threshold <= 0:
            return hits

        return self._fuzzy_search(detail, needle)

    def _fuzzy_search(self, detail: OrderDetail, needle: str) -> list[OrderLine]:
        scored: list[tuple[float, int, OrderLine]] = []
        for idx, line in enumerate(detail.items):
            score = fuzz.partial_ratio(needle, line.product_name.lower())
            if score >= self.fuzzy_threshold:
                scored.append((score, idx, line))
        # Best score first; ties keep line order
        scored.sort(key=lambda s: (-s[0], s[1]))
        if scored:
            logger.debug(
                "No substring hit for '%s' — %d fuzzy candidate(s), best score %.0f",
                needle, len(scored), scored[0][0],
            )
        return [line for _, _, line in scored]
