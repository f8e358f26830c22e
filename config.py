"""
Central configuration for the receiving intake workflow.

All endpoints, data paths, and workflow switches are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. config/receiving_settings.json  (admin-editable, persisted)
  2. Environment variables
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

# Default data locations (relative to project root)
DEFAULT_PO_CSV         = PROJECT_ROOT / "data" / "purchase_orders.csv"
DEFAULT_PO_LINES_CSV   = PROJECT_ROOT / "data" / "purchase_order_lines.csv"

CATALOG_SOURCES = ("http", "csv")


@dataclass
class Config:
    # --- Backend API ---
    api_base_url: str = field(
        default_factory=lambda: os.getenv("RECEIVING_API_URL", "http://localhost:8080").rstrip("/")
    )
    api_token: Optional[str] = field(
        default_factory=lambda: os.getenv("RECEIVING_API_TOKEN")
    )
    # Tenant resolution happens outside this tool; the id is just passed through
    # as the X-Tenant-ID header.
    tenant_id: str = field(
        default_factory=lambda: os.getenv("TENANT_ID", "00000000-0000-0000-0000-000000000001")
    )
    request_timeout_seconds: int = field(
        default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30"))
    )
    # Only list orders from this supplier (sent as ?supplier_id= to the backend)
    supplier_id: Optional[str] = field(
        default_factory=lambda: os.getenv("SUPPLIER_ID") or None
    )

    # --- Order catalog source ---
    # http → HttpOrderCatalog against api_base_url
    # csv  → CsvOrderCatalog over po_csv / po_lines_csv (offline)
    catalog_source: str = field(
        default_factory=lambda: os.getenv("CATALOG_SOURCE", "http").lower()
    )
    po_csv:       Path = field(
        default_factory=lambda: Path(os.getenv("PO_CSV", str(DEFAULT_PO_CSV)))
    )
    po_lines_csv: Path = field(
        default_factory=lambda: Path(os.getenv("PO_LINES_CSV", str(DEFAULT_PO_LINES_CSV)))
    )

    # --- Finalize payload ---
    # Optional Jinja2 template (looked up in CONFIG_DIR) for backends that
    # expect a different body than the default camelCase JSON.
    finalize_payload_template: Optional[str] = field(
        default_factory=lambda: os.getenv("FINALIZE_PAYLOAD_TEMPLATE")
    )

    # --- Workflow ---
    warn_on_over_receipt: bool = field(
        default_factory=lambda: os.getenv("WARN_ON_OVER_RECEIPT", "true").lower() != "false"
    )
    # Minimum rapidfuzz score (0-100) for the manual-entry fallback search.
    # 0 disables the fuzzy fallback; substring search always runs first.
    manual_search_fuzzy_threshold: int = 70

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from receiving_settings.json if present."""
        settings_file = self.config_dir / "receiving_settings.json"
        if settings_file.exists():
            self._apply_settings_file(settings_file)

        if self.catalog_source not in CATALOG_SOURCES:
            logger.warning(
                "Unknown catalog source '%s' — falling back to 'http'", self.catalog_source
            )
            self.catalog_source = "http"

    def _apply_settings_file(self, settings_file: Path) -> None:
        _type_map: dict[str, Callable[[Any], Any]] = {
            "api_base_url":                   str,
            "tenant_id":                      str,
            "request_timeout_seconds":        int,
            "supplier_id":                    str,
            "catalog_source":                 str,
            "finalize_payload_template":      str,
            "warn_on_over_receipt":           _parse_bool,
            "manual_search_fuzzy_threshold":  int,
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                if key in _type_map and hasattr(self, key):
                    try:
                        setattr(self, key, _type_map[key](val))
                    except (ValueError, TypeError) as exc:
                        logger.warning("Ignoring setting '%s': %s", key, exc)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Failed to load receiving_settings.json: %s", exc)

    @property
    def config_dir(self) -> Path:
        return Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))


def _parse_bool(value: Any) -> bool:
    """JSON true/false, or strings such as "true"/"false", "yes"/"no", "1"/"0"."""
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "yes", "on", "1"):
            return True
        if text in ("false", "no", "off", "0"):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    return bool(value)
