"""
Finalization Gateway implementations.

The gateway performs the authoritative stock-and-order update for a finished
receiving queue. It either returns a FinalizeResult or raises
TransportFailure; it never partially applies a request.

  - HttpFinalizationGateway   POST /api/receivings on the backend.  The body
                              is the camelCase FinalizeRequest by default, or
                              a sandboxed Jinja2 template from CONFIG_DIR when
                              the backend expects a different shape.
  - LocalFinalizationGateway  dry run: validates the request against an order
                              catalog the way the backend does, persists
                              nothing, and returns a synthetic result.
"""
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Protocol

from jinja2 import FileSystemLoader, TemplateError, select_autoescape
from jinja2.sandbox import SandboxedEnvironment
from pydantic import ValidationError

from models.receiving import FinalizeRequest, FinalizeResult
from .catalog import OrderCatalogProvider
from .errors import NotFoundError, TransportFailure
from .http_client import JsonHttpClient

logger = logging.getLogger(__name__)


class FinalizationGateway(Protocol):
    def finalize(self, tenant_id: str, request: FinalizeRequest) -> FinalizeResult: ...


class HttpFinalizationGateway:
    """Submits receivings to the backend API."""

    def __init__(
        self,
        client: JsonHttpClient,
        payload_template: Optional[str] = None,
        template_dir: Optional[Path] = None,
    ) -> None:
        self.client = client
        self.payload_template = payload_template
        self.template_dir = template_dir or Path(
            os.getenv("CONFIG_DIR", str(Path(__file__).parent.parent / "config"))
        )
        self.jinja_env = SandboxedEnvironment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["json", "xml"]),
            keep_trailing_newline=True,
        )

    def render_payload(self, request: FinalizeRequest) -> bytes:
        """
        Render the request body.

        Template context: order_id, receiving_date, notes, items (list of
        dicts with order_line_id / quantity_received / notes) and payload
        (the default camelCase dict).
        """
        payload = request.to_payload()
        if not self.payload_template:
            return json.dumps(payload).encode("utf-8")

        try:
            template = self.jinja_env.get_template(self.payload_template)
            rendered = template.render(
                payload=payload,
                **request.model_dump(mode="json"),
            )
        except TemplateError as e:
            logger.error("Finalize payload template %s failed: %s", self.payload_template, e)
            raise TransportFailure(
                f"Finalize payload template '{self.payload_template}' failed: {e}"
            ) from e
        return rendered.encode("utf-8")

    def finalize(self, tenant_id: str, request: FinalizeRequest) -> FinalizeResult:
        body = self.render_payload(request)
        logger.info(
            "Submitting receiving for order %s (%d line(s), date %s)",
            request.order_id, len(request.items), request.receiving_date,
        )
        data = self.client.post("/api/receivings", tenant_id, body)
        try:
            result = FinalizeResult.model_validate(data or {})
        except ValidationError as e:
            # The backend has already committed at this point; report what we can
            logger.warning("Unexpected finalize response for order %s: %s", request.order_id, e)
            result = FinalizeResult(order_id=request.order_id)
        logger.info(
            "Receiving %s recorded for order %s",
            result.receiving_number or result.receiving_id or "(unnumbered)", request.order_id,
        )
        return result


class LocalFinalizationGateway:
    """
    Validates a finalize request against *catalog* without persisting anything.

    Mirrors the backend's checks: the order must exist, every line must belong
    to it, and no line may receive more than its pending quantity.
    """

    def __init__(self, catalog: OrderCatalogProvider):
        self.catalog = catalog
        self.submitted: list[FinalizeRequest] = []

    def finalize(self, tenant_id: str, request: FinalizeRequest) -> FinalizeResult:
        try:
            detail = self.catalog.get_detail(tenant_id, request.order_id)
        except NotFoundError as e:
            raise TransportFailure(str(e), status_code=400, rejected=True) from e

        for item in request.items:
            line = detail.line(item.order_line_id)
            if line is None:
                raise TransportFailure(
                    f"Item {item.order_line_id} does not belong to this purchase order",
                    status_code=400, rejected=True,
                )
            if item.quantity_received > line.quantity_pending:
                raise TransportFailure(
                    f"Quantity received ({item.quantity_received:g}) exceeds pending "
                    f"quantity ({line.quantity_pending:g}) for item {line.sku}",
                    status_code=400, rejected=True,
                )

        self.submitted.append(request)
        result = FinalizeResult(
            receiving_id=str(uuid.uuid4()),
            receiving_number=f"DRY-{len(self.submitted):04d}",
            order_id=request.order_id,
            receiving_date=request.receiving_date.isoformat(),
            status="DRY_RUN",
            items=list(request.items),
        )
        logger.info(
            "Dry run: receiving for order %s validated (%d line(s)), nothing persisted",
            detail.order_number, len(request.items),
        )
        return result
