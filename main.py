#!/usr/bin/env python3
"""
Receiving Intake — CLI entry point.

Usage examples:
  python main.py check                              # Verify setup (backend / CSV catalog)
  python main.py orders                             # List purchase orders pending receipt
  python main.py orders --supplier SUP-ID           # Only one supplier's orders
  python main.py receive PO-ID                      # Interactive receiving session
  python main.py receive PO-ID --dry-run            # Validate locally, submit nothing
  python main.py --csv receive PO-ID                # Offline, from data/*.csv

Inside a receiving session every input line is a barcode, or one of:
  :manual [text]     search the order's lines by name / SKU
  :pick LINE_ID QTY  queue QTY of a line without scanning it
  :summary           review the queue
  :remove LINE_ID    drop a line from the queue (summary only)
  :scan              back to scanning from the summary
  :finalize [notes]  submit the queue (summary only)
  :cancel            discard the queue and leave
  :quit              leave (queued lines are discarded)
"""
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import click

from config import Config
from intake.controller import IntakeController, WorkflowState
from intake.errors import TransportFailure, WorkflowStateError
from models.result import Notice

_ICONS = {"error": "✗", "warning": "⚠", "info": "ℹ", "success": "✓"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_config(ctx: click.Context) -> Config:
    config = Config()
    opts = ctx.obj
    if opts.get("api_url"):
        config.api_base_url = opts["api_url"].rstrip("/")
    if opts.get("tenant"):
        config.tenant_id = opts["tenant"]
    if opts.get("csv"):
        config.catalog_source = "csv"
    if opts.get("po_csv"):
        config.po_csv = Path(opts["po_csv"])
    if opts.get("po_lines_csv"):
        config.po_lines_csv = Path(opts["po_lines_csv"])
    return config


def _echo_notice(notice: Notice) -> None:
    icon = _ICONS.get(notice.severity, "•")
    click.echo(f"  {icon} {notice.description}", err=notice.severity == "error")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--api-url", default=None, help="Backend base URL (default: RECEIVING_API_URL)")
@click.option("--tenant", default=None, help="Tenant id sent as X-Tenant-ID (default: TENANT_ID)")
@click.option("--csv", "use_csv", is_flag=True, help="Read orders from CSV files instead of the backend")
@click.option("--po-csv", default=None, type=click.Path(), help="Path to purchase_orders CSV")
@click.option("--po-lines-csv", default=None, type=click.Path(), help="Path to purchase_order_lines CSV")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    api_url: str | None,
    tenant: str | None,
    use_csv: bool,
    po_csv: str | None,
    po_lines_csv: str | None,
) -> None:
    """Receiving Intake — reconcile purchase orders against received goods."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        verbose=verbose, api_url=api_url, tenant=tenant,
        csv=use_csv, po_csv=po_csv, po_lines_csv=po_lines_csv,
    )
    _setup_logging(verbose)


# --------------------------------------------------------------------
# check command
# --------------------------------------------------------------------

@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Verify that the order catalog is reachable."""
    config = _build_config(ctx)

    click.echo("\n=== Receiving Intake Setup Check ===\n")
    click.echo(f"  Tenant:          {config.tenant_id}")
    if config.catalog_source == "csv":
        for path in (config.po_csv, config.po_lines_csv):
            tick = "✓" if path.exists() else "✗"
            click.echo(f"  {path.name:<28} {tick}  {path}")
    else:
        click.echo(f"  Backend:         {config.api_base_url}")

    controller = IntakeController.from_config(config)
    try:
        pending = controller.list_orders()
    except TransportFailure as e:
        click.echo(f"  Order catalog:   ✗ NOT reachable ({e})")
        click.echo()
        sys.exit(1)
    click.echo(f"  Order catalog:   ✓ {len(pending)} order(s) pending receipt")
    click.echo()


# --------------------------------------------------------------------
# orders command
# --------------------------------------------------------------------

@cli.command()
@click.option("--supplier", "supplier_id", default=None, help="Only orders from this supplier id (default: SUPPLIER_ID)")
@click.pass_context
def orders(ctx: click.Context, supplier_id: str | None) -> None:
    """List purchase orders pending receipt."""
    config = _build_config(ctx)
    if supplier_id:
        config.supplier_id = supplier_id
    controller = IntakeController.from_config(config)
    try:
        pending = controller.list_orders()
    except TransportFailure as e:
        click.echo(f"Error: could not load pending orders ({e})", err=True)
        sys.exit(1)

    if not pending:
        click.echo("No purchase orders pending receipt.")
        return

    click.echo()
    for order in pending:
        summary = order.items_summary
        click.echo(
            f"  {order.id:<12} {order.order_number:<14} {(order.supplier_name or '')[:28]:<28} "
            f"{order.order_date or '':<10}  {order.progress_percentage:5.1f}% received  "
            f"({summary.total_pending:g} of {summary.total_items:g} lines pending, {summary.total_amount:.2f})"
        )
    click.echo()


# --------------------------------------------------------------------
# receive command
# --------------------------------------------------------------------

@cli.command()
@click.argument("order_id")
@click.option("--dry-run", is_flag=True, help="Validate the receiving locally; submit nothing")
@click.option(
    "--date", "receiving_date", default=None, type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Receiving date (default: today)",
)
@click.pass_context
def receive(
    ctx: click.Context,
    order_id: str,
    dry_run: bool,
    receiving_date: datetime | None,
) -> None:
    """
    Receive goods against ORDER_ID by scanning barcodes.

    \b
    Type or scan one barcode per line. Commands start with ':'.
    """
    config = _build_config(ctx)
    controller = IntakeController.from_config(config, dry_run=dry_run)
    controller.subscribe_notices(_echo_notice)

    detail = controller.select_order(order_id)
    if detail is None:
        sys.exit(1)

    click.echo(
        f"\n  Order:     {detail.order_number}\n"
        f"  Supplier:  {detail.supplier_name or '(unknown)'}\n"
        f"  Location:  {detail.stock_location_name or '(unknown)'}\n"
        f"  Lines:     {len(detail.items)} ({detail.total_pending:g} units pending)\n"
    )
    if dry_run:
        click.echo("  Dry run — nothing will be submitted.\n")

    session = _ReceivingSession(controller, receiving_date.date() if receiving_date else None)
    if not session.run():
        click.echo("  No receiving recorded.")


class _ReceivingSession:
    """Terminal loop driving one IntakeController session."""

    def __init__(self, controller: IntakeController, receiving_date: Optional[date]):
        self.controller = controller
        self.receiving_date = receiving_date
        self._finalized = False

    def run(self) -> bool:
        """Returns True when the receiving was finalized."""
        while self.controller.state in (WorkflowState.SCANNING, WorkflowState.SUMMARIZING):
            prompt = "scan" if self.controller.state == WorkflowState.SCANNING else "summary"
            try:
                raw = click.prompt(prompt, default="", show_default=False, prompt_suffix="> ")
            except click.Abort:
                raw = ":quit"
            text = raw.strip()
            if not text:
                continue
            try:
                if text.startswith(":"):
                    command, _, arg = text[1:].partition(" ")
                    if self._command(command.lower(), arg.strip()):
                        break
                elif self.controller.state == WorkflowState.SCANNING:
                    if self.controller.scan(text) is not None:
                        self._ask_quantity()
                else:
                    click.echo("  Barcodes are read while scanning — use :scan to go back.")
            except WorkflowStateError as e:
                click.echo(f"  {e}")
        return self._finalized

    def _command(self, command: str, arg: str) -> bool:
        """Handle a ':' command. Returns True when the loop should end."""
        controller = self.controller
        if command == "manual":
            self._manual_entry(arg)
        elif command == "pick":
            self._pick(arg)
        elif command == "summary":
            controller.open_summary()
            self._print_summary()
        elif command == "scan":
            controller.resume_scanning()
        elif command == "remove":
            controller.remove(arg)
            self._print_summary()
        elif command == "finalize":
            if controller.state == WorkflowState.SCANNING:
                controller.open_summary()
            result = controller.finalize(receiving_date=self.receiving_date, notes=arg or None)
            if result is not None:
                self._finalized = True
                click.echo(f"\n  Receiving number: {result.receiving_number or '(pending)'}\n")
                return True
        elif command == "cancel":
            controller.cancel_session()
            return True
        elif command == "quit":
            queued = controller.queue.item_count() if controller.queue else 0
            if queued:
                click.echo(f"  ⚠ Leaving without finalizing — {queued} queued line(s) discarded.")
            controller.cancel_session()
            return True
        else:
            click.echo(f"  Unknown command ':{command}'")
        return False

    def _manual_entry(self, text: str) -> None:
        controller = self.controller
        controller.open_manual_entry()
        lines = controller.search(text)
        if not lines:
            click.echo(f"  No lines match '{text}'.")
            controller.cancel_confirmation()
            return
        for line in lines:
            click.echo(f"  {line.id:<10} {line.sku:<14} {line.product_name[:36]:<36} pending {line.quantity_pending:g}")
        try:
            line_id = click.prompt("line id", default="", show_default=False, prompt_suffix="> ").strip()
        except click.Abort:
            line_id = ""
        if not line_id or controller.select_line(line_id) is None:
            controller.cancel_confirmation()
            return
        self._ask_quantity()

    def _pick(self, arg: str) -> None:
        """`:pick LINE_ID QTY` selects and confirms a line in one step."""
        line_id, _, raw_qty = arg.partition(" ")
        quantity = _parse_quantity(raw_qty.strip())
        if not line_id or quantity is None:
            click.echo("  Usage: :pick LINE_ID QUANTITY")
            return
        controller = self.controller
        controller.open_manual_entry()
        if controller.select_line(line_id) is None or controller.confirm(quantity) is None:
            controller.cancel_confirmation()

    def _ask_quantity(self) -> None:
        """Prompt until a valid quantity is confirmed or the prompt is cancelled."""
        controller = self.controller
        line = controller.pending_line
        click.echo(
            f"  {line.product_name}  (SKU {line.sku})  pending {line.quantity_pending:g}"
        )
        while controller.state in (WorkflowState.CONFIRMING_QUANTITY, WorkflowState.MANUAL_ENTRY):
            try:
                raw = click.prompt(
                    "quantity (c to cancel)",
                    default=f"{controller.proposed_quantity:g}",
                    prompt_suffix="> ",
                ).strip()
            except click.Abort:
                raw = "c"
            if raw.lower() in ("c", "cancel"):
                controller.cancel_confirmation()
                return
            quantity = _parse_quantity(raw)
            if quantity is None:
                click.echo(f"  '{raw}' is not a number")
                continue
            controller.confirm(quantity)

    def _print_summary(self) -> None:
        queue = self.controller.queue
        entries = queue.entries() if queue else ()
        click.echo()
        if not entries:
            click.echo("  Queue is empty — nothing to finalize.")
        for entry in entries:
            click.echo(
                f"  {entry.order_line_id:<10} {entry.sku:<14} {entry.product_name[:30]:<30} "
                f"{entry.quantity:>8g} × {entry.unit_cost:>9.2f} = {entry.line_total:>10.2f}"
            )
        if entries:
            click.echo(
                f"\n  {queue.item_count()} line(s), {queue.total_quantity():g} unit(s), "
                f"total {queue.total_value():.2f}"
            )
        click.echo()


def _parse_quantity(raw: str) -> Optional[float]:
    try:
        quantity = float(raw)
    except ValueError:
        return None
    return int(quantity) if quantity.is_integer() else quantity


if __name__ == "__main__":
    cli()
