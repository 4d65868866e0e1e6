"""Operator console for the fuel station.

Station state lives only in memory, so the console runs one session per
process: every input line (from stdin or a script file) is parsed as a
sub-command against the same runtime context. Orchestration here is limited
to argparse wiring, translating arguments into the command objects consumed
by the business layer, and printing plain text tables.
"""

from __future__ import annotations

import argparse
import logging
import shlex
import sys
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log, set_console_level
from .aggregation import Totals
from .constants import FUEL_UNITS, PAYMENT_LABELS, FuelType, PaymentMode, PumpStatus, VehicleType
from .errors import CapacityExpansionFailed, InvalidInput, StationError
from .inventory import as_decimal
from .ledger import TransactionRecord

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_REJECTED = 2
EXIT_CONFIG = 3
EXIT_FATAL = 4

SESSION_EXIT_WORDS = frozenset({"quit", "exit"})
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a console sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level argument parser for launching a session."""
    parser = argparse.ArgumentParser(
        prog="fuel-station",
        description="Operator console for the fuel station ledger.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to searching upward from the working directory).",
    )
    parser.add_argument(
        "--script",
        type=Path,
        default=None,
        help="Read session commands from a file instead of standard input.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Echo informational log messages to standard error.",
    )
    return parser


def build_session_parser() -> argparse.ArgumentParser:
    """Construct the parser applied to each line of a session."""
    return argparse.ArgumentParser(prog="", add_help=False, description="Session commands.")


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all session sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating commands such as sales and supply deliveries."""
    specs = {
        "sale": register_sale_command(subparsers),
        "supply": register_supply_command(subparsers),
        "pump-status": register_pump_status_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only commands such as reports."""
    specs = {
        "transactions": register_transactions_command(subparsers),
        "fuel-summary": register_fuel_summary_command(subparsers),
        "pumps": register_pumps_command(subparsers),
        "hourly": register_hourly_command(subparsers),
        "payments": register_payments_command(subparsers),
        "close-day": register_close_day_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Dispense fuel and record the sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--pump-id", type=int, required=True)
        parser.add_argument(
            "--vehicle-type",
            choices=[member.value for member in VehicleType],
            required=True,
        )
        selector = parser.add_mutually_exclusive_group(required=True)
        selector.add_argument("--quantity", help="Quantity to dispense in liters or kg.")
        selector.add_argument("--amount", help="Amount to spend.")
        parser.add_argument(
            "--payment-mode",
            choices=[member.value for member in PaymentMode],
            required=True,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_supply_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``supply``."""
    name = "supply"
    help_text = "Add a fuel delivery to the inventory."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--fuel", choices=[member.value for member in FuelType], required=True)
        parser.add_argument("--quantity", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_supply)


def register_pump_status_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pump-status``."""
    name = "pump-status"
    help_text = "Change a pump's status."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--pump-id", type=int, required=True)
        parser.add_argument("--status", choices=[member.value for member in PumpStatus], required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pump_status)


def register_transactions_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``transactions``."""
    name = "transactions"
    help_text = "List recorded transactions."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--recent-first", action="store_true", help="Show the newest transaction first.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_transactions_report)


def register_fuel_summary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``fuel-summary``."""
    name = "fuel-summary"
    help_text = "Display stock and sales per fuel."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_fuel_summary_report)


def register_pumps_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pumps``."""
    name = "pumps"
    help_text = "Display pump-wise performance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pump_report)


def register_hourly_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``hourly``."""
    name = "hourly"
    help_text = "Display hour-wise sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_hourly_report)


def register_payments_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``payments``."""
    name = "payments"
    help_text = "Display revenue per payment mode."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_payment_report)


def register_close_day_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``close-day``."""
    name = "close-day"
    help_text = "Capture closing stock and print the daily report."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--export", action="store_true", help="Also write the report workbook.")
        parser.add_argument("--output", type=Path, default=None, help="Workbook path (implies --export).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_close_day)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for a console session."""
    return core_logic.load_runtime_context(config_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate session args into a sale command object."""
    return core_logic.SaleCommand(
        pump_id=args.pump_id,
        vehicle_type=VehicleType(args.vehicle_type),
        payment_mode=PaymentMode(args.payment_mode),
        quantity=_parse_decimal_argument(args.quantity, "quantity"),
        amount=_parse_decimal_argument(args.amount, "amount"),
    )


def translate_supply(args: argparse.Namespace) -> core_logic.SupplyCommand:
    """Translate session args into a supply command object."""
    return core_logic.SupplyCommand(fuel_type=FuelType(args.fuel), quantity=as_decimal(args.quantity, "quantity"))


def _parse_decimal_argument(raw: Optional[str], label: str) -> Optional[Decimal]:
    if raw is None:
        return None
    return as_decimal(raw, label)


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL and print the receipt."""
    command = translate_sale(args)
    record = core_logic.record_sale(context, command)
    print(render_receipt(context, record))
    for stock in core_logic.low_stock_alerts(context):
        print(
            f"WARNING: Low stock for {stock.fuel_type.value}: {stock.current_stock:.2f} units left "
            f"(threshold {context.settings.low_stock_threshold:.2f})"
        )
    return EXIT_OK


def run_supply(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the supply workflow via the BLL."""
    command = translate_supply(args)
    new_stock = core_logic.add_supply(context, command)
    print(f"Supply added. New stock for {command.fuel_type.value}: {new_stock:.2f}")
    return EXIT_OK


def run_pump_status(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the pump status workflow via the BLL."""
    status = core_logic.set_pump_status(context, args.pump_id, PumpStatus(args.status))
    print(f"Pump {args.pump_id} status set to {status.value}")
    return EXIT_OK


def run_transactions_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    records = core_logic.list_transactions(context)
    if getattr(args, "recent_first", False):
        records.reverse()
    print(render_transactions(records))
    return EXIT_OK


def run_fuel_summary_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(render_fuel_summary(core_logic.fuel_summary(context)))
    return EXIT_OK


def run_pump_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(render_pump_performance(core_logic.pump_performance(context)))
    return EXIT_OK


def run_hourly_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(render_hourly(core_logic.hourly_breakdown(context)))
    return EXIT_OK


def run_payment_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(render_payments(core_logic.payment_breakdown(context)))
    return EXIT_OK


def run_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the end-of-day workflow and optionally export the workbook."""
    report = core_logic.close_day(context)
    print(render_daily_report(report))
    output = getattr(args, "output", None)
    if getattr(args, "export", False) or output is not None:
        try:
            destination = core_logic.export_daily_report(context, report, output)
        except OSError as error:
            print(f"Error: Unable to write daily report: {error}")
            return handle_cli_error(error)
        print(f"Report written to {destination}")
    return EXIT_OK


def render_receipt(context: core_logic.RuntimeContext, record: TransactionRecord) -> str:
    unit = FUEL_UNITS[record.fuel_type]
    rate = context.inventory.unit_price(record.fuel_type)
    lines = [
        "------------------- FUEL RECEIPT -------------------",
        f"Station        : {context.settings.station_name}",
        f"Transaction ID : {record.transaction_id}",
        f"Date & Time    : {record.timestamp.strftime(TIME_FORMAT)}",
        f"Pump ID        : {record.pump_id}",
        f"Fuel Type      : {record.fuel_type.value}",
        f"Vehicle Type   : {record.vehicle_type.value}",
        f"Quantity       : {record.quantity:.3f} {unit}",
        f"Rate           : {rate:.2f} per {unit}",
        f"Amount         : {record.amount:.2f}",
        f"Payment Mode   : {PAYMENT_LABELS[record.payment_mode]}",
        "----------------------------------------------------",
    ]
    return "\n".join(lines)


def render_transactions(records: Sequence[TransactionRecord]) -> str:
    if not records:
        return "No transactions yet."
    lines = ["---- Transactions ----"]
    for record in records:
        lines.append(
            f"{record.transaction_id} | {record.timestamp.strftime(TIME_FORMAT)} | Pump {record.pump_id} | "
            f"Qty: {record.quantity:.3f} | {record.amount:.2f} | {PAYMENT_LABELS[record.payment_mode]}"
        )
    return "\n".join(lines)


def render_fuel_summary(rows: Sequence[core_logic.FuelSummaryRow]) -> str:
    lines = ["----- Fuel-wise Summary -----"]
    for row in rows:
        lines.append(
            f"{row.fuel_type.value} | Opening Stock: {row.opening_stock:.2f} | Current Stock: {row.current_stock:.2f} | "
            f"Supplied: {row.supplied:.2f} | Sold Qty: {row.sold_quantity:.3f} | Revenue: {row.revenue:.2f}"
        )
    return "\n".join(lines)


def render_pump_performance(rows: Sequence[core_logic.PumpPerformanceRow]) -> str:
    lines = ["----- Pump-wise Performance -----"]
    for row in rows:
        lines.append(
            f"Pump {row.pump_id} | Fuel: {row.fuel_type.value} | Status: {row.status.value} | "
            f"Txns: {row.transactions_count} | Qty: {row.total_quantity:.3f} | Revenue: {row.total_amount:.2f}"
        )
    return "\n".join(lines)


def render_hourly(breakdown: Mapping[int, Totals]) -> str:
    lines = ["----- Hour-wise Sales Analysis -----"]
    for hour, totals in sorted(breakdown.items()):
        lines.append(f"Hour {hour:02d}:00 - Qty: {totals.quantity:.3f} | Revenue: {totals.amount:.2f}")
    return "\n".join(lines)


def render_payments(breakdown: Mapping[PaymentMode, Decimal]) -> str:
    lines = ["----- Payment Mode Breakdown -----"]
    for mode, amount in breakdown.items():
        lines.append(f"{PAYMENT_LABELS[mode]}: {amount:.2f}")
    return "\n".join(lines)


def render_daily_report(report: core_logic.DailyReport) -> str:
    lines = [
        "================= DAILY REPORT =================",
        f"Station: {report.station_name}",
        f"Generated: {report.generated_at.strftime(TIME_FORMAT)}",
        "Fuel Opening & Closing Stocks:",
    ]
    for row in report.fuel_summary:
        lines.append(
            f"{row.fuel_type.value}: Opening: {row.opening_stock:.2f} | "
            f"Closing: {report.closing_stock[row.fuel_type]:.2f}"
        )
    lines.append(f"Total Sales Quantity (all fuels): {report.total_quantity:.3f}")
    lines.append(f"Total Revenue (all fuels): {report.total_revenue:.2f}")
    lines.append(render_fuel_summary(report.fuel_summary))
    lines.append(f"Number of transactions: {report.transaction_count}")
    lines.append(render_payments(report.payment_breakdown))
    lines.append(render_pump_performance(report.pump_performance))
    lines.append(render_hourly(report.hourly_breakdown))
    for fuel in report.low_stock:
        lines.append(f"WARNING: Low stock for {fuel.value}")
    for problem in report.discrepancies:
        lines.append(f"DISCREPANCY: {problem}")
    lines.append("================================================")
    return "\n".join(lines)


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, CapacityExpansionFailed):
        log.critical("%s", error)
        return EXIT_FATAL
    if isinstance(error, StationError):
        log.warning("%s", error)
        return EXIT_REJECTED
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return EXIT_CONFIG
    log.error("%s", error)
    return EXIT_UNEXPECTED


def parse_session_line(parser: argparse.ArgumentParser, line: str) -> Optional[argparse.Namespace]:
    """Parse one session line; ``None`` for blank lines and comments.

    Raises:
        InvalidInput: If the line cannot be tokenised or parsed.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    try:
        tokens = shlex.split(stripped)
    except ValueError as error:
        raise InvalidInput(f"Unable to read command: {error}") from error
    try:
        return parser.parse_args(tokens)
    except SystemExit as error:
        # argparse has already printed usage details to stderr.
        raise InvalidInput(f"Invalid command: {stripped}") from error


def run_session(
    context: core_logic.RuntimeContext,
    lines: Iterable[str],
    parser: argparse.ArgumentParser,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Execute session commands until input ends or the operator quits.

    Rejected commands are reported and the session continues. A ledger
    capacity failure ends the session immediately with ``EXIT_FATAL``. The
    ledger is released on every exit path.
    """
    try:
        for line in lines:
            if line.strip().lower() in SESSION_EXIT_WORDS:
                break
            if line.strip().lower() == "help":
                parser.print_help()
                continue
            try:
                args = parse_session_line(parser, line)
                if args is None:
                    continue
                dispatch_command(context, args, command_table)
            except StationError as error:
                handle_cli_error(error)
                print(f"Error: {error}")
            except CapacityExpansionFailed as error:
                print("Critical: transaction storage expansion failed. Exiting.", file=sys.stderr)
                return handle_cli_error(error)
        return EXIT_OK
    finally:
        core_logic.shutdown(context)


def main(argv: Sequence[str] | None = None) -> int:
    """Console entry point that loads the station and runs a session."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "verbose", False):
        set_console_level(logging.INFO)
    try:
        context = load_runtime_context(getattr(args, "config", None))
    except (FileNotFoundError, KeyError, ValueError) as error:
        log.error("Unable to load station configuration: %s", error)
        return EXIT_CONFIG

    session_parser = build_session_parser()
    command_table = configure_subcommands(session_parser)
    script = getattr(args, "script", None)
    try:
        if script is not None:
            with Path(script).expanduser().open(encoding="utf-8") as handle:
                return run_session(context, handle, session_parser, command_table)
        return run_session(context, sys.stdin, session_parser, command_table)
    except FileNotFoundError as error:
        core_logic.shutdown(context)
        return handle_cli_error(error)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
