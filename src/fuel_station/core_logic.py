"""Business logic layer for the fuel station.

This module owns the runtime context (inventory, pumps, ledger, aggregates
and the transaction id sequence) and the sale orchestration that keeps them
consistent. A sale is validated in full before anything is mutated; once the
stock deduction succeeds the ledger append and aggregation always follow, so
callers never observe a sale that is only partly recorded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from . import data_manager, log
from .aggregation import AggregationEngine, Totals
from .constants import FuelType, PaymentMode, PumpStatus, SaleMode, VehicleType
from .errors import InvalidInput
from .inventory import FuelStock, InventoryStore, as_decimal
from .ledger import TransactionIdGenerator, TransactionLedger, TransactionRecord
from .pumps import PumpRegistry

_E = TypeVar("_E", FuelType, PaymentMode, PumpStatus, VehicleType)


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and every piece of live station state."""

    settings: data_manager.StationSettings
    inventory: InventoryStore
    pumps: PumpRegistry
    ledger: TransactionLedger
    aggregates: AggregationEngine
    id_generator: TransactionIdGenerator = field(default_factory=TransactionIdGenerator)


@dataclass(frozen=True)
class SaleCommand:
    """User intent for dispensing fuel.

    Exactly one of ``quantity`` and ``amount`` must be given.
    """

    pump_id: int
    vehicle_type: VehicleType
    payment_mode: PaymentMode
    quantity: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SupplyCommand:
    """User intent for receiving a fuel delivery."""

    fuel_type: FuelType
    quantity: Decimal


@dataclass(frozen=True)
class FuelSummaryRow:
    fuel_type: FuelType
    unit_price: Decimal
    opening_stock: Decimal
    current_stock: Decimal
    supplied: Decimal
    sold_quantity: Decimal
    revenue: Decimal


@dataclass(frozen=True)
class PumpPerformanceRow:
    pump_id: int
    fuel_type: FuelType
    status: PumpStatus
    transactions_count: int
    total_quantity: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class DailyReport:
    """End-of-day snapshot of every report plus the closing stock."""

    station_name: str
    generated_at: datetime
    closing_stock: Mapping[FuelType, Decimal]
    fuel_summary: List[FuelSummaryRow]
    total_quantity: Decimal
    total_revenue: Decimal
    transaction_count: int
    payment_breakdown: Mapping[PaymentMode, Decimal]
    pump_performance: List[PumpPerformanceRow]
    hourly_breakdown: Mapping[int, Totals]
    low_stock: List[FuelType]
    discrepancies: List[str] = field(default_factory=list)


def build_runtime_context(settings: data_manager.StationSettings) -> RuntimeContext:
    """Create fresh in-memory station state from reference data.

    Args:
        settings (data_manager.StationSettings): Prices, opening stock, pump
            assignment and ledger sizing.

    Returns:
        RuntimeContext: Context with full opening stock, all pumps ``Active``,
            an empty ledger and zeroed aggregates.
    """
    inventory = InventoryStore.from_reference_data(settings.prices, settings.opening_stock)
    pumps = PumpRegistry.from_assignments(settings.pump_assignments)
    ledger = TransactionLedger(
        initial_capacity=settings.initial_capacity,
        fallback_increment=settings.fallback_increment,
    )
    aggregates = AggregationEngine(pumps, timezone=settings.timezone)
    log.info(
        "Initialized station '%s' with %d pumps (ledger capacity %d)",
        settings.station_name,
        len(pumps),
        ledger.capacity,
    )
    return RuntimeContext(
        settings=settings,
        inventory=inventory,
        pumps=pumps,
        ledger=ledger,
        aggregates=aggregates,
    )


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration and build the runtime context.

    An explicit ``config_path`` must exist. Without one the data layer
    searches upward from the working directory, and when nothing is found the
    built-in reference data is used.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
        KeyError: When mandatory configuration options are missing.
        ValueError: When configuration values are malformed.
    """
    try:
        located_config = data_manager.find_config_file(config_path)
    except FileNotFoundError:
        log.info("No configuration file found; using built-in station defaults")
        return build_runtime_context(data_manager.default_settings())

    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    log.info("Loaded station configuration from '%s'", resolved_config)
    return build_runtime_context(settings)


def _resolve_timestamp(context: RuntimeContext, candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current time in the station's time zone."""

    if candidate is not None:
        return candidate
    timezone = context.settings.timezone
    if timezone is not None:
        return datetime.now(timezone)
    return datetime.now().astimezone()


def _station_clock(context: RuntimeContext, timestamp: datetime) -> Optional[datetime]:
    """Express ``timestamp`` in the station zone, or ``None`` if that fails."""

    try:
        return timestamp.astimezone(context.settings.timezone)
    except (OverflowError, OSError, ValueError) as exc:
        log.warning("Unable to convert %r to the station time zone: %s", timestamp, exc)
        return None


def _coerce_enum(enum_type: Type[_E], value: Any, label: str) -> _E:
    try:
        return enum_type(value)
    except ValueError as exc:
        log.error("Unsupported %s provided: %s", label, value)
        raise InvalidInput(f"Unsupported {label}: {value}") from exc


def resolve_sale_amounts(
    unit_price: Decimal,
    *,
    quantity: Optional[Any] = None,
    amount: Optional[Any] = None,
) -> tuple[Decimal, Decimal]:
    """Derive the (quantity, amount) pair for a sale.

    Quantity mode bills ``quantity * unit_price``. Amount mode dispenses
    ``amount / unit_price`` at full decimal context precision and bills the
    requested amount unchanged.

    Args:
        unit_price (Decimal): Price per liter or kilogram.
        quantity (Decimal | None): Requested quantity.
        amount (Decimal | None): Requested amount.

    Returns:
        tuple[Decimal, Decimal]: The quantity to dispense and the amount to
            bill.

    Raises:
        InvalidInput: If both or neither selector is given, or the given value
            is not strictly positive or is out of range.
    """
    if (quantity is None) == (amount is None):
        log.error("Sale must specify exactly one of quantity or amount")
        raise InvalidInput("Specify exactly one of quantity or amount")

    mode = SaleMode.QUANTITY if quantity is not None else SaleMode.AMOUNT
    value = as_decimal(quantity if mode is SaleMode.QUANTITY else amount, mode.value)
    if value <= Decimal("0"):
        log.error("Sale %s validation failed: %s", mode.value, value)
        raise InvalidInput(f"Sale {mode.value} must be greater than zero")

    try:
        if mode is SaleMode.QUANTITY:
            quantity_value, amount_value = value, value * unit_price
        else:
            quantity_value, amount_value = value / unit_price, value
    except ArithmeticError as exc:
        log.error("Sale %s out of range: %s", mode.value, value)
        raise InvalidInput(f"Sale {mode.value} is out of range: {value}") from exc
    if quantity_value <= Decimal("0"):
        log.error("Sale %s too small to dispense: %s", mode.value, value)
        raise InvalidInput(f"Sale {mode.value} is too small to dispense: {value}")
    return quantity_value, amount_value


def record_sale(context: RuntimeContext, command: SaleCommand) -> TransactionRecord:
    """Validate a sale, deduct stock and record it in the ledger and aggregates.

    The pump must exist and be ``Active``, the quantity or amount must be
    positive, the vehicle type and payment mode must be known, and the fuel
    must have enough stock. All of this is checked before the inventory is
    touched; a rejected sale leaves every component unchanged.

    Args:
        context (RuntimeContext): Live station state.
        command (SaleCommand): Structured intent describing the sale.

    Returns:
        TransactionRecord: The committed transaction.

    Raises:
        PumpNotFound: If the pump id is unknown.
        PumpNotActive: If the pump is inactive or under maintenance.
        InvalidInput: If the quantity/amount or a selector is invalid.
        InsufficientStock: If the fuel cannot cover the quantity.
        CapacityExpansionFailed: If the ledger cannot grow; stock already
            deducted for this sale is not restored and the caller must shut
            down.
    """
    pump = context.pumps.assert_active(command.pump_id)
    fuel_type = pump.fuel_type
    unit_price = context.inventory.unit_price(fuel_type)
    quantity, amount = resolve_sale_amounts(unit_price, quantity=command.quantity, amount=command.amount)
    vehicle_type = _coerce_enum(VehicleType, command.vehicle_type, "vehicle type")
    payment_mode = _coerce_enum(PaymentMode, command.payment_mode, "payment mode")

    timestamp = _resolve_timestamp(context, command.timestamp)

    context.inventory.deduct(fuel_type, quantity)

    # Committed: from here on the sale is recorded in full or the process stops.
    record = TransactionRecord(
        transaction_id=context.id_generator.next_id(_station_clock(context, timestamp)),
        timestamp=timestamp,
        pump_id=pump.pump_id,
        fuel_type=fuel_type,
        vehicle_type=vehicle_type,
        quantity=quantity,
        amount=amount,
        payment_mode=payment_mode,
    )
    context.ledger.append(record)
    context.aggregates.observe(record)
    log.info(
        "Recorded sale '%s' on pump %s (%s quantity=%s, amount=%s, payment=%s)",
        record.transaction_id,
        record.pump_id,
        fuel_type.value,
        quantity,
        amount,
        payment_mode.value,
    )

    for stock in low_stock_alerts(context):
        log.warning(
            "Low stock for %s: %s units left (threshold %s)",
            stock.fuel_type.value,
            stock.current_stock,
            context.settings.low_stock_threshold,
        )
    return record


def add_supply(context: RuntimeContext, command: SupplyCommand) -> Decimal:
    """Add a fuel delivery to the inventory and return the new stock level."""

    fuel_type = _coerce_enum(FuelType, command.fuel_type, "fuel type")
    return context.inventory.add_supply(fuel_type, command.quantity)


def set_pump_status(context: RuntimeContext, pump_id: int, status: PumpStatus) -> PumpStatus:
    pump = context.pumps.set_status(pump_id, status)
    return pump.status


def list_transactions(context: RuntimeContext) -> List[TransactionRecord]:
    """Return a snapshot of the ledger in insertion order.

    The returned list is a copy so callers can freely sort or filter without
    touching the ledger.
    """
    return list(context.ledger.all())


def low_stock_alerts(context: RuntimeContext) -> List[FuelStock]:
    return context.inventory.below_threshold(context.settings.low_stock_threshold)


def fuel_summary(context: RuntimeContext) -> List[FuelSummaryRow]:
    """Summarise opening, current and sold quantities plus revenue per fuel."""

    sold = context.aggregates.fuel_breakdown()
    return [
        FuelSummaryRow(
            fuel_type=stock.fuel_type,
            unit_price=stock.unit_price,
            opening_stock=stock.opening_stock,
            current_stock=stock.current_stock,
            supplied=stock.supplied,
            sold_quantity=sold[stock.fuel_type].quantity,
            revenue=sold[stock.fuel_type].amount,
        )
        for stock in context.inventory
    ]


def pump_performance(context: RuntimeContext) -> List[PumpPerformanceRow]:
    return [
        PumpPerformanceRow(
            pump_id=pump.pump_id,
            fuel_type=pump.fuel_type,
            status=pump.status,
            transactions_count=pump.transactions_count,
            total_quantity=pump.total_quantity,
            total_amount=pump.total_amount,
        )
        for pump in context.pumps
    ]


def hourly_breakdown(context: RuntimeContext) -> Dict[int, Totals]:
    return context.aggregates.hourly_breakdown()


def payment_breakdown(context: RuntimeContext) -> Dict[PaymentMode, Decimal]:
    return context.aggregates.payment_breakdown()


def reconcile(context: RuntimeContext) -> List[str]:
    """Compare every aggregate with a full ledger rescan.

    Returns:
        list[str]: Discrepancy descriptions; empty when consistent.
    """
    problems = context.aggregates.reconcile(context.ledger.all())
    for problem in problems:
        log.error("Aggregate discrepancy: %s", problem)
    return problems


def close_day(context: RuntimeContext, *, generated_at: Optional[datetime] = None) -> DailyReport:
    """Capture closing stock and assemble the end-of-day report.

    Closing stock reflects the stock at call time; the call may be repeated.

    Args:
        context (RuntimeContext): Live station state.
        generated_at (datetime | None): Report time, defaults to now.

    Returns:
        DailyReport: Snapshot of every report plus closing stock and any
            aggregate discrepancies found by :func:`reconcile`.
    """
    closing_stock = context.inventory.snapshot_closing()
    summary = fuel_summary(context)
    report = DailyReport(
        station_name=context.settings.station_name,
        generated_at=_resolve_timestamp(context, generated_at),
        closing_stock=closing_stock,
        fuel_summary=summary,
        total_quantity=sum((row.sold_quantity for row in summary), Decimal("0")),
        total_revenue=sum((row.revenue for row in summary), Decimal("0")),
        transaction_count=context.ledger.count(),
        payment_breakdown=payment_breakdown(context),
        pump_performance=pump_performance(context),
        hourly_breakdown=hourly_breakdown(context),
        low_stock=[stock.fuel_type for stock in low_stock_alerts(context)],
        discrepancies=reconcile(context),
    )
    log.info(
        "Closed day for '%s': %d transactions, revenue %s",
        report.station_name,
        report.transaction_count,
        report.total_revenue,
    )
    return report


def export_daily_report(
    context: RuntimeContext,
    report: DailyReport,
    destination: Optional[Path] = None,
) -> Path:
    """Write ``report`` and the ledger to an ``.xlsx`` workbook.

    Without ``destination`` the workbook goes into the configured report
    directory under a timestamped name.
    """
    target = destination
    if target is None:
        target = context.settings.report_dir / data_manager.report_filename(report.generated_at)
    return data_manager.write_daily_report(report, context.ledger.all(), target)


def shutdown(context: RuntimeContext) -> None:
    """Release ledger storage at the end of the session."""

    context.ledger.release()
    log.info("Station '%s' shut down", context.settings.station_name)


__all__ = [
    "RuntimeContext",
    "SaleCommand",
    "SupplyCommand",
    "FuelSummaryRow",
    "PumpPerformanceRow",
    "DailyReport",
    "build_runtime_context",
    "load_runtime_context",
    "resolve_sale_amounts",
    "record_sale",
    "add_supply",
    "set_pump_status",
    "list_transactions",
    "low_stock_alerts",
    "fuel_summary",
    "pump_performance",
    "hourly_breakdown",
    "payment_breakdown",
    "reconcile",
    "close_day",
    "export_daily_report",
    "shutdown",
]
