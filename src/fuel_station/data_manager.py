"""Configuration handling and report export for the fuel station.

This module is the only place that touches the filesystem. Business logic
belongs elsewhere.

The public API is designed around two responsibilities:

1. Configuration handling: finding ``config.ini`` and parsing it into
   :class:`StationSettings` (prices, opening stock, pump assignment and
   tuning knobs).
2. Report export: writing the end-of-day snapshot into an ``.xlsx`` workbook.
   Nothing written here is ever read back; all station state lives in memory
   for the lifetime of the process.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import log
from .constants import (
    DEFAULT_OPENING_STOCK,
    DEFAULT_PRICES,
    DEFAULT_PUMP_ASSIGNMENTS,
    DEFAULT_REPORT_DIR,
    DEFAULT_STATION_NAME,
    INITIAL_LEDGER_CAPACITY,
    LEDGER_FALLBACK_INCREMENT,
    LOW_STOCK_THRESHOLD,
    FuelType,
    SheetName,
)
from .ledger import TransactionRecord

if TYPE_CHECKING:
    from .core_logic import DailyReport


CONFIG_FILE_NAME = "config.ini"

REPORT_COLUMNS: Mapping[SheetName, Sequence[str]] = {
    SheetName.FUEL_SUMMARY: [
        "FuelType",
        "UnitPrice",
        "OpeningStock",
        "Supplied",
        "SoldQuantity",
        "Revenue",
        "CurrentStock",
        "ClosingStock",
    ],
    SheetName.PUMP_PERFORMANCE: [
        "PumpID",
        "FuelType",
        "Status",
        "Transactions",
        "Quantity",
        "Revenue",
    ],
    SheetName.HOURLY_BREAKDOWN: ["Hour", "Quantity", "Revenue"],
    SheetName.PAYMENT_BREAKDOWN: ["PaymentMode", "Revenue"],
    SheetName.TRANSACTIONS: [
        "TransactionID",
        "Timestamp",
        "PumpID",
        "FuelType",
        "VehicleType",
        "Quantity",
        "Amount",
        "PaymentMode",
    ],
}


@dataclass(frozen=True)
class StationSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    station_name: str
    prices: Mapping[FuelType, Decimal]
    opening_stock: Mapping[FuelType, Decimal]
    pump_assignments: Mapping[int, FuelType]
    timezone: Optional[tzinfo] = None
    initial_capacity: int = INITIAL_LEDGER_CAPACITY
    fallback_increment: int = LEDGER_FALLBACK_INCREMENT
    low_stock_threshold: Decimal = LOW_STOCK_THRESHOLD
    report_dir: Path = Path(DEFAULT_REPORT_DIR)


def default_settings(*, base_path: Optional[Path] = None) -> StationSettings:
    """Return the built-in reference data used when no config file exists."""

    anchor = base_path if base_path is not None else Path.cwd()
    return StationSettings(
        station_name=DEFAULT_STATION_NAME,
        prices=dict(DEFAULT_PRICES),
        opening_stock=dict(DEFAULT_OPENING_STOCK),
        pump_assignments=dict(DEFAULT_PUMP_ASSIGNMENTS),
        report_dir=(anchor / DEFAULT_REPORT_DIR).resolve(),
    )


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that describes the station.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the
    current working directory toward the filesystem root looking for a file
    named ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    # Preserve option name casing.
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> StationSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`StationSettings`.

    ``[Station] Name``, a price and an opening stock for every fuel, and at
    least one pump under ``[Pumps]`` are mandatory. The ``[Ledger]``,
    ``[Alerts]`` and ``[Reports]`` sections and ``[Station] Timezone`` are
    optional and fall back to the built-in defaults. A relative report
    directory is anchored at ``base_path`` (or the current working directory).

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor relative paths.

    Returns:
        StationSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If a value is present but malformed.
    """

    try:
        station_name = parser.get("Station", "Name")
        prices = {fuel: _parse_decimal(parser.get("Prices", fuel.value), f"Prices.{fuel.value}") for fuel in FuelType}
        opening_stock = {
            fuel: _parse_decimal(parser.get("OpeningStock", fuel.value), f"OpeningStock.{fuel.value}")
            for fuel in FuelType
        }
        pump_items = parser.items("Pumps")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    if not pump_items:
        raise KeyError("Missing required configuration entry: no pumps configured under [Pumps]")

    for fuel, price in prices.items():
        if price <= Decimal("0"):
            raise ValueError(f"Price for {fuel.value} must be positive, got {price}")
    for fuel, stock in opening_stock.items():
        if stock < Decimal("0"):
            raise ValueError(f"Opening stock for {fuel.value} must not be negative, got {stock}")

    pump_assignments = _parse_pump_assignments(pump_items)

    timezone = _parse_timezone(parser.get("Station", "Timezone", fallback="").strip())
    initial_capacity = _parse_positive_int(
        parser.get("Ledger", "InitialCapacity", fallback=str(INITIAL_LEDGER_CAPACITY)),
        "Ledger.InitialCapacity",
    )
    fallback_increment = _parse_positive_int(
        parser.get("Ledger", "FallbackIncrement", fallback=str(LEDGER_FALLBACK_INCREMENT)),
        "Ledger.FallbackIncrement",
    )
    threshold = _parse_decimal(
        parser.get("Alerts", "LowStockThreshold", fallback=str(LOW_STOCK_THRESHOLD)),
        "Alerts.LowStockThreshold",
    )

    report_dir = Path(parser.get("Reports", "OutputDir", fallback=DEFAULT_REPORT_DIR)).expanduser()
    if not report_dir.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        report_dir = (base_path / report_dir).resolve()

    return StationSettings(
        station_name=station_name,
        prices=prices,
        opening_stock=opening_stock,
        pump_assignments=pump_assignments,
        timezone=timezone,
        initial_capacity=initial_capacity,
        fallback_increment=fallback_increment,
        low_stock_threshold=threshold,
        report_dir=report_dir,
    )


def _parse_decimal(raw: str, entry: str) -> Decimal:
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid number for {entry}: {raw!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid number for {entry}: {raw!r}")
    return value


def _parse_positive_int(raw: str, entry: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid integer for {entry}: {raw!r}") from exc
    if value < 1:
        raise ValueError(f"{entry} must be at least 1, got {value}")
    return value


def _parse_pump_assignments(items: Iterable[tuple[str, str]]) -> Dict[int, FuelType]:
    assignments: Dict[int, FuelType] = {}
    for raw_id, raw_fuel in items:
        try:
            pump_id = int(raw_id.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid pump id in [Pumps]: {raw_id!r}") from exc
        try:
            fuel = FuelType(raw_fuel.strip())
        except ValueError as exc:
            raise ValueError(f"Unknown fuel type for pump {pump_id}: {raw_fuel!r}") from exc
        assignments[pump_id] = fuel
    return dict(sorted(assignments.items()))


def _parse_timezone(name: str) -> Optional[tzinfo]:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise ValueError(f"Unknown time zone in [Station] Timezone: {name!r}") from exc


def report_filename(generated_at: datetime) -> str:
    """Return the default workbook name for a report generated at ``generated_at``."""

    return f"daily_report_{generated_at.strftime('%Y%m%d_%H%M%S')}.xlsx"


def create_report_workbook(sheet_columns: Mapping[SheetName, Sequence[str]] = REPORT_COLUMNS) -> Workbook:
    """Create an empty report workbook with bold header rows on every sheet."""

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name.value)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font
    return workbook


def serialize_transaction(record: TransactionRecord) -> list[object]:
    """Convert a transaction record into the ``Transactions`` column order.

    Decimals are written as floats because openpyxl has no native decimal
    cell type; timestamps are written as ISO-8601 strings so their offset is
    preserved.
    """

    return [
        record.transaction_id,
        record.timestamp.isoformat(),
        record.pump_id,
        record.fuel_type.value,
        record.vehicle_type.value,
        float(record.quantity),
        float(record.amount),
        record.payment_mode.value,
    ]


def write_daily_report(
    report: "DailyReport",
    transactions: Iterable[TransactionRecord],
    destination: Path,
) -> Path:
    """Write an end-of-day report workbook to ``destination``.

    Parent directories are created on demand. An existing file at
    ``destination`` is replaced.

    Args:
        report (DailyReport): Snapshot produced by ``core_logic.close_day``.
        transactions (Iterable[TransactionRecord]): Ledger contents in
            insertion order.
        destination (Path): Target ``.xlsx`` path.

    Returns:
        Path: The resolved path of the written workbook.
    """

    workbook = create_report_workbook()

    fuel_sheet = workbook[SheetName.FUEL_SUMMARY.value]
    for row in report.fuel_summary:
        fuel_sheet.append(
            [
                row.fuel_type.value,
                float(row.unit_price),
                float(row.opening_stock),
                float(row.supplied),
                float(row.sold_quantity),
                float(row.revenue),
                float(row.current_stock),
                float(report.closing_stock[row.fuel_type]),
            ]
        )

    pump_sheet = workbook[SheetName.PUMP_PERFORMANCE.value]
    for pump in report.pump_performance:
        pump_sheet.append(
            [
                pump.pump_id,
                pump.fuel_type.value,
                pump.status.value,
                pump.transactions_count,
                float(pump.total_quantity),
                float(pump.total_amount),
            ]
        )

    hourly_sheet = workbook[SheetName.HOURLY_BREAKDOWN.value]
    for hour, totals in sorted(report.hourly_breakdown.items()):
        hourly_sheet.append([f"{hour:02d}:00", float(totals.quantity), float(totals.amount)])

    payment_sheet = workbook[SheetName.PAYMENT_BREAKDOWN.value]
    for mode, amount in report.payment_breakdown.items():
        payment_sheet.append([mode.value, float(amount)])

    transaction_sheet = workbook[SheetName.TRANSACTIONS.value]
    for record in transactions:
        transaction_sheet.append(serialize_transaction(record))

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)
    log.info("Exported daily report to '%s'", dest)
    return dest


__all__ = [
    "CONFIG_FILE_NAME",
    "REPORT_COLUMNS",
    "StationSettings",
    "default_settings",
    "find_config_file",
    "read_config",
    "parse_settings",
    "report_filename",
    "create_report_workbook",
    "serialize_transaction",
    "write_daily_report",
]
