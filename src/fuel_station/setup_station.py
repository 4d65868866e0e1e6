"""Utility for initializing a fuel station ``config.ini``.

The module doubles as a script (``fuel-station-setup``) and as a library used
by tests or other tooling. The written file contains the built-in reference
data so operators have a complete template to edit.
"""

from __future__ import annotations

import argparse
import configparser
import sys
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional, Sequence

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
)
from .data_manager import CONFIG_FILE_NAME


def build_station_config(
    *,
    station_name: str = DEFAULT_STATION_NAME,
    prices: Mapping[FuelType, Decimal] = DEFAULT_PRICES,
    opening_stock: Mapping[FuelType, Decimal] = DEFAULT_OPENING_STOCK,
    pump_assignments: Mapping[int, FuelType] = DEFAULT_PUMP_ASSIGNMENTS,
    timezone: Optional[str] = None,
) -> configparser.ConfigParser:
    """Assemble a ``ConfigParser`` holding a complete station configuration."""

    parser = configparser.ConfigParser()
    parser.optionxform = str  # type: ignore[assignment,method-assign]

    parser["Station"] = {"Name": station_name, "Timezone": timezone or ""}
    parser["Prices"] = {fuel.value: str(prices[fuel]) for fuel in FuelType}
    parser["OpeningStock"] = {fuel.value: str(opening_stock[fuel]) for fuel in FuelType}
    parser["Pumps"] = {str(pump_id): FuelType(fuel).value for pump_id, fuel in sorted(pump_assignments.items())}
    parser["Ledger"] = {
        "InitialCapacity": str(INITIAL_LEDGER_CAPACITY),
        "FallbackIncrement": str(LEDGER_FALLBACK_INCREMENT),
    }
    parser["Alerts"] = {"LowStockThreshold": str(LOW_STOCK_THRESHOLD)}
    parser["Reports"] = {"OutputDir": DEFAULT_REPORT_DIR}
    return parser


def create_station_config(
    destination: Path,
    *,
    station_name: str = DEFAULT_STATION_NAME,
    timezone: Optional[str] = None,
    overwrite: bool = False,
) -> Path:
    """Write a default station configuration to ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing configuration: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)
    parser = build_station_config(station_name=station_name, timezone=timezone)
    with destination.open("w", encoding="utf-8") as handle:
        parser.write(handle)
    return destination


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize a fuel station configuration file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE_NAME,
        help="Path of the configuration file to create (default: config.ini)",
    )
    parser.add_argument("--name", default=DEFAULT_STATION_NAME, help="Station name printed on receipts.")
    parser.add_argument("--timezone", default=None, help="IANA time zone, e.g. Asia/Kolkata.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target file if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Fuel Station Setup Script ---")
    print(f"Writing configuration: {config_path}")

    try:
        output_path = create_station_config(
            config_path,
            station_name=args.name,
            timezone=args.timezone,
            overwrite=args.force,
        )
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write configuration: {exc}")
        return 1

    print(f"\n[SUCCESS] Created station configuration at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
