"""Enumerations and built-in defaults shared across the fuel station modules.

Centralises domain constants so that the inventory, pump, ledger and
aggregation components, the configuration layer and the operator console can
rely on a single source of truth for critical identifiers.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, Mapping


class FuelType(str, Enum):
    """Enumerate the fuels stocked by the station."""

    PETROL = "Petrol"
    DIESEL = "Diesel"
    CNG = "CNG"


class PumpStatus(str, Enum):
    """Enumerate the operating states a pump can be in."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    MAINTENANCE = "Maintenance"


class VehicleType(str, Enum):
    """Enumerate the vehicle categories tagged on each sale."""

    TWO_WHEELER = "2-Wheeler"
    FOUR_WHEELER = "4-Wheeler"
    COMMERCIAL = "Commercial"


class PaymentMode(str, Enum):
    """Enumerate supported payment mechanisms for sales."""

    CASH = "Cash"
    CARD = "Card"
    WALLET = "Wallet"


class SaleMode(str, Enum):
    """Enumerate how the customer expressed the sale request."""

    QUANTITY = "quantity"
    AMOUNT = "amount"


class SheetName(str, Enum):
    """Enumerate the worksheet names written by the end-of-day export."""

    FUEL_SUMMARY = "FuelSummary"
    PUMP_PERFORMANCE = "PumpPerformance"
    HOURLY_BREAKDOWN = "HourlyBreakdown"
    PAYMENT_BREAKDOWN = "PaymentBreakdown"
    TRANSACTIONS = "Transactions"


FUEL_UNITS: Mapping[FuelType, str] = {
    FuelType.PETROL: "liters",
    FuelType.DIESEL: "liters",
    FuelType.CNG: "kg",
}

PAYMENT_LABELS: Mapping[PaymentMode, str] = {
    PaymentMode.CASH: "Cash",
    PaymentMode.CARD: "Credit Card",
    PaymentMode.WALLET: "Digital Wallet",
}

DEFAULT_STATION_NAME = "ABC Fuel Station"

DEFAULT_PRICES: Mapping[FuelType, Decimal] = {
    FuelType.PETROL: Decimal("102.50"),
    FuelType.DIESEL: Decimal("88.75"),
    FuelType.CNG: Decimal("75.00"),
}

DEFAULT_OPENING_STOCK: Mapping[FuelType, Decimal] = {
    FuelType.PETROL: Decimal("50000"),
    FuelType.DIESEL: Decimal("50000"),
    FuelType.CNG: Decimal("20000"),
}

# Two pumps per fuel, numbered from 1.
DEFAULT_PUMP_ASSIGNMENTS: Dict[int, FuelType] = {
    1: FuelType.PETROL,
    2: FuelType.PETROL,
    3: FuelType.DIESEL,
    4: FuelType.DIESEL,
    5: FuelType.CNG,
    6: FuelType.CNG,
}

INITIAL_LEDGER_CAPACITY = 50
LEDGER_FALLBACK_INCREMENT = 50
LOW_STOCK_THRESHOLD = Decimal("5000")
DEFAULT_REPORT_DIR = "reports"

HOURS_PER_DAY = 24
TRANSACTION_ID_PREFIX = "TXN"
AMOUNT_TOLERANCE = Decimal("0.01")


__all__ = [
    "FuelType",
    "PumpStatus",
    "VehicleType",
    "PaymentMode",
    "SaleMode",
    "SheetName",
    "FUEL_UNITS",
    "PAYMENT_LABELS",
    "DEFAULT_STATION_NAME",
    "DEFAULT_PRICES",
    "DEFAULT_OPENING_STOCK",
    "DEFAULT_PUMP_ASSIGNMENTS",
    "INITIAL_LEDGER_CAPACITY",
    "LEDGER_FALLBACK_INCREMENT",
    "LOW_STOCK_THRESHOLD",
    "DEFAULT_REPORT_DIR",
    "HOURS_PER_DAY",
    "TRANSACTION_ID_PREFIX",
    "AMOUNT_TOLERANCE",
]
