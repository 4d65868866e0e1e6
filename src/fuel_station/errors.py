"""Error taxonomy for the fuel station core.

Every :class:`StationError` is recoverable: it is raised before any state is
mutated, so the caller may simply retry with corrected input.
:class:`CapacityExpansionFailed` is deliberately outside that hierarchy
because the process cannot keep accepting sales once the ledger is unable to
grow.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class StationError(Exception):
    """Raised when a requested operation is rejected without side effects."""


class InvalidInput(StationError, ValueError):
    """Raised for non-positive quantities or amounts and malformed selectors."""


class PumpNotFound(StationError, LookupError):
    """Raised when a pump identifier is not registered."""


class PumpNotActive(StationError):
    """Raised when a sale targets a pump whose status is not ``Active``."""


class InsufficientStock(StationError):
    """Raised when a fuel cannot cover the requested quantity."""

    def __init__(self, fuel_type: Any, requested: Decimal, available: Decimal) -> None:
        self.fuel_type = fuel_type
        self.requested = requested
        self.available = available
        label = getattr(fuel_type, "value", fuel_type)
        super().__init__(
            f"Insufficient {label} stock: requested {requested}, available {available}"
        )


class CapacityExpansionFailed(Exception):
    """Raised when the transaction ledger cannot acquire more storage."""


__all__ = [
    "StationError",
    "InvalidInput",
    "PumpNotFound",
    "PumpNotActive",
    "InsufficientStock",
    "CapacityExpansionFailed",
]
