"""Inventory store holding stock levels and unit prices per fuel type.

Each :class:`FuelStock` is created once at startup from the configured prices
and opening stock. Only :meth:`InventoryStore.deduct` and
:meth:`InventoryStore.add_supply` change ``current_stock``; both validate
before they mutate so a rejected call leaves the store untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Mapping

from . import log
from .constants import FuelType
from .errors import InsufficientStock, InvalidInput


@dataclass
class FuelStock:
    """Stock record for a single fuel type."""

    fuel_type: FuelType
    unit_price: Decimal
    opening_stock: Decimal
    current_stock: Decimal
    closing_stock: Decimal
    supplied: Decimal = Decimal("0")


def as_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Coerce caller input into a finite :class:`~decimal.Decimal`.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.

    Raises:
        InvalidInput: If ``value`` is not numeric, NaN or infinite.
    """
    if isinstance(value, bool):
        raise InvalidInput(f"{field_name} must be numeric, got {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        log.error("Numeric validation failed for %s: %r", field_name, value)
        raise InvalidInput(f"{field_name} must be numeric, got {value!r}") from exc
    if not result.is_finite():
        log.error("Numeric validation failed for %s: %r", field_name, value)
        raise InvalidInput(f"{field_name} must be a finite number, got {value!r}")
    return result


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Args:
        quantity (Decimal): Quantity supplied by a caller.

    Raises:
        InvalidInput: If ``quantity`` is zero or negative.
    """
    if quantity <= Decimal("0"):
        log.error("Quantity validation failed: %s", quantity)
        raise InvalidInput("Quantity must be greater than zero")


class InventoryStore:
    """Current, opening and closing stock plus unit price per fuel."""

    def __init__(self, fuels: Mapping[FuelType, FuelStock]) -> None:
        missing = [fuel.value for fuel in FuelType if fuel not in fuels]
        if missing:
            raise ValueError(f"Missing stock records for: {', '.join(missing)}")
        self._fuels: Dict[FuelType, FuelStock] = {fuel: fuels[fuel] for fuel in FuelType}

    @classmethod
    def from_reference_data(
        cls,
        prices: Mapping[FuelType, Decimal],
        opening_stock: Mapping[FuelType, Decimal],
    ) -> "InventoryStore":
        """Build a store whose current and closing stock equal the opening stock.

        Args:
            prices (Mapping[FuelType, Decimal]): Unit price per fuel.
            opening_stock (Mapping[FuelType, Decimal]): Stock on hand at
                startup per fuel.

        Returns:
            InventoryStore: Store with one record for every :class:`FuelType`.

        Raises:
            ValueError: If a fuel is missing, a price is not positive, or an
                opening stock is negative.
        """
        fuels: Dict[FuelType, FuelStock] = {}
        for fuel in FuelType:
            if fuel not in prices or fuel not in opening_stock:
                raise ValueError(f"Missing reference data for fuel '{fuel.value}'")
            price = Decimal(prices[fuel])
            opening = Decimal(opening_stock[fuel])
            if price <= Decimal("0"):
                raise ValueError(f"Unit price for '{fuel.value}' must be positive")
            if opening < Decimal("0"):
                raise ValueError(f"Opening stock for '{fuel.value}' must not be negative")
            fuels[fuel] = FuelStock(
                fuel_type=fuel,
                unit_price=price,
                opening_stock=opening,
                current_stock=opening,
                closing_stock=opening,
            )
        return cls(fuels)

    def __iter__(self) -> Iterator[FuelStock]:
        return iter(self._fuels.values())

    def get(self, fuel_type: FuelType) -> FuelStock:
        try:
            return self._fuels[FuelType(fuel_type)]
        except (KeyError, ValueError) as exc:
            log.warning("Fuel lookup failed for '%s'", fuel_type)
            raise InvalidInput(f"Unknown fuel type: {fuel_type}") from exc

    def unit_price(self, fuel_type: FuelType) -> Decimal:
        return self.get(fuel_type).unit_price

    def deduct(self, fuel_type: FuelType, quantity: Decimal) -> Decimal:
        """Remove ``quantity`` from the current stock of ``fuel_type``.

        Validation and decrement form one step: when the stock cannot cover
        the request nothing is changed.

        Args:
            fuel_type (FuelType): Fuel being dispensed.
            quantity (Decimal): Strictly positive quantity to remove.

        Returns:
            Decimal: Remaining current stock after the deduction.

        Raises:
            InvalidInput: If the fuel is unknown or ``quantity`` is not positive.
            InsufficientStock: If ``quantity`` exceeds the current stock.
        """
        stock = self.get(fuel_type)
        quantity = as_decimal(quantity, "quantity")
        require_positive_quantity(quantity)
        if quantity > stock.current_stock:
            log.warning(
                "Insufficient %s stock: requested %s, available %s",
                stock.fuel_type.value,
                quantity,
                stock.current_stock,
            )
            raise InsufficientStock(stock.fuel_type, quantity, stock.current_stock)
        stock.current_stock -= quantity
        return stock.current_stock

    def add_supply(self, fuel_type: FuelType, quantity: Decimal) -> Decimal:
        """Add a delivery to the current stock; there is no upper bound."""
        stock = self.get(fuel_type)
        quantity = as_decimal(quantity, "quantity")
        require_positive_quantity(quantity)
        try:
            new_stock = stock.current_stock + quantity
            new_supplied = stock.supplied + quantity
        except ArithmeticError as exc:
            log.error("Supply quantity out of range for %s: %s", stock.fuel_type.value, quantity)
            raise InvalidInput(f"Supply quantity is out of range: {quantity}") from exc
        stock.current_stock = new_stock
        stock.supplied = new_supplied
        log.info(
            "Added %s supply of %s (new stock=%s)",
            stock.fuel_type.value,
            quantity,
            stock.current_stock,
        )
        return stock.current_stock

    def snapshot_closing(self) -> Dict[FuelType, Decimal]:
        """Copy current stock into closing stock for every fuel.

        Idempotent; each call reflects the stock at call time.

        Returns:
            dict[FuelType, Decimal]: Closing stock per fuel.
        """
        for stock in self._fuels.values():
            stock.closing_stock = stock.current_stock
        return {fuel: stock.closing_stock for fuel, stock in self._fuels.items()}

    def below_threshold(self, threshold: Decimal) -> List[FuelStock]:
        return [stock for stock in self._fuels.values() if stock.current_stock < threshold]


__all__ = ["as_decimal", "FuelStock", "InventoryStore", "require_positive_quantity"]
