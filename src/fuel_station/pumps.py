"""Pump registry: status and cumulative performance counters per pump."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Iterator, Mapping

from . import log
from .constants import FuelType, PumpStatus
from .errors import InvalidInput, PumpNotActive, PumpNotFound


@dataclass
class Pump:
    """One physical pump.

    ``fuel_type`` is fixed at startup. The three counters only ever grow and
    are maintained exclusively through :meth:`PumpRegistry.record_usage`.
    """

    pump_id: int
    fuel_type: FuelType
    status: PumpStatus = PumpStatus.ACTIVE
    transactions_count: int = 0
    total_quantity: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")


class PumpRegistry:
    """Lookup and state management for the station's fixed set of pumps."""

    def __init__(self, pumps: Iterable[Pump]) -> None:
        self._pumps: Dict[int, Pump] = {}
        for pump in pumps:
            if pump.pump_id in self._pumps:
                raise ValueError(f"Duplicate pump id: {pump.pump_id}")
            self._pumps[pump.pump_id] = pump

    @classmethod
    def from_assignments(cls, assignments: Mapping[int, FuelType]) -> "PumpRegistry":
        """Create ``Active`` pumps ordered by id from a pump-to-fuel mapping."""
        return cls(
            Pump(pump_id=int(pump_id), fuel_type=FuelType(fuel_type))
            for pump_id, fuel_type in sorted(assignments.items())
        )

    def __iter__(self) -> Iterator[Pump]:
        return iter(self._pumps.values())

    def __len__(self) -> int:
        return len(self._pumps)

    def get(self, pump_id: int) -> Pump:
        """Resolve a pump by its identifier.

        Args:
            pump_id (int): Identifier printed on the pump.

        Returns:
            Pump: The live pump record.

        Raises:
            PumpNotFound: If ``pump_id`` is not registered.
        """
        try:
            return self._pumps[pump_id]
        except (KeyError, TypeError) as exc:
            log.warning("Pump lookup failed for id '%s'", pump_id)
            raise PumpNotFound(f"Unknown pump id: {pump_id}") from exc

    def assert_active(self, pump_id: int) -> Pump:
        pump = self.get(pump_id)
        if pump.status is not PumpStatus.ACTIVE:
            log.warning("Attempted sale on pump %s with status '%s'", pump_id, pump.status.value)
            raise PumpNotActive(f"Pump {pump_id} is not active (status: {pump.status.value})")
        return pump

    def set_status(self, pump_id: int, status: PumpStatus) -> Pump:
        """Change a pump's status.

        Every transition is allowed, including a self-transition.

        Raises:
            PumpNotFound: If ``pump_id`` is not registered.
            InvalidInput: If ``status`` is not a known :class:`PumpStatus`.
        """
        pump = self.get(pump_id)
        try:
            new_status = PumpStatus(status)
        except ValueError as exc:
            log.error("Unsupported pump status provided: %s", status)
            raise InvalidInput(f"Unsupported pump status: {status}") from exc
        previous = pump.status
        pump.status = new_status
        log.info("Pump %s status changed from '%s' to '%s'", pump_id, previous.value, new_status.value)
        return pump

    def record_usage(self, pump_id: int, quantity: Decimal, amount: Decimal) -> None:
        pump = self.get(pump_id)
        pump.transactions_count += 1
        pump.total_quantity += quantity
        pump.total_amount += amount


__all__ = ["Pump", "PumpRegistry"]
