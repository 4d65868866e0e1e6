"""Derived sales accumulators kept in step with the transaction ledger.

The accumulators are a cache: the ledger stays the source of truth and
:meth:`AggregationEngine.reconcile` can rescan it to prove the cache is
consistent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from . import log
from .constants import HOURS_PER_DAY, FuelType, PaymentMode
from .ledger import TransactionRecord
from .pumps import PumpRegistry


@dataclass
class Totals:
    """Quantity and amount accumulated for one bucket."""

    quantity: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")

    def add(self, quantity: Decimal, amount: Decimal) -> None:
        self.quantity += quantity
        self.amount += amount

    @property
    def is_empty(self) -> bool:
        return self.quantity == 0 and self.amount == 0


def hour_of_day(timestamp: datetime, timezone: Optional[tzinfo] = None) -> Optional[int]:
    """Return the hour (0-23) of ``timestamp`` in ``timezone``.

    With no ``timezone`` the system local zone is used. ``None`` is returned
    when the clock conversion fails.
    """
    try:
        localized = timestamp.astimezone(timezone) if timezone is not None else timestamp.astimezone()
    except (OverflowError, OSError, ValueError) as exc:
        log.warning("Unable to derive hour of day from %r: %s", timestamp, exc)
        return None
    return localized.hour


class AggregationEngine:
    """Fuel-wise, payment-wise and hour-wise accumulators plus pump counters.

    Pump counters live on the pump records themselves; the engine updates
    them through :meth:`PumpRegistry.record_usage`.
    """

    def __init__(self, pumps: PumpRegistry, timezone: Optional[tzinfo] = None) -> None:
        self.pumps = pumps
        self.timezone = timezone
        self.fuel_totals: Dict[FuelType, Totals] = {fuel: Totals() for fuel in FuelType}
        self.payment_totals: Dict[PaymentMode, Decimal] = {mode: Decimal("0") for mode in PaymentMode}
        self.hourly_totals: List[Totals] = [Totals() for _ in range(HOURS_PER_DAY)]

    def observe(self, record: TransactionRecord) -> None:
        """Fold one committed sale into every accumulator.

        Called exactly once per sale, after stock deduction and ledger append
        have both succeeded. The hour is derived first; if that fails only the
        hour-wise bucket is skipped.
        """
        hour = hour_of_day(record.timestamp, self.timezone)
        self.fuel_totals[record.fuel_type].add(record.quantity, record.amount)
        self.payment_totals[record.payment_mode] += record.amount
        if hour is not None:
            self.hourly_totals[hour].add(record.quantity, record.amount)
        self.pumps.record_usage(record.pump_id, record.quantity, record.amount)

    def hourly_breakdown(self) -> Dict[int, Totals]:
        """Return a sparse hour-to-totals mapping holding only non-zero hours."""
        return {
            hour: Totals(totals.quantity, totals.amount)
            for hour, totals in enumerate(self.hourly_totals)
            if not totals.is_empty
        }

    def payment_breakdown(self) -> Dict[PaymentMode, Decimal]:
        return dict(self.payment_totals)

    def fuel_breakdown(self) -> Dict[FuelType, Totals]:
        return {fuel: Totals(totals.quantity, totals.amount) for fuel, totals in self.fuel_totals.items()}

    def reconcile(self, records: Iterable[TransactionRecord]) -> List[str]:
        """Rescan ``records`` and report every bucket that disagrees.

        Args:
            records (Iterable[TransactionRecord]): Full ledger contents in
                insertion order.

        Returns:
            list[str]: Human readable discrepancy descriptions; empty when the
                accumulators match the ledger.
        """
        fuel_expected: Dict[FuelType, Totals] = {fuel: Totals() for fuel in FuelType}
        payment_expected: Dict[PaymentMode, Decimal] = {mode: Decimal("0") for mode in PaymentMode}
        hourly_expected: List[Totals] = [Totals() for _ in range(HOURS_PER_DAY)]
        pump_expected: Dict[int, Totals] = {pump.pump_id: Totals() for pump in self.pumps}
        pump_counts: Dict[int, int] = {pump.pump_id: 0 for pump in self.pumps}
        hourly_skipped = False

        for record in records:
            fuel_expected[record.fuel_type].add(record.quantity, record.amount)
            payment_expected[record.payment_mode] += record.amount
            hour = hour_of_day(record.timestamp, self.timezone)
            if hour is None:
                hourly_skipped = True
            else:
                hourly_expected[hour].add(record.quantity, record.amount)
            pump_expected.setdefault(record.pump_id, Totals()).add(record.quantity, record.amount)
            pump_counts[record.pump_id] = pump_counts.get(record.pump_id, 0) + 1

        problems: List[str] = []
        for fuel, expected in fuel_expected.items():
            actual = self.fuel_totals[fuel]
            if actual != expected:
                problems.append(
                    f"Fuel {fuel.value}: aggregated {actual.quantity}/{actual.amount}, "
                    f"ledger {expected.quantity}/{expected.amount}"
                )
        for mode, expected_amount in payment_expected.items():
            if self.payment_totals[mode] != expected_amount:
                problems.append(
                    f"Payment {mode.value}: aggregated {self.payment_totals[mode]}, ledger {expected_amount}"
                )
        if not hourly_skipped:
            for hour, expected in enumerate(hourly_expected):
                if self.hourly_totals[hour] != expected:
                    problems.append(f"Hour {hour:02d}: aggregated and ledger totals differ")
        for pump in self.pumps:
            expected = pump_expected.get(pump.pump_id, Totals())
            if (
                pump.transactions_count != pump_counts.get(pump.pump_id, 0)
                or pump.total_quantity != expected.quantity
                or pump.total_amount != expected.amount
            ):
                problems.append(
                    f"Pump {pump.pump_id}: counters {pump.transactions_count}/"
                    f"{pump.total_quantity}/{pump.total_amount} differ from ledger"
                )
        return problems


__all__ = ["Totals", "AggregationEngine", "hour_of_day"]
