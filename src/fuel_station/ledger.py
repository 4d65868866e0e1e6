"""Append-only transaction ledger and transaction identifier generation.

The ledger is the system of record for sales. Records are immutable
dataclasses stored in insertion order in a pre-sized slot list. When the
slots run out the ledger doubles its capacity; if that allocation fails it
retries with a small fixed increment, and only when both fail does it raise
:class:`~fuel_station.errors.CapacityExpansionFailed`, which callers must
treat as fatal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterator, List, Optional, cast

from . import log
from .constants import (
    INITIAL_LEDGER_CAPACITY,
    LEDGER_FALLBACK_INCREMENT,
    TRANSACTION_ID_PREFIX,
    FuelType,
    PaymentMode,
    VehicleType,
)
from .errors import CapacityExpansionFailed


@dataclass(frozen=True)
class TransactionRecord:
    """Immutable record of one completed sale.

    ``pump_id`` and ``fuel_type`` are copied by value at creation time so the
    record stays valid whatever happens to the pump afterwards.
    """

    transaction_id: str
    timestamp: datetime
    pump_id: int
    fuel_type: FuelType
    vehicle_type: VehicleType
    quantity: Decimal
    amount: Decimal
    payment_mode: PaymentMode


class TransactionIdGenerator:
    """Produce identifiers that are unique for the lifetime of the process.

    Identifiers look like ``TXN2026101814`` followed by a sequence number of
    at least five digits. The date/hour prefix is fixed width and the sequence
    never repeats, so two identifiers can only collide if the counter does,
    which it cannot: it is never reset, not even when the clock moves back.
    """

    def __init__(self, prefix: str = TRANSACTION_ID_PREFIX) -> None:
        self.prefix = prefix
        self._sequence = 0

    @property
    def sequence(self) -> int:
        return self._sequence

    def next_id(self, when: Optional[datetime] = None) -> str:
        """Allocate the next identifier.

        Args:
            when (datetime | None): Moment whose date and hour form the prefix.
                When ``None`` the date/hour portion is zero-filled.

        Returns:
            str: Identifier formed as ``{prefix}{YYYYMMDDHH}{sequence:05d}``.
        """
        self._sequence += 1
        if when is None:
            stamp = "0" * 10
        else:
            stamp = f"{when.year % 10000:04d}{when.month:02d}{when.day:02d}{when.hour:02d}"
        return f"{self.prefix}{stamp}{self._sequence:05d}"


class TransactionLedger:
    """Ordered, append-only store of :class:`TransactionRecord` objects."""

    def __init__(
        self,
        initial_capacity: int = INITIAL_LEDGER_CAPACITY,
        fallback_increment: int = LEDGER_FALLBACK_INCREMENT,
    ) -> None:
        if initial_capacity < 1:
            raise ValueError("Initial ledger capacity must be at least 1")
        if fallback_increment < 1:
            raise ValueError("Ledger fallback increment must be at least 1")
        self.fallback_increment = fallback_increment
        self._slots: List[Optional[TransactionRecord]] = self._allocate(initial_capacity)
        self._capacity = initial_capacity
        self._count = 0
        log.debug("Allocated transaction ledger with capacity %d", initial_capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def count(self) -> int:
        return self._count

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[TransactionRecord]:
        return self.all()

    def all(self) -> Iterator[TransactionRecord]:
        """Lazily iterate the records present when the iterator was created.

        The bound is captured up front, so appends made while a consumer is
        still iterating are not observed and never invalidate the iterator.
        Stored records are never replaced, which makes reading them lazily
        safe.
        """
        slots = self._slots
        count = self._count

        def _iterate() -> Iterator[TransactionRecord]:
            for position in range(count):
                yield cast(TransactionRecord, slots[position])

        return _iterate()

    def get(self, position: int) -> TransactionRecord:
        if not 0 <= position < self._count:
            raise IndexError(f"Ledger position out of range: {position}")
        return cast(TransactionRecord, self._slots[position])

    def append(self, record: TransactionRecord) -> int:
        """Store ``record`` after the last entry and return its position.

        Args:
            record (TransactionRecord): Completed sale to store.

        Returns:
            int: Zero-based position of the stored record.

        Raises:
            CapacityExpansionFailed: If the ledger is full and can neither
                double nor grow by the fallback increment.
        """
        self._ensure_capacity()
        position = self._count
        self._slots[position] = record
        self._count += 1
        return position

    def release(self) -> None:
        """Drop the backing storage. Safe to call more than once."""
        if self._capacity:
            log.info("Releasing transaction ledger (%d records)", self._count)
        self._slots = []
        self._capacity = 0
        self._count = 0

    def _ensure_capacity(self) -> None:
        if self._count < self._capacity:
            return
        if self._capacity == 0:
            raise CapacityExpansionFailed("Transaction ledger has been released")

        target = self._capacity * 2
        try:
            extension = self._allocate(target - self._capacity)
        except MemoryError:
            log.error("Failed to expand transaction storage to %d records", target)
            target = self._capacity + self.fallback_increment
            try:
                extension = self._allocate(target - self._capacity)
            except MemoryError as exc:
                log.critical(
                    "Transaction storage expansion failed at %d records",
                    self._capacity,
                )
                raise CapacityExpansionFailed(
                    f"Unable to grow transaction ledger beyond {self._capacity} records"
                ) from exc

        # Extend in place so iterators created earlier keep seeing the same list.
        self._slots.extend(extension)
        self._capacity = target
        log.debug("Expanded transaction ledger to capacity %d", target)

    def _allocate(self, size: int) -> List[Optional[TransactionRecord]]:
        return [None] * size


__all__ = ["TransactionRecord", "TransactionIdGenerator", "TransactionLedger"]
