"""Unit tests for the transaction ledger and id generator."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from fuel_station.constants import FuelType, PaymentMode, VehicleType
from fuel_station.errors import CapacityExpansionFailed, StationError
from fuel_station.ledger import TransactionIdGenerator, TransactionLedger, TransactionRecord


def _record(index: int) -> TransactionRecord:
    return TransactionRecord(
        transaction_id=f"TXN{index:05d}",
        timestamp=datetime(2026, 10, 18, 9, 0, tzinfo=UTC),
        pump_id=1,
        fuel_type=FuelType.PETROL,
        vehicle_type=VehicleType.TWO_WHEELER,
        quantity=Decimal("1"),
        amount=Decimal("102.50"),
        payment_mode=PaymentMode.CASH,
    )


# ---------------------------------------------------------------------------
# Identifier generation
# ---------------------------------------------------------------------------


def test_next_id_embeds_date_hour_and_sequence():
    generator = TransactionIdGenerator()

    first = generator.next_id(datetime(2026, 10, 18, 14, 5, 59))
    second = generator.next_id(datetime(2026, 10, 18, 14, 5, 59))

    assert first == "TXN202610181400001"
    assert second == "TXN202610181400002"
    assert generator.sequence == 2


def test_next_id_is_unique_within_the_same_second():
    """Many sales in one second must still get distinct ids."""

    generator = TransactionIdGenerator()
    when = datetime(2026, 10, 18, 23, 59, 59)

    ids = {generator.next_id(when) for _ in range(500)}

    assert len(ids) == 500


def test_next_id_survives_clock_moving_backwards():
    generator = TransactionIdGenerator()

    late = generator.next_id(datetime(2026, 10, 18, 15))
    early = generator.next_id(datetime(2026, 10, 18, 14))

    assert late != early
    assert early.endswith("00002")


def test_next_id_without_clock_uses_zero_prefix():
    generator = TransactionIdGenerator()

    assert generator.next_id(None) == "TXN000000000000001"


def test_next_id_widens_sequence_past_five_digits():
    generator = TransactionIdGenerator()
    generator._sequence = 99999

    assert generator.next_id(datetime(2026, 1, 2, 3)).endswith("100000")


# ---------------------------------------------------------------------------
# Ledger storage
# ---------------------------------------------------------------------------


def test_new_ledger_is_empty_with_initial_capacity():
    ledger = TransactionLedger()

    assert ledger.capacity == 50
    assert ledger.count() == 0
    assert list(ledger.all()) == []


@pytest.mark.parametrize("kwargs", [{"initial_capacity": 0}, {"fallback_increment": 0}])
def test_ledger_rejects_non_positive_sizes(kwargs):
    with pytest.raises(ValueError):
        TransactionLedger(**kwargs)


def test_append_preserves_insertion_order_and_positions():
    ledger = TransactionLedger(initial_capacity=2)

    positions = [ledger.append(_record(index)) for index in range(5)]

    assert positions == [0, 1, 2, 3, 4]
    assert [record.transaction_id for record in ledger] == [f"TXN{index:05d}" for index in range(5)]
    assert ledger.get(3).transaction_id == "TXN00003"


def test_ledger_grows_well_beyond_initial_capacity():
    """Appending ten times the initial capacity keeps every record in order."""

    ledger = TransactionLedger(initial_capacity=50)
    records = [_record(index) for index in range(501)]

    for record in records:
        ledger.append(record)

    assert ledger.count() == 501
    assert ledger.capacity == 800
    assert list(ledger.all()) == records
    assert [record.transaction_id for record in ledger.all()] == [f"TXN{index:05d}" for index in range(501)]


def test_ledger_keeps_every_record_when_growth_uses_fallback(monkeypatch):
    """A failed first doubling falls back once and later doublings resume."""

    ledger = TransactionLedger(initial_capacity=50, fallback_increment=50)
    original = TransactionLedger._allocate
    failures = []

    def _fail_first_doubling(self, size):
        if size == 50 and not failures and self.capacity == 50:
            failures.append(size)
            raise MemoryError
        return original(self, size)

    monkeypatch.setattr(TransactionLedger, "_allocate", _fail_first_doubling)
    records = [_record(index) for index in range(501)]

    for record in records:
        ledger.append(record)

    assert failures == [50]
    assert ledger.count() == 501
    assert ledger.capacity == 800
    assert list(ledger.all()) == records
    assert [record.transaction_id for record in ledger.all()] == [f"TXN{index:05d}" for index in range(501)]


def test_get_out_of_range_raises_index_error():
    ledger = TransactionLedger()
    ledger.append(_record(0))

    with pytest.raises(IndexError):
        ledger.get(1)
    with pytest.raises(IndexError):
        ledger.get(-1)


def test_all_is_a_stable_snapshot_during_appends():
    """Records appended after the iterator was created should not be seen."""

    ledger = TransactionLedger(initial_capacity=2)
    ledger.append(_record(0))
    ledger.append(_record(1))

    iterator = ledger.all()
    first = next(iterator)
    ledger.append(_record(2))
    rest = list(iterator)

    assert first.transaction_id == "TXN00000"
    assert [record.transaction_id for record in rest] == ["TXN00001"]
    assert ledger.count() == 3


def test_growth_falls_back_to_fixed_increment(monkeypatch, caplog):
    """A failed doubling should retry with the fallback increment."""

    ledger = TransactionLedger(initial_capacity=4, fallback_increment=3)
    for index in range(4):
        ledger.append(_record(index))

    original = TransactionLedger._allocate

    def _fail_large(self, size):
        if size > 3:
            raise MemoryError
        return original(self, size)

    monkeypatch.setattr(TransactionLedger, "_allocate", _fail_large)

    with caplog.at_level(logging.ERROR, logger="fuel_station"):
        ledger.append(_record(4))

    assert ledger.capacity == 7
    assert ledger.count() == 5
    assert any("Failed to expand" in message for message in caplog.messages)


def test_growth_failure_is_fatal_and_not_recoverable(monkeypatch, caplog):
    """When both growth attempts fail the ledger raises a non-station error."""

    ledger = TransactionLedger(initial_capacity=1)
    ledger.append(_record(0))

    def _always_fail(self, size):
        raise MemoryError

    monkeypatch.setattr(TransactionLedger, "_allocate", _always_fail)

    with caplog.at_level(logging.CRITICAL, logger="fuel_station"):
        with pytest.raises(CapacityExpansionFailed) as excinfo:
            ledger.append(_record(1))

    assert not isinstance(excinfo.value, StationError)
    assert ledger.count() == 1
    assert any(record.levelno == logging.CRITICAL for record in caplog.records)


def test_release_drops_storage_and_blocks_appends():
    ledger = TransactionLedger()
    ledger.append(_record(0))

    ledger.release()
    ledger.release()

    assert ledger.capacity == 0
    assert ledger.count() == 0
    with pytest.raises(CapacityExpansionFailed):
        ledger.append(_record(1))


def test_transaction_record_is_immutable():
    record = _record(0)

    with pytest.raises(AttributeError):
        record.amount = Decimal("0")  # type: ignore[misc]
