"""Unit tests for the pump registry."""

from __future__ import annotations

from decimal import Decimal

import pytest

from fuel_station import constants
from fuel_station.constants import FuelType, PumpStatus
from fuel_station.errors import InvalidInput, PumpNotActive, PumpNotFound, StationError
from fuel_station.pumps import Pump, PumpRegistry


@pytest.fixture
def registry() -> PumpRegistry:
    return PumpRegistry.from_assignments(constants.DEFAULT_PUMP_ASSIGNMENTS)


def test_from_assignments_creates_active_pumps_in_id_order(registry):
    """Pumps should be ordered by id, start Active and have zero counters."""

    pumps = list(registry)
    assert [pump.pump_id for pump in pumps] == [1, 2, 3, 4, 5, 6]
    assert [pump.fuel_type for pump in pumps] == [
        FuelType.PETROL,
        FuelType.PETROL,
        FuelType.DIESEL,
        FuelType.DIESEL,
        FuelType.CNG,
        FuelType.CNG,
    ]
    assert all(pump.status is PumpStatus.ACTIVE for pump in pumps)
    assert all(pump.transactions_count == 0 for pump in pumps)


def test_registry_rejects_duplicate_ids():
    with pytest.raises(ValueError):
        PumpRegistry([Pump(1, FuelType.PETROL), Pump(1, FuelType.DIESEL)])


def test_get_unknown_pump_raises_not_found(registry):
    """Unknown ids should raise a recoverable lookup error."""

    with pytest.raises(PumpNotFound) as excinfo:
        registry.get(99)
    assert isinstance(excinfo.value, StationError)
    assert isinstance(excinfo.value, LookupError)


@pytest.mark.parametrize("status", [PumpStatus.INACTIVE, PumpStatus.MAINTENANCE])
def test_assert_active_rejects_non_active_pump(registry, status):
    registry.set_status(3, status)

    with pytest.raises(PumpNotActive, match=status.value):
        registry.assert_active(3)


def test_set_status_allows_any_transition(registry):
    """Every status may follow every other, including itself."""

    for status in (PumpStatus.MAINTENANCE, PumpStatus.MAINTENANCE, PumpStatus.INACTIVE, PumpStatus.ACTIVE):
        assert registry.set_status(2, status).status is status


def test_set_status_accepts_raw_value(registry):
    assert registry.set_status(2, "Maintenance").status is PumpStatus.MAINTENANCE  # type: ignore[arg-type]


def test_set_status_rejects_unknown_status(registry):
    with pytest.raises(InvalidInput):
        registry.set_status(2, "Broken")  # type: ignore[arg-type]
    assert registry.get(2).status is PumpStatus.ACTIVE


def test_record_usage_accumulates_counters(registry):
    registry.record_usage(5, Decimal("10"), Decimal("750.00"))
    registry.record_usage(5, Decimal("2.5"), Decimal("187.50"))

    pump = registry.get(5)
    assert pump.transactions_count == 2
    assert pump.total_quantity == Decimal("12.5")
    assert pump.total_amount == Decimal("937.50")


def test_status_change_keeps_counters(registry):
    """Putting a pump into maintenance must not reset its history."""

    registry.record_usage(1, Decimal("4"), Decimal("410.00"))
    registry.set_status(1, PumpStatus.MAINTENANCE)

    assert registry.get(1).transactions_count == 1
    assert registry.get(1).total_amount == Decimal("410.00")
