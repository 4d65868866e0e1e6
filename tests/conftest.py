"""Shared pytest fixtures and utilities for fuel station tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from fuel_station import cli, constants, core_logic, data_manager  # noqa: E402
from fuel_station.setup_station import create_station_config  # noqa: E402

TEST_STATION_NAME = "Test Station"


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    station_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the repository root path."""

    return PROJECT_ROOT


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that writes station configs on demand.

    ``replacements`` maps exact lines of the default file to their substitutes,
    with ``None`` deleting the line.
    """

    def _create_config(
        *,
        station_name: str = TEST_STATION_NAME,
        timezone: str | None = "UTC",
        replacements: dict[str, str | None] | None = None,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        config_path = create_station_config(
            bundle_dir / "config.ini",
            station_name=station_name,
            timezone=timezone,
        )
        if replacements:
            lines = []
            for line in config_path.read_text(encoding="utf-8").splitlines():
                if line in replacements:
                    if replacements[line] is None:
                        continue
                    line = replacements[line]
                lines.append(line)
            config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return ConfigBundle(directory=bundle_dir, config_path=config_path, station_name=station_name)

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.StationSettings:
    """Provide the reference station data pinned to UTC."""

    return data_manager.StationSettings(
        station_name=TEST_STATION_NAME,
        prices=dict(constants.DEFAULT_PRICES),
        opening_stock=dict(constants.DEFAULT_OPENING_STOCK),
        pump_assignments=dict(constants.DEFAULT_PUMP_ASSIGNMENTS),
        timezone=UTC,
        report_dir=tmp_path / "reports",
    )


@pytest.fixture
def context(settings: data_manager.StationSettings) -> core_logic.RuntimeContext:
    """Assemble a fresh runtime context from the injected settings."""

    return core_logic.build_runtime_context(settings)


@pytest.fixture
def moment() -> Callable[..., datetime]:
    """Build aware UTC datetimes on a fixed business day."""

    def _build(hour: int = 10, minute: int = 30, second: int = 0) -> datetime:
        return datetime(2026, 10, 18, hour, minute, second, tzinfo=UTC)

    return _build


@pytest.fixture
def sell(context: core_logic.RuntimeContext) -> Callable[..., object]:
    """Shortcut for recording a sale against the shared context."""

    def _sell(
        pump_id: int = 1,
        *,
        quantity: str | None = None,
        amount: str | None = None,
        vehicle_type: constants.VehicleType = constants.VehicleType.FOUR_WHEELER,
        payment_mode: constants.PaymentMode = constants.PaymentMode.CASH,
        timestamp: datetime | None = None,
    ):
        return core_logic.record_sale(
            context,
            core_logic.SaleCommand(
                pump_id=pump_id,
                vehicle_type=vehicle_type,
                payment_mode=payment_mode,
                quantity=Decimal(quantity) if quantity is not None else None,
                amount=Decimal(amount) if amount is not None else None,
                timestamp=timestamp,
            ),
        )

    return _sell


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh session parser instance for tests."""

    return cli.build_session_parser()


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def session(
    context: core_logic.RuntimeContext,
) -> Callable[[str], int]:
    """Run a multi-line session script against the shared context."""

    def _run(script: str) -> int:
        parser = cli.build_session_parser()
        table = cli.configure_subcommands(parser)
        return cli.run_session(context, script.splitlines(), parser, table)

    return _run


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]
