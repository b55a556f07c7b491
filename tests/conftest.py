"""Shared pytest fixtures and utilities for pulley ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from pulley_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from pulley_ledger.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "CompanyName = {company_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "DefaultRate = {default_rate}\n"
    "BoreRate = {bore_rate}\n"
    "Currency = {currency}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    company_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


def seed_settings_row(
    *,
    company_name: str = "Test Pulleys",
    default_rate: Decimal = Decimal("6"),
    bore_rate: Decimal = Decimal("50"),
    currency: str = "Rs.",
) -> data_manager.SettingsRow:
    return data_manager.SettingsRow(
        company_name=company_name,
        company_address=None,
        gst_no=None,
        default_rate=default_rate,
        bore_rate=bore_rate,
        currency=currency,
    )


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized ledger workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "pulley_ledger.xlsx",
        settings: data_manager.SettingsRow | None = None,
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, settings=settings or seed_settings_row(), overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def ledger_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh ledger workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        company_name: str = "Test Pulleys",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        default_rate: str = "6",
        bore_rate: str = "50",
        currency: str = "Rs.",
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(
            subdir=f"bundle_{bundle_id}",
            settings=seed_settings_row(
                company_name=company_name,
                default_rate=Decimal(default_rate),
                bore_rate=Decimal(bore_rate),
                currency=currency,
            ),
        )
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                company_name=company_name,
                schema_version=schema_version,
                default_rate=default_rate,
                bore_rate=bore_rate,
                currency=currency,
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            company_name=company_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="pulley-cli", description="Pulley CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


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


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config_settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "pulley_ledger.xlsx",
        company_name="Test Pulleys",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def valuation_settings() -> core_logic.ValuationSettings:
    return core_logic.ValuationSettings(
        company_name="Test Pulleys",
        default_rate=Decimal("6"),
        bore_rate_per_unit=Decimal("50"),
        currency_symbol="Rs.",
    )


@pytest.fixture
def workbook() -> Mock:
    """Return a mock workbook object for business logic tests."""

    return Mock(name="workbook")


@pytest.fixture
def acme() -> core_logic.Client:
    return core_logic.Client(id="acme-1", name="Acme Co", contact="98450 11111", default_rate=Decimal("5"))


@pytest.fixture
def context(
    config_settings: data_manager.ConfigSettings,
    workbook: Mock,
    valuation_settings: core_logic.ValuationSettings,
    acme: core_logic.Client,
) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and a workbook mock."""

    return core_logic.RuntimeContext(
        config=config_settings,
        workbook=workbook,
        settings=valuation_settings,
        clients={acme.id: acme},
    )


@pytest.fixture
def make_record() -> Callable[..., core_logic.TransactionRecord]:
    """Factory building committed records with sensible defaults."""

    counter = {"value": 0}

    def _make(
        *,
        record_id: str | None = None,
        when: str = "2024-03-05",
        direction: str = "IN",
        client_id: str = "acme-1",
        client_name: str = "Acme Co",
        spec: tuple = (10, 2, "B", "V"),
        quantity: object = 20,
        rate: object = 5,
        bore_units: object = 0,
        bore_rate: object = 50,
        remarks: str | None = None,
    ) -> core_logic.TransactionRecord:
        counter["value"] += 1
        return core_logic.TransactionRecord(
            id=record_id or f"R{counter['value']:03d}",
            date=when,
            direction=direction,
            client_id=client_id,
            client_name=client_name,
            spec=core_logic.PulleySpec(*spec),
            quantity=quantity,
            rate=rate,
            bore_units=bore_units,
            bore_rate_per_unit=bore_rate,
            remarks=remarks,
        )

    return _make


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
