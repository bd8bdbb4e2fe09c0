"""Shared pytest fixtures and utilities for gudang-recon tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from gudang_recon import constants, ledger, runtime, subjects  # noqa: E402
from gudang_recon.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_ACTOR = "admin"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "WarehouseName = {warehouse_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "DefaultActor = {default_actor}\n"
    "PageSize = {page_size}\n\n"
    "[Audit]\n"
    "Enabled = {audit_enabled}\n"
)

BASE_MOMENT = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    default_actor: str
    schema_version: str
    warehouse_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized warehouse workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "gudang.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        warehouse_name: str = "Gudang Pusat",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        default_actor: str = DEFAULT_ACTOR,
        page_size: int = 10,
        audit_enabled: bool = True,
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                warehouse_name=warehouse_name,
                schema_version=schema_version,
                default_actor=default_actor,
                page_size=page_size,
                audit_enabled="yes" if audit_enabled else "no",
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            default_actor=default_actor,
            schema_version=schema_version,
            warehouse_name=warehouse_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> runtime.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = runtime.load_runtime_context(config_file)
    runtime.ensure_schema_version(context)
    return context


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Return a callable producing strictly increasing timestamps."""

    ticks = iter(range(10_000))

    def _next() -> datetime:
        return BASE_MOMENT + timedelta(minutes=next(ticks))

    return _next


# ---------------------------------------------------------------------------
# Seeded subjects
# ---------------------------------------------------------------------------


@pytest.fixture
def stock_ref(runtime_context: runtime.RuntimeContext) -> subjects.SubjectRef:
    """Register product P1 at branch B1 with 100 units and return its ref."""

    subjects.add_stock_item(
        runtime_context,
        product_id="P1",
        branch_id="B1",
        product_name="Beras",
        quantity=Decimal("100"),
        timestamp=BASE_MOMENT - timedelta(days=1),
    )
    return subjects.SubjectRef.stock("P1", "B1")


@pytest.fixture
def debt_ref(runtime_context: runtime.RuntimeContext) -> subjects.SubjectRef:
    """Register debt D1 of 1000 and cash account K1 holding 5000."""

    ledger.add_debt(runtime_context, debt_id="D1", party="Toko Makmur", total_amount=Decimal("1000"))
    ledger.add_cash_account(runtime_context, account_id="K1", account_name="Kas Utama", balance=Decimal("5000"))
    return subjects.SubjectRef.debt("D1")


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="gudang-cli", description="gudang CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")
