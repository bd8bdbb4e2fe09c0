"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from gudang_recon import constants, data_manager


SHEET = constants.SheetName.RECONCILIATIONS.value


def _reconciliation_row(record_id: str = "R1", status: str = "Pending") -> data_manager.ReconciliationRow:
    return data_manager.ReconciliationRow(
        record_id=record_id,
        subject_kind="STOCK",
        subject_key="P1@B1",
        authoritative_value=Decimal("100"),
        observed_value=Decimal("95"),
        status=status,
        note=None,
        created_at_iso="2024-05-01T08:00:00+00:00",
        resolved_at_iso=None,
        submitted_by="counter",
        resolved_by=None,
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent_directories(tmp_path, monkeypatch):
    """Auto-discovery should walk up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=gudang.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    """read_config should return a populated ConfigParser."""

    parser = data_manager.read_config(config_file)
    assert parser.get("System", "WarehouseName") == "Gudang Pusat"
    assert parser.get("Defaults", "DefaultActor") == "admin"


def test_read_config_missing_file_raises(tmp_path):
    """Missing files should propagate a FileNotFoundError."""

    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True, page_size=25, audit_enabled=False)
    parser = configparser.ConfigParser()
    parser.read(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.default_actor == "admin"
    assert settings.page_size == 25
    assert settings.audit_enabled is False


def test_parse_settings_applies_optional_defaults(tmp_path):
    """PageSize and the Audit section are optional."""

    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile=gudang.xlsx\nWarehouseName=G\nSchemaVersion=1.0.0\n"
        "[Defaults]\nDefaultActor=admin\n"
    )
    settings = data_manager.parse_settings(parser, base_path=tmp_path)
    assert settings.page_size == data_manager.DEFAULT_PAGE_SIZE
    assert settings.audit_enabled is True
    assert settings.log_dir is None
    assert settings.log_level == "INFO"


def test_parse_settings_reads_logging_section(tmp_path):
    """LogDir is anchored like DataFile and Level is normalized."""

    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile=gudang.xlsx\nWarehouseName=G\nSchemaVersion=1.0.0\n"
        "[Defaults]\nDefaultActor=admin\n"
        "[Logging]\nLogDir=logs\nLevel=debug\n"
    )
    settings = data_manager.parse_settings(parser, base_path=tmp_path)
    assert settings.log_dir == (tmp_path / "logs").resolve()
    assert settings.log_level == "DEBUG"


def test_parse_settings_rejects_unknown_log_level(tmp_path):
    """Only standard logging level names are accepted."""

    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile=gudang.xlsx\nWarehouseName=G\nSchemaVersion=1.0.0\n"
        "[Defaults]\nDefaultActor=admin\n"
        "[Logging]\nLevel=chatty\n"
    )
    with pytest.raises(ValueError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_rejects_non_positive_page_size(tmp_path):
    """A page size below one is a configuration error."""

    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile=gudang.xlsx\nWarehouseName=G\nSchemaVersion=1.0.0\n"
        "[Defaults]\nDefaultActor=admin\nPageSize=0\n"
    )
    with pytest.raises(ValueError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def test_open_workbook_returns_openpyxl_instance(workbook_factory):
    """open_workbook should hand back a loaded Workbook with every sheet."""

    workbook = data_manager.open_workbook(workbook_factory())
    assert isinstance(workbook, OpenpyxlWorkbook)
    for sheet_name in data_manager.SHEET_COLUMNS:
        assert sheet_name in workbook.sheetnames


def test_open_workbook_missing_file_raises(tmp_path):
    """Opening a non-existent workbook should raise FileNotFoundError."""

    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_open_workbook_missing_sheet_raises(tmp_path):
    """A workbook without the expected sheets is rejected."""

    path = tmp_path / "foreign.xlsx"
    openpyxl.Workbook().save(path)
    with pytest.raises(KeyError):
        data_manager.open_workbook(path)


def test_save_workbook_persists_changes(workbook_factory, tmp_path):
    """save_workbook should write the workbook to the requested destination."""

    workbook = data_manager.open_workbook(workbook_factory())
    data_manager.append_reconciliation(workbook, _reconciliation_row())
    destination = tmp_path / "copies" / "saved.xlsx"

    data_manager.save_workbook(workbook, destination)

    reloaded = data_manager.open_workbook(destination)
    rows = list(data_manager.iter_reconciliations(reloaded))
    assert [row.record_id for row in rows] == ["R1"]
    assert rows[0].observed_value == Decimal("95")


def test_refresh_workbook_discards_unsaved_changes(workbook_factory):
    """refresh_workbook should reload the on-disk state."""

    path = workbook_factory()
    workbook = data_manager.open_workbook(path)
    data_manager.append_reconciliation(workbook, _reconciliation_row())

    refreshed = data_manager.refresh_workbook(path)

    assert refreshed is not workbook
    assert list(data_manager.iter_reconciliations(refreshed)) == []


# ---------------------------------------------------------------------------
# Generic sheet helpers
# ---------------------------------------------------------------------------


def test_locate_row_returns_row_index(workbook_factory):
    """locate_row should return the 1-based index of the matching row."""

    workbook = data_manager.open_workbook(workbook_factory())
    data_manager.append_reconciliation(workbook, _reconciliation_row("R1"))
    data_manager.append_reconciliation(workbook, _reconciliation_row("R2"))

    assert data_manager.locate_row(workbook, SHEET, {"RecordID": "R2"}) == 3
    assert data_manager.locate_row(workbook, SHEET, {"RecordID": "R9"}) is None


def test_locate_row_unknown_column_raises(workbook_factory):
    """Criteria naming a column absent from the header are a programming error."""

    workbook = data_manager.open_workbook(workbook_factory())
    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, SHEET, {"Nope": "x"})


def test_update_row_missing_raises(workbook_factory):
    """update_row should refuse to write a row that does not exist."""

    workbook = data_manager.open_workbook(workbook_factory())
    with pytest.raises(KeyError):
        data_manager.update_row(workbook, SHEET, {"RecordID": "R9"}, field_values={"Status": "Approved"})


def test_compare_and_update_writes_when_expected_matches(workbook_factory):
    """A matching expectation lets the conditional write through."""

    workbook = data_manager.open_workbook(workbook_factory())
    data_manager.append_reconciliation(workbook, _reconciliation_row())

    written = data_manager.compare_and_update(
        workbook,
        SHEET,
        {"RecordID": "R1"},
        expected={"Status": "Pending"},
        field_values={"Status": "Approved"},
    )

    assert written is True
    row = data_manager.deserialize_reconciliation(data_manager.read_row(workbook, SHEET, {"RecordID": "R1"}))
    assert row.status == "Approved"


def test_compare_and_update_skips_when_expected_differs(workbook_factory):
    """A stale expectation leaves the row untouched."""

    workbook = data_manager.open_workbook(workbook_factory())
    data_manager.append_reconciliation(workbook, _reconciliation_row(status="Rejected"))

    written = data_manager.compare_and_update(
        workbook,
        SHEET,
        {"RecordID": "R1"},
        expected={"Status": "Pending"},
        field_values={"Status": "Approved"},
    )

    assert written is False
    row = data_manager.deserialize_reconciliation(data_manager.read_row(workbook, SHEET, {"RecordID": "R1"}))
    assert row.status == "Rejected"


def test_delete_row_removes_only_the_match(workbook_factory):
    """delete_row should drop the matching row and report absence otherwise."""

    workbook = data_manager.open_workbook(workbook_factory())
    data_manager.append_reconciliation(workbook, _reconciliation_row("R1"))
    data_manager.append_reconciliation(workbook, _reconciliation_row("R2"))

    assert data_manager.delete_row(workbook, SHEET, {"RecordID": "R1"}) is True
    assert data_manager.delete_row(workbook, SHEET, {"RecordID": "R1"}) is False
    assert [row.record_id for row in data_manager.iter_reconciliations(workbook)] == ["R2"]


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def test_serialize_reconciliation_has_no_variance_column():
    """Variance is derived on read; the sheet only stores both values."""

    values = data_manager.serialize_reconciliation(_reconciliation_row())
    assert len(values) == len(data_manager.SHEET_COLUMNS[SHEET])
    assert "Variance" not in data_manager.SHEET_COLUMNS[SHEET]


def test_deserialize_debt_coerces_numbers():
    """Numeric cells should become Decimals and ids strings."""

    row = data_manager.deserialize_debt((42, "Toko", 1000, 250.5, 749.5, "Cicil", "2024-05-01T08:00:00+00:00"))
    assert row.debt_id == "42"
    assert row.total_amount == Decimal("1000")
    assert row.paid_amount == Decimal("250.5")
    assert row.status == "Cicil"


def test_deserialize_stock_constructs_dataclass():
    """deserialize_stock should create a StockRow instance."""

    row = data_manager.deserialize_stock(("P1", "B1", "Beras", 100, "kg"))
    assert row == data_manager.StockRow("P1", "B1", "Beras", Decimal("100"), "kg")
