"""Tests for the shop workbook bootstrap script."""

from __future__ import annotations

import openpyxl

from greentrack_ledger import setup_excel
from greentrack_ledger.constants import CollectionKind, SheetName
from greentrack_ledger.ledger_store import WorkbookLedgerStore


def test_run_from_config_creates_shop_workbook(config_factory):
    """The workbook lands under DataDir, named after the shop."""

    bundle = config_factory(create_workbook=False)

    path = setup_excel.run_from_config(bundle.config_path)

    assert path == bundle.workbook_path.resolve()
    assert set(openpyxl.load_workbook(path).sheetnames) == {member.value for member in SheetName}


def test_run_from_config_can_seed(config_factory):
    """--seed style runs load the starter inventory."""

    bundle = config_factory(create_workbook=False)

    path = setup_excel.run_from_config(bundle.config_path, seed=True)

    store = WorkbookLedgerStore(bundle.shop_name, path, create=False)
    assert {document["name"] for document in store.snapshot(CollectionKind.INVENTORY)} == {
        "Sour Diesel",
        "Blue Dream",
    }


def test_main_refuses_existing_workbook(config_factory, capsys):
    """An existing workbook is kept unless --force is given."""

    bundle = config_factory()

    assert setup_excel.main(["--config", str(bundle.config_path)]) == 1
    assert "--force" in capsys.readouterr().out
    assert setup_excel.main(["--config", str(bundle.config_path), "--force"]) == 0


def test_main_reports_missing_config(tmp_path, capsys):
    """A missing configuration file is reported with exit code 1."""

    assert setup_excel.main(["--config", str(tmp_path / "nope.ini")]) == 1
    assert "[ERROR]" in capsys.readouterr().out


def test_main_reports_success(config_factory, capsys):
    """A successful run prints where the workbook was written."""

    bundle = config_factory(create_workbook=False)

    assert setup_excel.main(["--config", str(bundle.config_path), "--seed"]) == 0
    assert "[SUCCESS]" in capsys.readouterr().out
