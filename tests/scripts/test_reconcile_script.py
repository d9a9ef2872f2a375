"""
reconcile_stock.py command-line tests.

Runs ``main()`` in-process against a throwaway SQLite file.

Verifies:
- Exit 0 and a PASSED table for a warehouse whose stock is fully documented
- Exit 1 and a JSON report for undocumented stock
- Exit 2 for unknown warehouse codes, a database without tables or an
  unusable database URL
"""

import importlib.util
import json
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from stock_kernel.db import engine as engine_module
from stock_kernel.db.engine import build_engine, create_tables
from stock_kernel.domain.values import DryingStatus, LedgerReference, Measurement
from stock_kernel.models.warehouse import Warehouse, WoodType
from stock_kernel.services.ledger_service import StockLedger
from stock_kernel.services.receipt_service import ReceiptService

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "reconcile_stock.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("reconcile_stock", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def script(monkeypatch):
    """The script module; the suite's global engine is restored afterwards."""
    monkeypatch.setattr(engine_module, "_engine", engine_module._engine)
    monkeypatch.setattr(engine_module, "_SessionFactory", engine_module._SessionFactory)
    original = engine_module._engine
    yield _load_script()
    if engine_module._engine is not None and engine_module._engine is not original:
        engine_module._engine.dispose()


@pytest.fixture
def database_url(tmp_path, actor):
    url = f"sqlite:///{tmp_path / 'stock.db'}"
    engine = build_engine(url)
    create_tables(engine)
    with Session(engine, expire_on_commit=False) as session:
        main = Warehouse(code="WH-MAIN", name="Main", stock_control_enabled=True)
        branch = Warehouse(code="WH-BRANCH", name="Branch", stock_control_enabled=True)
        mninga = WoodType(name="Mninga")
        session.add_all([main, branch, mninga])
        session.flush()

        receipts = ReceiptService(session)
        lot = receipts.create_receipt("LOT-CLI-1", mninga.id, actor=actor, warehouse_id=main.id)
        receipts.record_measurements(lot.id, [Measurement('2"', 40)], actor=actor)
        receipts.complete_receipt(lot.id, actor=actor)

        StockLedger(session).adjust(
            branch.id, mninga.id, '2"', DryingStatus.NOT_DRIED, 7,
            actor=actor, reason="Found on site", reference=LedgerReference("ADJUSTMENT"),
        )
        session.commit()
    engine.dispose()
    return url


class TestReconcileScript:
    def test_consistent_warehouse(self, script, database_url, capsys):
        code = script.main(["--database-url", database_url, "--warehouse", "WH-MAIN"])

        out = capsys.readouterr().out
        assert code == 0
        assert "WH-MAIN" in out
        assert "Status: PASSED" in out

    def test_undocumented_stock_as_json(self, script, database_url, capsys):
        code = script.main(
            ["--database-url", database_url, "--warehouse", "WH-BRANCH", "--wood-type", "Mninga", "--json"]
        )

        report = json.loads(capsys.readouterr().out)
        assert code == 1
        assert report["status"] == "failed"
        assert report["rows"][0]["actual_stock"] == 7
        assert report["rows"][0]["discrepancy"] == 7

    def test_unknown_warehouse(self, script, database_url, capsys):
        code = script.main(["--database-url", database_url, "--warehouse", "WH-NOWHERE"])

        assert code == 2
        assert "ERROR" in capsys.readouterr().err

    def test_database_without_tables(self, script, tmp_path, capsys):
        empty_url = f"sqlite:///{tmp_path / 'empty.db'}"

        code = script.main(["--database-url", empty_url, "--warehouse", "WH-MAIN"])

        assert code == 2
        assert "no such table" in capsys.readouterr().err

    def test_unusable_database_url(self, script, capsys):
        code = script.main(["--database-url", "nosuchdialect://x", "--warehouse", "WH-MAIN"])

        assert code == 2
