"""
Reconciliation tests.

Verifies:
- expected = receipts - transfers_out + transfers_in per (wood type, thickness)
- Only COMPLETED documents count
- Stock held without a backing document shows as a discrepancy
- A StockEntry edited behind the ledger's back fails the movement-log check
- Reconciliation never changes stock
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from sqlalchemy import select

from stock_kernel.domain.reconciliation import (
    CellTotal,
    CheckStatus,
    FindingCode,
    ReceiptContribution,
    ReconciliationChecker,
    TransferContribution,
    TransferDirection,
)
from stock_kernel.domain.values import TransferItemInput
from stock_kernel.exceptions import WarehouseNotFoundError
from stock_kernel.models.stock import StockEntry
from stock_kernel.services.reconciliation_service import ReconciliationService

CHECKED_AT = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


class TestChecker:
    """Pure engine, no database."""

    def setup_method(self):
        self.checker = ReconciliationChecker()
        self.teak = uuid4()
        self.pine = uuid4()

    def _reconcile(self, receipts=(), transfers=(), actual=(), logged=None):
        return self.checker.reconcile(
            uuid4(),
            receipts=receipts,
            transfers=transfers,
            actual=actual,
            logged=actual if logged is None else logged,
            checked_at=CHECKED_AT,
            wood_type_names={self.teak: "Teak"},
        )

    def test_consistent_bucket(self):
        report = self._reconcile(
            receipts=[ReceiptContribution(uuid4(), "L1", self.teak, '2"', 650)],
            transfers=[TransferContribution(uuid4(), "T1", self.teak, '2"', 600, TransferDirection.OUT)],
            actual=[CellTotal(self.teak, '2"', 50)],
        )
        assert report.status is CheckStatus.PASSED
        row = report.rows[0]
        assert (row.expected_stock, row.actual_stock, row.discrepancy) == (50, 50, 0)
        assert row.wood_type_name == "Teak"

    def test_discrepancy_is_actual_minus_expected(self):
        report = self._reconcile(
            receipts=[ReceiptContribution(uuid4(), "L1", self.teak, '2"', 650)],
            transfers=[TransferContribution(uuid4(), "T1", self.teak, '2"', 600, TransferDirection.OUT)],
            actual=[CellTotal(self.teak, '2"', 119)],
        )
        assert report.status is CheckStatus.FAILED
        assert report.discrepancies()[0].discrepancy == 69
        finding = report.findings[0]
        assert finding.code is FindingCode.STOCK_DISCREPANCY
        assert (finding.expected, finding.actual) == (50, 119)
        assert "+69" in finding.message

    def test_transfers_in_add(self):
        report = self._reconcile(
            transfers=[
                TransferContribution(uuid4(), "T1", self.pine, '1"', 30, TransferDirection.IN),
                TransferContribution(uuid4(), "T2", self.pine, '1"', 5, TransferDirection.OUT),
            ],
            actual=[CellTotal(self.pine, '1"', 25)],
        )
        row = report.rows[0]
        assert (row.expected_transfers_in, row.expected_transfers_out) == (30, 5)
        assert row.discrepancy == 0
        assert row.transfer_numbers == ("T1", "T2")

    def test_stock_without_documents(self):
        report = self._reconcile(actual=[CellTotal(self.pine, '3"', 12)])
        assert report.rows[0].expected_stock == 0
        assert report.rows[0].discrepancy == 12
        assert report.has_discrepancies

    def test_document_without_stock_row(self):
        report = self._reconcile(
            receipts=[ReceiptContribution(uuid4(), "L9", self.pine, '3"', 4)],
        )
        assert report.rows[0].actual_stock == 0
        assert report.rows[0].discrepancy == -4

    def test_movement_log_mismatch(self):
        report = self._reconcile(
            actual=[CellTotal(self.pine, '1"', 10)],
            logged=[CellTotal(self.pine, '1"', 7)],
        )
        codes = {f.code for f in report.findings}
        assert FindingCode.LEDGER_LOG_MISMATCH in codes

    def test_lots_listed_once(self):
        receipt_id = uuid4()
        report = self._reconcile(
            receipts=[
                ReceiptContribution(receipt_id, "L1", self.teak, '2"', 5),
                ReceiptContribution(receipt_id, "L1", self.teak, '2"', 6),
            ],
            actual=[CellTotal(self.teak, '2"', 11)],
        )
        assert report.rows[0].lot_numbers == ("L1",)
        assert report.rows[0].expected_receipts == 11


class TestReconciliationService:
    @pytest.fixture
    def service(self, session, deterministic_clock):
        return ReconciliationService(session, deterministic_clock)

    @pytest.fixture
    def history(self, completed_receipt, transfers, warehouses, wood_types, actor):
        """650 pieces received, 600 sent to the branch."""
        completed_receipt("LOT-650", warehouses["main"], wood_types["mninga"], [('2"', 650)])
        record = transfers.create(
            warehouses["main"].id,
            warehouses["branch"].id,
            [TransferItemInput(wood_types["mninga"].id, '2"', 600)],
            actor=actor,
        )
        transfers.approve(record.id, actor=actor)
        transfers.complete(record.id, actor=actor)
        return record

    def test_clean_ledger_passes(self, service, history, warehouses):
        main = service.reconcile(warehouses["main"].id)
        branch = service.reconcile(warehouses["branch"].id)

        assert main.status is CheckStatus.PASSED
        assert main.rows[0].expected_stock == 50
        assert main.rows[0].lot_numbers == ("LOT-650",)
        assert main.rows[0].transfer_numbers == (history.transfer_number,)
        assert branch.status is CheckStatus.PASSED
        assert branch.rows[0].expected_transfers_in == 600

    def test_undocumented_stock_reported(self, service, stock, history, warehouses, wood_types, captured_logs):
        stock(warehouses["main"], wood_types["mninga"], '2"', 69)

        report = service.reconcile(warehouses["main"].id)

        assert report.status is CheckStatus.FAILED
        row = report.discrepancies()[0]
        assert (row.expected_receipts, row.expected_transfers_out) == (650, 600)
        assert (row.expected_stock, row.actual_stock, row.discrepancy) == (50, 119, 69)
        assert [f.code for f in report.findings] == [FindingCode.STOCK_DISCREPANCY]
        assert any(r["message"] == "reconciliation_discrepancies_found" for r in captured_logs())

    def test_pending_documents_ignored(self, service, transfers, warehouses, wood_types, completed_receipt, actor):
        completed_receipt("LOT-1", warehouses["main"], wood_types["mninga"], [('2"', 10)])
        transfers.create(
            warehouses["main"].id,
            warehouses["branch"].id,
            [TransferItemInput(wood_types["mninga"].id, '2"', 10)],
            actor=actor,
        )
        assert service.reconcile(warehouses["main"].id).status is CheckStatus.PASSED

    def test_entry_edited_outside_ledger(self, session, service, history, warehouses):
        entry = session.execute(
            select(StockEntry).where(StockEntry.warehouse_id == warehouses["main"].id)
        ).scalar_one()
        entry.not_dried = 40
        session.flush()

        report = service.reconcile(warehouses["main"].id)

        codes = {f.code for f in report.findings}
        assert codes == {FindingCode.STOCK_DISCREPANCY, FindingCode.LEDGER_LOG_MISMATCH}

    def test_wood_type_filter(self, service, completed_receipt, warehouses, wood_types):
        completed_receipt("LOT-M", warehouses["main"], wood_types["mninga"], [('2"', 10)])
        completed_receipt("LOT-V", warehouses["main"], wood_types["mvule"], [('2"', 20)])

        report = service.reconcile(warehouses["main"].id, wood_types["mvule"].id)

        assert [r.wood_type_name for r in report.rows] == ["Mvule"]
        assert report.wood_type_id == wood_types["mvule"].id

    def test_read_only(self, ledger, service, stock, history, warehouses, wood_types):
        stock(warehouses["main"], wood_types["mninga"], '2"', 69)
        service.reconcile(warehouses["main"].id)
        assert ledger.get(warehouses["main"].id, wood_types["mninga"].id, '2"').not_dried == 119

    def test_reconcile_all(self, service, history, warehouses):
        reports = service.reconcile_all()
        assert {r.warehouse_code for r in reports} == {"WH-MAIN", "WH-BRANCH", "WH-YARD"}

    def test_unknown_warehouse(self, service):
        with pytest.raises(WarehouseNotFoundError):
            service.reconcile(uuid4())
