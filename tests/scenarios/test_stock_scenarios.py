"""
End-to-end stock scenarios.

Each test walks a realistic sequence of yard operations and finishes with a
reconciliation of every warehouse involved.
"""

import pytest

from stock_kernel.domain.dtos import CompletionOutcome
from stock_kernel.domain.values import TransferItemInput, TransferStatus
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.services.reconciliation_service import ReconciliationService


@pytest.fixture
def reconciliation(session, deterministic_clock):
    return ReconciliationService(session, deterministic_clock)


def _item(wood_type, thickness, quantity):
    return TransferItemInput(wood_type.id, thickness, quantity)


class TestLotToBranch:
    def test_receive_move_and_reconcile(
        self, transfers, ledger, reconciliation, completed_receipt, warehouses, wood_types, actor,
    ):
        main, branch = warehouses["main"], warehouses["branch"]
        mninga = wood_types["mninga"]

        completed_receipt("LOT-2024-001", main, mninga, [('2"', 60), ('1"', 40)])

        record = transfers.create(main.id, branch.id, [_item(mninga, '2"', 25)], actor=actor)
        transfers.approve(record.id, actor=actor)
        transfers.dispatch(record.id, actor=actor)
        # Driver counted five more pieces on the truck
        transfers.update_item(record.id, record.items[0].id, actor=actor, quantity=30)
        completion = transfers.complete(record.id, actor=actor)

        assert completion.outcome is CompletionOutcome.COMPLETED
        assert ledger.get(main.id, mninga.id, '2"').not_dried == 30
        assert ledger.get(branch.id, mninga.id, '2"').not_dried == 30
        assert ledger.get(main.id, mninga.id, '1"').not_dried == 40

        for warehouse in (main, branch):
            report = reconciliation.reconcile(warehouse.id)
            assert not report.has_discrepancies, report.findings

    def test_rejected_transfer_leaves_no_trace(
        self, transfers, ledger, reconciliation, completed_receipt, warehouses, wood_types, actor,
    ):
        main, branch = warehouses["main"], warehouses["branch"]
        mninga = wood_types["mninga"]
        completed_receipt("LOT-2024-002", main, mninga, [('2"', 10)])

        record = transfers.create(main.id, branch.id, [_item(mninga, '2"', 10)], actor=actor)
        rejected = transfers.reject(record.id, "wrong destination", actor=actor)

        assert rejected.status is TransferStatus.REJECTED
        assert ledger.get(main.id, mninga.id, '2"').not_dried == 10
        assert all(not r.has_discrepancies for r in reconciliation.reconcile_all())


class TestRepeatAndShortage:
    def test_transfer_of_99_completed_twice(self, transfers, ledger, stock, warehouses, wood_types, actor):
        main, branch = warehouses["main"], warehouses["branch"]
        mninga = wood_types["mninga"]
        stock(main, mninga, '2"', 120)

        record = transfers.create(main.id, branch.id, [_item(mninga, '2"', 99)], actor=actor)
        transfers.approve(record.id, actor=actor)
        transfers.dispatch(record.id, actor=actor)
        first = transfers.complete(record.id, actor=actor)
        second = transfers.complete(record.id, actor=actor)

        assert first.outcome is CompletionOutcome.COMPLETED
        assert second.outcome is CompletionOutcome.ALREADY_COMPLETED
        assert second.deltas == ()
        assert ledger.get(branch.id, mninga.id, '2"').not_dried == 99
        assert ledger.get(main.id, mninga.id, '2"').not_dried == 21

    def test_ten_requested_eight_held(self, transfers, ledger, stock, warehouses, wood_types, actor):
        main, branch = warehouses["main"], warehouses["branch"]
        mninga = wood_types["mninga"]
        stock(main, mninga, '1"', 8)

        with pytest.raises(InsufficientStockError):
            transfers.create(main.id, branch.id, [_item(mninga, '1"', 10)], actor=actor)

        assert ledger.get(main.id, mninga.id, '1"').not_dried == 8
        assert ledger.get(branch.id, mninga.id, '1"').not_dried == 0


class TestCompetingDemand:
    def test_second_transfer_fails_after_first_completes(
        self, transfers, ledger, completed_receipt, warehouses, wood_types, actor,
    ):
        """Two approved transfers of 8 against 10 pieces: the second completion fails."""
        main, branch = warehouses["main"], warehouses["branch"]
        mninga = wood_types["mninga"]
        completed_receipt("LOT-2024-003", main, mninga, [('2"', 10)])

        first = transfers.create(main.id, branch.id, [_item(mninga, '2"', 8)], actor=actor)
        second = transfers.create(main.id, branch.id, [_item(mninga, '2"', 8)], actor=actor)
        for record in (first, second):
            transfers.approve(record.id, actor=actor)

        transfers.complete(first.id, actor=actor)
        with pytest.raises(InsufficientStockError) as exc_info:
            transfers.complete(second.id, actor=actor)

        assert exc_info.value.available == 2
        assert exc_info.value.requested == 8
        assert transfers.get(second.id).status is TransferStatus.APPROVED
        assert ledger.get(main.id, mninga.id, '2"').not_dried == 2
        assert ledger.get(branch.id, mninga.id, '2"').not_dried == 8


class TestUncontrolledYard:
    def test_yard_may_go_negative_and_still_reconciles(
        self, transfers, ledger, reconciliation, warehouses, wood_types, actor,
    ):
        yard, branch = warehouses["yard"], warehouses["branch"]
        mvule = wood_types["mvule"]

        record = transfers.create(yard.id, branch.id, [_item(mvule, '3"', 5)], actor=actor)
        transfers.approve(record.id, actor=actor)
        transfers.complete(record.id, actor=actor)

        assert ledger.get(yard.id, mvule.id, '3"').not_dried == -5
        assert ledger.get(branch.id, mvule.id, '3"').not_dried == 5
        assert not reconciliation.reconcile(yard.id).has_discrepancies
        assert not reconciliation.reconcile(branch.id).has_discrepancies
