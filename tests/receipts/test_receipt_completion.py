"""
Receipt lifecycle and completion tests.

Verifies:
- Completion credits NOT_DRIED pieces per measured thickness, once
- A completed lot is never credited again (ALREADY_COMPLETED)
- Missing warehouse / empty measurements block completion without effect
- Lot lifecycle transitions (measure, submit, approve, cancel)
- Lot numbers are trimmed, non-blank, unique and frozen
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stock_kernel.domain.dtos import CompletionOutcome
from stock_kernel.domain.values import Measurement, ReceiptStatus
from stock_kernel.exceptions import (
    DuplicateLotNumberError,
    EmptyMeasurementsError,
    ImmutabilityViolationError,
    InvalidLotNumberError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    NoWarehouseAssignedError,
    ReceiptNotFoundError,
)
from stock_kernel.models.receipt import Receipt
from stock_kernel.models.stock import StockMovement


@pytest.fixture
def lot(receipts, warehouses, wood_types, actor):
    return receipts.create_receipt(
        "LOT-2024-001", wood_types["mninga"].id, actor=actor,
        warehouse_id=warehouses["main"].id, estimated_pieces=120,
    )


class TestCompletion:
    def test_credits_each_thickness(self, ledger, completed_receipt, warehouses, wood_types):
        completion = completed_receipt(
            "LOT-A", warehouses["main"], wood_types["mninga"], [('1"', 40), ('2"', 60)],
        )

        assert completion.outcome is CompletionOutcome.COMPLETED
        assert completion.receipt.status is ReceiptStatus.COMPLETED
        assert completion.receipt.actual_pieces == 100
        assert completion.receipt.stock_applied_at is not None
        mninga = wood_types["mninga"].id
        assert ledger.get(warehouses["main"].id, mninga, '1"').not_dried == 40
        assert ledger.get(warehouses["main"].id, mninga, '2"').not_dried == 60

    def test_second_completion_is_noop(self, session, ledger, receipts, completed_receipt, warehouses, wood_types, actor):
        """99 pieces completed twice leave 99 in stock."""
        first = completed_receipt("LOT-99", warehouses["main"], wood_types["mninga"], [('2"', 99)])
        movements = session.execute(select(func.count()).select_from(StockMovement)).scalar_one()

        again = receipts.complete_receipt(first.receipt.id, actor=actor)

        assert again.outcome is CompletionOutcome.ALREADY_COMPLETED
        assert again.already_completed
        assert again.deltas == ()
        assert ledger.get(warehouses["main"].id, wood_types["mninga"].id, '2"').not_dried == 99
        assert session.execute(select(func.count()).select_from(StockMovement)).scalar_one() == movements

    def test_completion_from_processing(self, ledger, receipts, lot, warehouses, wood_types, actor):
        receipts.record_measurements(lot.id, [Measurement('3"', 15)], actor=actor)
        receipts.submit_for_approval(lot.id, actor=actor)
        receipts.approve(lot.id, actor=actor)

        completion = receipts.complete_receipt(lot.id, actor=actor)

        assert completion.receipt.status is ReceiptStatus.COMPLETED
        assert ledger.get(warehouses["main"].id, wood_types["mninga"].id, '3"').not_dried == 15

    def test_no_warehouse(self, session, receipts, wood_types, actor):
        record = receipts.create_receipt("LOT-NOWH", wood_types["mvule"].id, actor=actor)
        receipts.record_measurements(record.id, [Measurement('2"', 10)], actor=actor)

        with pytest.raises(NoWarehouseAssignedError):
            receipts.complete_receipt(record.id, actor=actor)

        assert receipts.get(record.id).status is ReceiptStatus.PENDING
        assert session.execute(select(func.count()).select_from(StockMovement)).scalar_one() == 0

    def test_assign_then_complete(self, ledger, receipts, warehouses, wood_types, actor):
        record = receipts.create_receipt("LOT-LATE", wood_types["mvule"].id, actor=actor)
        receipts.record_measurements(record.id, [Measurement('2"', 10)], actor=actor)
        receipts.assign_warehouse(record.id, warehouses["branch"].id, actor=actor)

        receipts.complete_receipt(record.id, actor=actor)

        assert ledger.get(warehouses["branch"].id, wood_types["mvule"].id, '2"').not_dried == 10

    def test_unmeasured_lot_cannot_complete(self, receipts, lot, actor):
        # CREATED has no complete transition
        with pytest.raises(InvalidStateTransitionError):
            receipts.complete_receipt(lot.id, actor=actor)

    def test_empty_measurements(self, receipts, lot, actor):
        receipts.record_measurements(lot.id, [], actor=actor)
        with pytest.raises(EmptyMeasurementsError):
            receipts.complete_receipt(lot.id, actor=actor)

    def test_cancelled_cannot_complete(self, receipts, lot, actor):
        receipts.record_measurements(lot.id, [Measurement('2"', 5)], actor=actor)
        receipts.cancel(lot.id, actor=actor)
        with pytest.raises(InvalidStateTransitionError):
            receipts.complete_receipt(lot.id, actor=actor)

    def test_uncontrolled_warehouse_credit(self, ledger, completed_receipt, warehouses, wood_types):
        completed_receipt("LOT-YARD", warehouses["yard"], wood_types["mvule"], [('2"', 7)])
        assert ledger.get(warehouses["yard"].id, wood_types["mvule"].id, '2"').not_dried == 7

    def test_movements_reference_lot(self, session, completed_receipt, warehouses, wood_types):
        completed_receipt("LOT-REF", warehouses["main"], wood_types["mninga"], [('2"', 3)])
        movement = session.execute(
            select(StockMovement).where(StockMovement.reference_type == "RECEIPT")
        ).scalar_one()
        assert movement.reference_number == "LOT-REF"
        assert movement.drying_status == "NOT_DRIED"


class TestLifecycle:
    def test_create(self, lot, warehouses):
        assert lot.status is ReceiptStatus.CREATED
        assert lot.warehouse_id == warehouses["main"].id
        assert lot.estimated_pieces == 120
        assert lot.actual_pieces == 0

    def test_duplicate_lot_number(self, receipts, lot, wood_types, actor):
        with pytest.raises(DuplicateLotNumberError):
            receipts.create_receipt("LOT-2024-001", wood_types["mninga"].id, actor=actor)

    @pytest.mark.parametrize("lot_number", ["", "   ", None])
    def test_blank_lot_number(self, receipts, wood_types, actor, lot_number):
        with pytest.raises(InvalidLotNumberError) as exc_info:
            receipts.create_receipt(lot_number, wood_types["mninga"].id, actor=actor)
        assert exc_info.value.code == "INVALID_LOT_NUMBER"
        assert exc_info.value.to_dict()["code"] == "INVALID_LOT_NUMBER"

    def test_lot_number_is_trimmed(self, receipts, wood_types, actor):
        record = receipts.create_receipt("  LOT-2024-009 ", wood_types["mninga"].id, actor=actor)
        assert record.lot_number == "LOT-2024-009"

    def test_measurements_replace(self, receipts, lot, actor):
        receipts.record_measurements(lot.id, [Measurement('1"', 5), Measurement('2"', 6)], actor=actor)
        record = receipts.record_measurements(lot.id, [Measurement('4"', 9)], actor=actor)

        assert record.status is ReceiptStatus.PENDING
        assert [(m.thickness, m.piece_count) for m in record.measurements] == [('4"', 9)]
        assert record.measured_pieces == 9

    def test_measurement_must_be_positive(self):
        with pytest.raises(InvalidQuantityError):
            Measurement('2"', 0)

    def test_submit_requires_pending(self, receipts, lot, actor):
        with pytest.raises(InvalidStateTransitionError):
            receipts.submit_for_approval(lot.id, actor=actor)

    def test_completed_lot_rejects_further_commands(self, receipts, completed_receipt, warehouses, wood_types, actor):
        completion = completed_receipt("LOT-DONE", warehouses["main"], wood_types["mninga"], [('2"', 1)])
        receipt_id = completion.receipt.id
        with pytest.raises(InvalidStateTransitionError):
            receipts.cancel(receipt_id, actor=actor)
        with pytest.raises(InvalidStateTransitionError):
            receipts.record_measurements(receipt_id, [Measurement('2"', 2)], actor=actor)
        with pytest.raises(InvalidStateTransitionError):
            receipts.assign_warehouse(receipt_id, warehouses["branch"].id, actor=actor)

    def test_unknown_receipt(self, receipts, actor):
        with pytest.raises(ReceiptNotFoundError):
            receipts.complete_receipt(uuid4(), actor=actor)

    def test_lot_number_frozen(self, session, lot):
        receipt = session.get(Receipt, lot.id)
        receipt.lot_number = "LOT-RENAMED"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
