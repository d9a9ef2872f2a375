"""
ReceiptCompletion -- lot lifecycle and the one-time stock credit.

Completing a lot credits NOT_DRIED pieces for every measured thickness
into the lot's warehouse, in one ledger application keyed
``receipt:<id>:complete``, together with the COMPLETED status flip and the
``stock_applied_at`` marker.  A completed lot is never credited again.

The other commands (create, assign warehouse, record measurements, submit,
approve, cancel) feed completion and never touch the ledger.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import CompletionOutcome, ReceiptCompletion, ReceiptRecord
from stock_kernel.domain.values import (
    Actor,
    CellKey,
    DryingStatus,
    LedgerReference,
    Measurement,
    ReceiptStatus,
    StockDelta,
)
from stock_kernel.domain.workflow import RECEIPT_WORKFLOW, find_transition
from stock_kernel.exceptions import (
    AlreadyCompletedError,
    DuplicateLotNumberError,
    EmptyMeasurementsError,
    InvalidLotNumberError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    NoWarehouseAssignedError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.receipt import Receipt
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import StockLedger
from stock_kernel.stores.base import ReceiptStore, WarehouseStore
from stock_kernel.stores.receipt_store import SqlReceiptStore
from stock_kernel.stores.warehouse_store import SqlWarehouseStore

logger = get_logger("services.receipt")

REFERENCE_TYPE = "RECEIPT"


def completion_key(receipt_id: UUID) -> str:
    return f"receipt:{receipt_id}:complete"


class ReceiptService(BaseService):
    """Lot commands.  ``complete_receipt`` is the only one with a ledger effect."""

    ENTITY = "receipt"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: StockLedger | None = None,
        receipt_store: ReceiptStore | None = None,
        warehouse_store: WarehouseStore | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._warehouses = warehouse_store or SqlWarehouseStore(session)
        self._ledger = ledger or StockLedger(session, self._clock, warehouse_store=self._warehouses)
        self._receipts = receipt_store or SqlReceiptStore(session)

    def get(self, receipt_id: UUID) -> ReceiptRecord:
        return self._receipts.get(receipt_id).to_dto()

    def create_receipt(
        self,
        lot_number: str,
        wood_type_id: UUID,
        *,
        actor: Actor,
        warehouse_id: UUID | None = None,
        estimated_pieces: int = 0,
    ) -> ReceiptRecord:
        cleaned = (lot_number or "").strip()
        if not cleaned:
            raise InvalidLotNumberError(lot_number)
        lot_number = cleaned
        if estimated_pieces < 0:
            raise InvalidQuantityError(estimated_pieces, "estimated_pieces")
        if self._receipts.lot_number_exists(lot_number):
            raise DuplicateLotNumberError(lot_number)
        self._warehouses.get_wood_type(wood_type_id)
        if warehouse_id is not None:
            self._warehouses.get(warehouse_id)

        receipt = Receipt(
            id=uuid4(),
            lot_number=lot_number,
            wood_type_id=wood_type_id,
            warehouse_id=warehouse_id,
            status=ReceiptStatus.CREATED.value,
            estimated_pieces=estimated_pieces,
            actual_pieces=0,
            created_by_id=actor.id,
        )
        self._receipts.add(receipt)
        self.session.flush()
        logger.info("receipt_created", extra={"receipt_id": str(receipt.id), "lot_number": lot_number})
        return receipt.to_dto()

    def assign_warehouse(self, receipt_id: UUID, warehouse_id: UUID, *, actor: Actor) -> ReceiptRecord:
        receipt = self._receipts.get(receipt_id, lock=True)
        if receipt.status in RECEIPT_WORKFLOW.terminal_states:
            raise InvalidStateTransitionError(self.ENTITY, receipt.id, receipt.status, "assign_warehouse")
        self._warehouses.get(warehouse_id)
        receipt.warehouse_id = warehouse_id
        receipt.updated_by_id = actor.id
        self.session.flush()
        return receipt.to_dto()

    def record_measurements(
        self,
        receipt_id: UUID,
        measurements: Iterable[Measurement],
        *,
        actor: Actor,
    ) -> ReceiptRecord:
        """Replace the lot's thickness breakdown.  CREATED moves to PENDING."""
        receipt = self._receipts.get(receipt_id, lock=True)
        transition = self._transition(receipt, "record_measurements")
        measurements = list(measurements)
        self._receipts.replace_measurements(receipt, measurements)
        receipt.status = transition.to_state
        receipt.updated_by_id = actor.id
        self.session.flush()
        logger.info(
            "receipt_measured",
            extra={
                "receipt_id": str(receipt.id),
                "lot_number": receipt.lot_number,
                "pieces": sum(m.piece_count for m in measurements),
            },
        )
        return receipt.to_dto()

    def submit_for_approval(self, receipt_id: UUID, *, actor: Actor) -> ReceiptRecord:
        return self._simple_transition(receipt_id, "submit_for_approval", actor)

    def approve(self, receipt_id: UUID, *, actor: Actor) -> ReceiptRecord:
        return self._simple_transition(receipt_id, "approve", actor)

    def cancel(self, receipt_id: UUID, *, actor: Actor) -> ReceiptRecord:
        return self._simple_transition(receipt_id, "cancel", actor)

    def complete_receipt(self, receipt_id: UUID, *, actor: Actor) -> ReceiptCompletion:
        receipt = self._receipts.get(receipt_id, lock=True)

        with LogContext.bind(receipt_id=str(receipt.id)):
            if receipt.status == ReceiptStatus.COMPLETED.value or receipt.stock_applied_at is not None:
                logger.info("receipt_already_completed", extra={"lot_number": receipt.lot_number})
                return ReceiptCompletion(
                    outcome=CompletionOutcome.ALREADY_COMPLETED,
                    receipt=receipt.to_dto(),
                )

            transition = self._transition(receipt, "complete")
            if receipt.warehouse_id is None:
                raise NoWarehouseAssignedError(receipt.id, receipt.lot_number)
            pieces = sum(m.piece_count for m in receipt.measurements)
            if pieces <= 0:
                raise EmptyMeasurementsError(receipt.id, receipt.lot_number)

            deltas = [
                StockDelta(
                    key=CellKey(receipt.warehouse_id, receipt.wood_type_id, m.thickness),
                    status=DryingStatus.NOT_DRIED,
                    quantity=m.piece_count,
                )
                for m in receipt.measurements
            ]
            key = completion_key(receipt.id)
            try:
                self._ledger.apply(
                    deltas,
                    actor=actor,
                    reason=f"Lot {receipt.lot_number} received",
                    reference=LedgerReference(REFERENCE_TYPE, receipt.id, receipt.lot_number),
                    idempotency_key=key,
                )
            except AlreadyCompletedError:
                logger.warning(
                    "receipt_marker_missing_for_applied_stock",
                    extra={"lot_number": receipt.lot_number, "idempotency_key": key},
                )
                self._mark_completed(receipt, transition.to_state, actor, pieces)
                return ReceiptCompletion(
                    outcome=CompletionOutcome.ALREADY_COMPLETED,
                    receipt=receipt.to_dto(),
                )

            self._mark_completed(receipt, transition.to_state, actor, pieces)
            logger.info(
                "receipt_completed",
                extra={
                    "lot_number": receipt.lot_number,
                    "warehouse_id": str(receipt.warehouse_id),
                    "pieces": pieces,
                },
            )
            return ReceiptCompletion(
                outcome=CompletionOutcome.COMPLETED,
                receipt=receipt.to_dto(),
                deltas=tuple(deltas),
            )

    def _mark_completed(self, receipt: Receipt, to_state: str, actor: Actor, pieces: int) -> None:
        now = self._clock.now()
        receipt.status = to_state
        receipt.actual_pieces = pieces
        receipt.completed_at = now
        receipt.completed_by_id = actor.id
        receipt.stock_applied_at = now
        receipt.updated_by_id = actor.id
        self.session.flush()

    def _simple_transition(self, receipt_id: UUID, action: str, actor: Actor) -> ReceiptRecord:
        receipt = self._receipts.get(receipt_id, lock=True)
        transition = self._transition(receipt, action)
        receipt.status = transition.to_state
        receipt.updated_by_id = actor.id
        self.session.flush()
        logger.info(
            "receipt_status_changed",
            extra={"receipt_id": str(receipt.id), "action": action, "status": transition.to_state},
        )
        return receipt.to_dto()

    def _transition(self, receipt: Receipt, action: str):
        return find_transition(
            RECEIPT_WORKFLOW,
            receipt.status,
            action,
            entity_type=self.ENTITY,
            entity_id=receipt.id,
        )
