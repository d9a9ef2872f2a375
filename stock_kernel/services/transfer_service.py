"""
TransferWorkflow -- inter-warehouse transfer state machine.

Responsibility:
    Creates transfers, drives them through approve / reject / dispatch /
    complete, and edits their items while that is still allowed.  It is the
    only writer that moves quantity between StockEntry rows, and it does so
    exactly once per transfer, at completion.

Architecture position:
    Kernel > Services.  Uses StockLedger for every stock mutation and the
    stores for every row lock.  Flushes only.

Invariants enforced:
    - Only transitions in TRANSFER_WORKFLOW are accepted; anything else
      raises InvalidStateTransitionError before the ledger is read.
    - Completion is idempotent: the transfer row is locked, the
      ``stock_applied_at`` marker is checked, and the ledger application
      (key ``transfer:<id>:complete``), status flip and marker are written
      in one transaction.  A second completion returns ALREADY_COMPLETED
      and applies nothing.
    - Completion applies -quantity at the source and +quantity at the
      destination for every item, or nothing at all.
    - Items are editable only in PENDING and IN_TRANSIT.
    - History is append-only.

Failure modes:
    - SameWarehouseTransferError, EmptyTransferError, InvalidQuantityError,
      InvalidThicknessError on bad input.
    - InsufficientStockError when a controlled source cannot cover an item
      at creation (soft check), on an in-transit edit, or at completion.
    - InvalidStateTransitionError / ItemsFrozenError.
    - RejectionReasonRequiredError on a blank rejection reason.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from stock_kernel.config import StockKernelConfig
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import CompletionOutcome, TransferCompletion, TransferRecord
from stock_kernel.domain.values import (
    EDITABLE_TRANSFER_STATUSES,
    Actor,
    CellKey,
    DryingStatus,
    LedgerReference,
    StockDelta,
    TransferItemInput,
    TransferStatus,
    normalize_thickness,
    require_positive,
)
from stock_kernel.domain.workflow import TRANSFER_WORKFLOW, find_transition
from stock_kernel.exceptions import (
    AlreadyCompletedError,
    EmptyTransferError,
    InsufficientStockError,
    ItemsFrozenError,
    RejectionReasonRequiredError,
    SameWarehouseTransferError,
    TransferItemNotFoundError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.transfer import Transfer, TransferItem
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import StockLedger
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.stores.base import TransferStore, WarehouseStore
from stock_kernel.stores.transfer_store import SqlTransferStore
from stock_kernel.stores.warehouse_store import SqlWarehouseStore

logger = get_logger("services.transfer")

REFERENCE_TYPE = "TRANSFER"


def completion_key(transfer_id: UUID) -> str:
    return f"transfer:{transfer_id}:complete"


class TransferWorkflow(BaseService):
    """
    Transfer commands.  Each public method is one command; run it inside a
    TransactionRunner (or another caller-owned transaction).
    """

    ENTITY = "transfer"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: StockKernelConfig | None = None,
        ledger: StockLedger | None = None,
        transfer_store: TransferStore | None = None,
        warehouse_store: WarehouseStore | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or StockKernelConfig()
        self._warehouses = warehouse_store or SqlWarehouseStore(session)
        self._ledger = ledger or StockLedger(session, self._clock, warehouse_store=self._warehouses)
        self._transfers = transfer_store or SqlTransferStore(session)
        self._sequence = SequenceService(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, transfer_id: UUID) -> TransferRecord:
        return self._transfers.get(transfer_id).to_dto()

    def list(
        self,
        status: TransferStatus | str | None = None,
        warehouse_id: UUID | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[TransferRecord]:
        status_value = TransferStatus(status).value if status is not None else None
        return [
            transfer.to_dto()
            for transfer in self._transfers.list(
                status=status_value,
                warehouse_id=warehouse_id,
                date_from=date_from,
                date_to=date_to,
            )
        ]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        items: Iterable[TransferItemInput],
        *,
        actor: Actor,
        notes: str | None = None,
        transfer_date: date | None = None,
    ) -> TransferRecord:
        if from_warehouse_id == to_warehouse_id:
            raise SameWarehouseTransferError(from_warehouse_id)
        items = list(items)
        if not items:
            raise EmptyTransferError()

        source = self._warehouses.get(from_warehouse_id)
        self._warehouses.get(to_warehouse_id)
        for item in items:
            self._warehouses.get_wood_type(item.wood_type_id)

        if source.stock_control_enabled:
            self._check_available(
                from_warehouse_id,
                [(item.wood_type_id, item.thickness, item.wood_status, item.quantity) for item in items],
            )

        number = self._config.format_transfer_number(
            self._sequence.next_value(SequenceService.TRANSFER_NUMBER)
        )
        transfer = Transfer(
            id=uuid4(),
            transfer_number=number,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
            status=TransferStatus.PENDING.value,
            transfer_date=transfer_date or self._clock.now().date(),
            notes=notes,
            created_by_id=actor.id,
        )
        for line_no, item in enumerate(items, start=1):
            transfer.items.append(
                TransferItem(
                    line_no=line_no,
                    wood_type_id=item.wood_type_id,
                    thickness=item.thickness,
                    quantity=item.quantity,
                    wood_status=item.wood_status.value,
                    remarks=item.remarks,
                )
            )
        self._transfers.add(transfer)
        self.session.flush()

        self._transfers.append_history(
            transfer,
            actor=actor,
            action="CREATED",
            occurred_at=self._clock.now(),
            details={
                "transfer_number": number,
                "item_count": len(items),
                "total_quantity": sum(item.quantity for item in items),
            },
        )
        logger.info(
            "transfer_created",
            extra={
                "transfer_id": str(transfer.id),
                "transfer_number": number,
                "from_warehouse_id": str(from_warehouse_id),
                "to_warehouse_id": str(to_warehouse_id),
                "item_count": len(items),
            },
        )
        return transfer.to_dto()

    # ------------------------------------------------------------------
    # Approval flow
    # ------------------------------------------------------------------

    def approve(self, transfer_id: UUID, *, actor: Actor) -> TransferRecord:
        transfer = self._transfers.get(transfer_id, lock=True)
        transition = self._transition(transfer, "approve")
        now = self._clock.now()
        transfer.status = transition.to_state
        transfer.approved_by_id = actor.id
        transfer.approved_at = now
        transfer.updated_by_id = actor.id
        self._transfers.append_history(transfer, actor=actor, action="APPROVED", occurred_at=now)
        logger.info(
            "transfer_approved",
            extra={"transfer_id": str(transfer.id), "transfer_number": transfer.transfer_number},
        )
        return transfer.to_dto()

    def reject(self, transfer_id: UUID, reason: str, *, actor: Actor) -> TransferRecord:
        transfer = self._transfers.get(transfer_id, lock=True)
        transition = self._transition(transfer, "reject")
        if reason is None or not reason.strip():
            raise RejectionReasonRequiredError(transfer.id)
        now = self._clock.now()
        transfer.status = transition.to_state
        transfer.rejected_reason = reason.strip()
        transfer.updated_by_id = actor.id
        self._transfers.append_history(
            transfer,
            actor=actor,
            action="REJECTED",
            occurred_at=now,
            details={"reason": transfer.rejected_reason},
        )
        logger.info(
            "transfer_rejected",
            extra={"transfer_id": str(transfer.id), "transfer_number": transfer.transfer_number},
        )
        return transfer.to_dto()

    def dispatch(self, transfer_id: UUID, *, actor: Actor) -> TransferRecord:
        transfer = self._transfers.get(transfer_id, lock=True)
        transition = self._transition(transfer, "dispatch")
        now = self._clock.now()
        transfer.status = transition.to_state
        transfer.dispatched_at = now
        transfer.updated_by_id = actor.id
        self._transfers.append_history(transfer, actor=actor, action="DISPATCHED", occurred_at=now)
        logger.info(
            "transfer_dispatched",
            extra={"transfer_id": str(transfer.id), "transfer_number": transfer.transfer_number},
        )
        return transfer.to_dto()

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def complete(self, transfer_id: UUID, *, actor: Actor) -> TransferCompletion:
        """
        Apply the transfer to the ledger exactly once.

        Returns a COMPLETED outcome with the applied deltas, or an
        ALREADY_COMPLETED outcome with none when the transfer was applied
        before.
        """
        transfer = self._transfers.get(transfer_id, lock=True)

        with LogContext.bind(transfer_id=str(transfer.id)):
            if transfer.stock_applied_at is not None:
                logger.info(
                    "transfer_already_completed",
                    extra={
                        "transfer_number": transfer.transfer_number,
                        "stock_applied_at": transfer.stock_applied_at,
                    },
                )
                return TransferCompletion(
                    outcome=CompletionOutcome.ALREADY_COMPLETED,
                    transfer=transfer.to_dto(),
                )

            transition = self._transition(transfer, "complete")
            deltas = self._completion_deltas(transfer)
            key = completion_key(transfer.id)

            try:
                self._ledger.apply(
                    deltas,
                    actor=actor,
                    reason=f"Transfer {transfer.transfer_number} completed",
                    reference=LedgerReference(REFERENCE_TYPE, transfer.id, transfer.transfer_number),
                    idempotency_key=key,
                )
            except AlreadyCompletedError:
                # Stock was applied but the marker is missing: stamp it, move nothing
                logger.warning(
                    "transfer_marker_missing_for_applied_stock",
                    extra={"transfer_number": transfer.transfer_number, "idempotency_key": key},
                )
                self._mark_completed(transfer, transition.to_state, actor, details={"already_applied": True})
                return TransferCompletion(
                    outcome=CompletionOutcome.ALREADY_COMPLETED,
                    transfer=transfer.to_dto(),
                )
            except InsufficientStockError:
                logger.info(
                    "transfer_completion_rejected",
                    extra={"transfer_number": transfer.transfer_number, "status": transfer.status},
                )
                raise

            self._mark_completed(
                transfer,
                transition.to_state,
                actor,
                details={
                    "item_count": len(transfer.items),
                    "total_quantity": sum(item.quantity for item in transfer.items),
                },
            )
            logger.info(
                "transfer_completed",
                extra={
                    "transfer_number": transfer.transfer_number,
                    "delta_count": len(deltas),
                    "from_warehouse_id": str(transfer.from_warehouse_id),
                    "to_warehouse_id": str(transfer.to_warehouse_id),
                },
            )
            return TransferCompletion(
                outcome=CompletionOutcome.COMPLETED,
                transfer=transfer.to_dto(),
                deltas=tuple(deltas),
            )

    def _completion_deltas(self, transfer: Transfer) -> list[StockDelta]:
        deltas: list[StockDelta] = []
        for item in transfer.items:
            status = DryingStatus(item.wood_status)
            deltas.append(
                StockDelta(
                    key=CellKey(transfer.from_warehouse_id, item.wood_type_id, item.thickness),
                    status=status,
                    quantity=-item.quantity,
                )
            )
            deltas.append(
                StockDelta(
                    key=CellKey(transfer.to_warehouse_id, item.wood_type_id, item.thickness),
                    status=status,
                    quantity=item.quantity,
                )
            )
        return deltas

    def _mark_completed(self, transfer: Transfer, to_state: str, actor: Actor, details: dict) -> None:
        now = self._clock.now()
        transfer.status = to_state
        transfer.completed_at = now
        transfer.completed_by_id = actor.id
        transfer.stock_applied_at = now
        transfer.updated_by_id = actor.id
        self._transfers.append_history(
            transfer, actor=actor, action="COMPLETED", occurred_at=now, details=details,
        )

    # ------------------------------------------------------------------
    # Item edits
    # ------------------------------------------------------------------

    def update_item(
        self,
        transfer_id: UUID,
        item_id: UUID,
        *,
        actor: Actor,
        quantity: int | None = None,
        thickness: str | None = None,
        wood_status: DryingStatus | str | None = None,
        remarks: str | None = None,
    ) -> TransferRecord:
        transfer = self._transfers.get(transfer_id, lock=True)
        self._require_editable(transfer, "update_item")
        item = next((i for i in transfer.items if i.id == item_id), None)
        if item is None:
            raise TransferItemNotFoundError(transfer.id, item_id)

        new_quantity = require_positive(quantity) if quantity is not None else item.quantity
        new_thickness = normalize_thickness(thickness) if thickness is not None else item.thickness
        new_status = DryingStatus(wood_status) if wood_status is not None else DryingStatus(item.wood_status)

        if transfer.status == TransferStatus.IN_TRANSIT.value:
            source = self._warehouses.get(transfer.from_warehouse_id)
            if source.stock_control_enabled:
                same_cell = new_thickness == item.thickness and new_status.value == item.wood_status
                if same_cell:
                    increment = new_quantity - item.quantity
                    if increment > 0:
                        self._check_available(
                            transfer.from_warehouse_id,
                            [(item.wood_type_id, new_thickness, new_status, increment)],
                        )
                else:
                    # Lines already in the target cell draw on the same stock
                    others = [
                        (i.wood_type_id, i.thickness, DryingStatus(i.wood_status), i.quantity)
                        for i in transfer.items
                        if i.id != item.id
                        and i.wood_type_id == item.wood_type_id
                        and i.thickness == new_thickness
                        and i.wood_status == new_status.value
                    ]
                    self._check_available(
                        transfer.from_warehouse_id,
                        others + [(item.wood_type_id, new_thickness, new_status, new_quantity)],
                    )

        changes: dict[str, dict] = {}
        for field, old, new in (
            ("quantity", item.quantity, new_quantity),
            ("thickness", item.thickness, new_thickness),
            ("wood_status", item.wood_status, new_status.value),
            ("remarks", item.remarks, remarks if remarks is not None else item.remarks),
        ):
            if old != new:
                changes[field] = {"from": old, "to": new}
                setattr(item, field, new)

        if not changes:
            return transfer.to_dto()

        transfer.updated_by_id = actor.id
        self._transfers.append_history(
            transfer,
            actor=actor,
            action="ITEM_UPDATED",
            occurred_at=self._clock.now(),
            details={"item_id": str(item.id), "line_no": item.line_no, "changes": changes},
        )
        logger.info(
            "transfer_item_updated",
            extra={
                "transfer_id": str(transfer.id),
                "line_no": item.line_no,
                "changed_fields": sorted(changes),
            },
        )
        return transfer.to_dto()

    def add_item(self, transfer_id: UUID, item: TransferItemInput, *, actor: Actor) -> TransferRecord:
        transfer = self._transfers.get(transfer_id, lock=True)
        self._require_editable(transfer, "add_item")
        self._warehouses.get_wood_type(item.wood_type_id)

        source = self._warehouses.get(transfer.from_warehouse_id)
        if source.stock_control_enabled:
            existing = [
                (i.wood_type_id, i.thickness, DryingStatus(i.wood_status), i.quantity)
                for i in transfer.items
                if i.wood_type_id == item.wood_type_id
                and i.thickness == item.thickness
                and i.wood_status == item.wood_status.value
            ]
            self._check_available(
                transfer.from_warehouse_id,
                existing + [(item.wood_type_id, item.thickness, item.wood_status, item.quantity)],
            )

        line = TransferItem(
            line_no=transfer.next_line_no(),
            wood_type_id=item.wood_type_id,
            thickness=item.thickness,
            quantity=item.quantity,
            wood_status=item.wood_status.value,
            remarks=item.remarks,
        )
        transfer.items.append(line)
        transfer.updated_by_id = actor.id
        self.session.flush()
        self._transfers.append_history(
            transfer,
            actor=actor,
            action="ITEM_ADDED",
            occurred_at=self._clock.now(),
            details={
                "item_id": str(line.id),
                "line_no": line.line_no,
                "thickness": line.thickness,
                "wood_status": line.wood_status,
                "quantity": line.quantity,
            },
        )
        return transfer.to_dto()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, transfer: Transfer, action: str):
        return find_transition(
            TRANSFER_WORKFLOW,
            transfer.status,
            action,
            entity_type=self.ENTITY,
            entity_id=transfer.id,
        )

    def _require_editable(self, transfer: Transfer, action: str) -> None:
        if TransferStatus(transfer.status) not in EDITABLE_TRANSFER_STATUSES:
            raise ItemsFrozenError(self.ENTITY, transfer.id, transfer.status, action)

    def _check_available(
        self,
        warehouse_id: UUID,
        requests: Sequence[tuple[UUID, str, DryingStatus, int]],
    ) -> None:
        """
        Soft availability check against current (unlocked) levels.

        Requests hitting the same cell and status are summed first.
        Completion re-checks under lock.
        """
        wanted: dict[tuple[UUID, str, DryingStatus], int] = {}
        for wood_type_id, thickness, status, quantity in requests:
            slot = (wood_type_id, thickness, DryingStatus(status))
            wanted[slot] = wanted.get(slot, 0) + quantity
        for (wood_type_id, thickness, status), quantity in wanted.items():
            available = self._ledger.get(warehouse_id, wood_type_id, thickness).get(status)
            if quantity > available:
                raise InsufficientStockError(
                    warehouse_id=warehouse_id,
                    wood_type_id=wood_type_id,
                    thickness=thickness,
                    status=status.value,
                    available=available,
                    requested=quantity,
                )
