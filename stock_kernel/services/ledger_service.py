"""
StockLedger -- the only writer of StockEntry counts.

Responsibility:
    Reads cell levels, applies single-cell adjustments, and applies the
    full delta set of one logical operation (a receipt or a transfer
    completion) atomically.

Architecture position:
    Kernel > Services.  Called by TransferWorkflow and ReceiptCompletion.
    Flushes only; the TransactionRunner owns commit/rollback.

Invariants enforced:
    - A stock-controlled warehouse never ends a mutation with a negative
      count in a cell the mutation decreased.
    - Deltas for one operation are netted per (cell, status), all cells are
      locked in sorted key order, every cell is validated before any is
      written, and everything happens in one savepoint: all or nothing.
    - An idempotency key is applied at most once (unique
      stock_applications.idempotency_key).  Reuse raises
      AlreadyCompletedError and writes nothing.
    - Every applied delta produces one StockMovement row.

Failure modes:
    - InsufficientStockError: controlled cell would go negative.
    - AlreadyCompletedError: idempotency key already applied.
    - WarehouseNotFoundError: a delta names an unknown warehouse.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import LedgerResult, MovementRecord, StockEntryRecord
from stock_kernel.domain.values import (
    Actor,
    CellKey,
    DryingStatus,
    LedgerReference,
    StockDelta,
    StockLevels,
    normalize_thickness,
)
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import StockMovement
from stock_kernel.services.base import BaseService
from stock_kernel.stores.base import LedgerStore, WarehouseStore
from stock_kernel.stores.ledger_store import SqlLedgerStore
from stock_kernel.stores.warehouse_store import SqlWarehouseStore

logger = get_logger("services.ledger")


def net_deltas(deltas: Iterable[StockDelta]) -> list[StockDelta]:
    """
    Sum deltas per (cell, status) and drop the ones that cancel out.

    The result is ordered by cell lock order, then status.
    """
    totals: dict[tuple[CellKey, DryingStatus], int] = {}
    for delta in deltas:
        slot = (delta.key, delta.status)
        totals[slot] = totals.get(slot, 0) + delta.quantity
    order = list(DryingStatus)
    return [
        StockDelta(key=key, status=status, quantity=quantity)
        for (key, status), quantity in sorted(
            totals.items(),
            key=lambda item: (item[0][0].sort_key(), order.index(item[0][1])),
        )
        if quantity != 0
    ]


class StockLedger(BaseService):
    """
    Atomic per-cell stock counts.

    Usage:
        ledger = StockLedger(session, clock)
        result = ledger.apply(
            deltas,
            actor=actor,
            reason="Transfer completed",
            reference=LedgerReference("TRANSFER", transfer.id, transfer.transfer_number),
            idempotency_key=f"transfer:{transfer.id}:complete",
        )
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger_store: LedgerStore | None = None,
        warehouse_store: WarehouseStore | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._store = ledger_store or SqlLedgerStore(session)
        self._warehouses = warehouse_store or SqlWarehouseStore(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, warehouse_id: UUID, wood_type_id: UUID, thickness: str) -> StockLevels:
        """Current levels of a cell; all zero if the cell was never written."""
        key = CellKey(warehouse_id, wood_type_id, normalize_thickness(thickness))
        entry = self._store.read_cell(key)
        if entry is None:
            return StockLevels()
        return entry.levels()

    def list_warehouse_stock(self, warehouse_id: UUID) -> list[StockEntryRecord]:
        """Every StockEntry row of a warehouse, zero rows included."""
        self._warehouses.get(warehouse_id)
        return [entry.to_dto() for entry in self._store.list_for_warehouse(warehouse_id)]

    def list_movements(
        self,
        warehouse_id: UUID,
        *,
        wood_type_id: UUID | None = None,
        thickness: str | None = None,
        reference_type: str | None = None,
        occurred_from: datetime | None = None,
        occurred_to: datetime | None = None,
    ) -> list[MovementRecord]:
        """
        The movement log of one warehouse, newest first.

        ``reference_type`` is TRANSFER, RECEIPT or ADJUSTMENT.  Both time
        bounds are inclusive.
        """
        self._warehouses.get(warehouse_id)
        rows = self._store.list_movements(
            warehouse_id,
            wood_type_id=wood_type_id,
            thickness=normalize_thickness(thickness) if thickness is not None else None,
            reference_type=reference_type.upper() if reference_type else None,
            occurred_from=occurred_from,
            occurred_to=occurred_to,
        )
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def adjust(
        self,
        warehouse_id: UUID,
        wood_type_id: UUID,
        thickness: str,
        status: DryingStatus,
        delta: int,
        *,
        actor: Actor,
        reason: str,
        reference: LedgerReference,
    ) -> LedgerResult:
        """Apply one signed delta to one cell and record the movement."""
        key = CellKey(warehouse_id, wood_type_id, normalize_thickness(thickness))
        return self._apply(
            [StockDelta(key=key, status=status, quantity=delta)],
            actor=actor,
            reason=reason,
            reference=reference,
            idempotency_key=None,
        )

    def apply(
        self,
        deltas: Iterable[StockDelta],
        *,
        actor: Actor,
        reason: str,
        reference: LedgerReference,
        idempotency_key: str,
    ) -> LedgerResult:
        """
        Apply every delta of one logical operation, or none of them.

        Raises:
            AlreadyCompletedError: ``idempotency_key`` was applied before.
            InsufficientStockError: a controlled cell would go negative.
        """
        if not idempotency_key:
            raise ValueError("idempotency_key is required for apply()")
        return self._apply(
            deltas,
            actor=actor,
            reason=reason,
            reference=reference,
            idempotency_key=idempotency_key,
        )

    def _apply(
        self,
        deltas: Iterable[StockDelta],
        *,
        actor: Actor,
        reason: str,
        reference: LedgerReference,
        idempotency_key: str | None,
    ) -> LedgerResult:
        netted = net_deltas(deltas)
        control = self._warehouses.stock_control_flags(
            {delta.key.warehouse_id for delta in netted}
        )
        now = self._clock.now()

        with self.session.begin_nested():
            application = None
            if idempotency_key is not None:
                application = self._store.insert_application(
                    idempotency_key,
                    actor=actor,
                    reason=reason,
                    reference=reference,
                    applied_at=now,
                    movement_count=len(netted),
                )

            entries = self._store.lock_cells(delta.key for delta in netted)

            # Validate every cell before writing any
            proposed = {key: entry.levels() for key, entry in entries.items()}
            for delta in netted:
                before = proposed[delta.key]
                after = before.with_delta(delta.status, delta.quantity)
                if (
                    delta.quantity < 0
                    and control[delta.key.warehouse_id]
                    and after.get(delta.status) < 0
                ):
                    logger.warning(
                        "insufficient_stock",
                        extra={
                            "warehouse_id": str(delta.key.warehouse_id),
                            "wood_type_id": str(delta.key.wood_type_id),
                            "thickness": delta.key.thickness,
                            "drying_status": delta.status.value,
                            "available": before.get(delta.status),
                            "requested": -delta.quantity,
                            "idempotency_key": idempotency_key,
                        },
                    )
                    raise InsufficientStockError(
                        warehouse_id=delta.key.warehouse_id,
                        wood_type_id=delta.key.wood_type_id,
                        thickness=delta.key.thickness,
                        status=delta.status.value,
                        available=before.get(delta.status),
                        requested=-delta.quantity,
                    )
                proposed[delta.key] = after

            movements: list[MovementRecord] = []
            running = {key: entry.levels() for key, entry in entries.items()}
            for delta in netted:
                running[delta.key] = running[delta.key].with_delta(delta.status, delta.quantity)
                balance_after = running[delta.key].get(delta.status)
                movement = StockMovement(
                    id=uuid4(),
                    application_id=application.id if application is not None else None,
                    warehouse_id=delta.key.warehouse_id,
                    wood_type_id=delta.key.wood_type_id,
                    thickness=delta.key.thickness,
                    drying_status=delta.status.value,
                    quantity_change=delta.quantity,
                    balance_after=balance_after,
                    reference_type=reference.reference_type,
                    reference_id=reference.reference_id,
                    reference_number=reference.reference_number,
                    actor_id=actor.id,
                    actor_name=actor.name,
                    reason=reason,
                    occurred_at=now,
                )
                self._store.add_movement(movement)
                movements.append(movement.to_dto())

            for key, entry in entries.items():
                entry.set_levels(proposed[key])
            self.session.flush()

        logger.info(
            "ledger_applied",
            extra={
                "idempotency_key": idempotency_key,
                "reference_type": reference.reference_type,
                "reference_number": reference.reference_number,
                "movement_count": len(movements),
                "actor_id": actor.id,
            },
        )
        return LedgerResult(
            application_id=application.id if application is not None else None,
            idempotency_key=idempotency_key,
            movements=tuple(movements),
        )
