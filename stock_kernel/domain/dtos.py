"""
Frozen records returned by the services.

Services hand these out instead of ORM instances so that results stay
valid after the TransactionRunner commits and closes the session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from stock_kernel.domain.values import (
    DryingStatus,
    ReceiptStatus,
    StockDelta,
    StockLevels,
    TransferStatus,
)


class CompletionOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"


@dataclass(frozen=True)
class WarehouseRecord:
    id: UUID
    code: str
    name: str
    stock_control_enabled: bool


@dataclass(frozen=True)
class StockEntryRecord:
    warehouse_id: UUID
    wood_type_id: UUID
    thickness: str
    levels: StockLevels

    @property
    def total(self) -> int:
        return self.levels.total


@dataclass(frozen=True)
class MovementRecord:
    """One row of the stock movement log."""

    id: UUID
    warehouse_id: UUID
    wood_type_id: UUID
    thickness: str
    drying_status: DryingStatus
    quantity_change: int
    balance_after: int
    reference_type: str
    reference_id: UUID | None
    reference_number: str | None
    actor_id: str
    actor_name: str
    reason: str | None
    occurred_at: datetime


@dataclass(frozen=True)
class LedgerResult:
    """
    Outcome of one ledger mutation.

    ``application_id`` is None for a single-cell adjust that was recorded
    without an idempotency key.
    """

    application_id: UUID | None
    idempotency_key: str | None
    movements: tuple[MovementRecord, ...] = ()

    @property
    def movement_count(self) -> int:
        return len(self.movements)


@dataclass(frozen=True)
class TransferItemRecord:
    id: UUID
    line_no: int
    wood_type_id: UUID
    thickness: str
    quantity: int
    wood_status: DryingStatus
    remarks: str | None


@dataclass(frozen=True)
class TransferHistoryRecord:
    actor_id: str
    actor_name: str
    action: str
    occurred_at: datetime
    details: dict[str, Any] | None


@dataclass(frozen=True)
class TransferRecord:
    id: UUID
    transfer_number: str
    from_warehouse_id: UUID
    to_warehouse_id: UUID
    status: TransferStatus
    transfer_date: date
    notes: str | None
    created_by_id: str
    approved_by_id: str | None
    approved_at: datetime | None
    rejected_reason: str | None
    dispatched_at: datetime | None
    completed_at: datetime | None
    completed_by_id: str | None
    stock_applied_at: datetime | None
    items: tuple[TransferItemRecord, ...] = ()
    history: tuple[TransferHistoryRecord, ...] = ()


@dataclass(frozen=True)
class TransferCompletion:
    """
    Result of ``TransferWorkflow.complete``.

    An ALREADY_COMPLETED outcome carries no deltas: nothing was applied by
    this call.
    """

    outcome: CompletionOutcome
    transfer: TransferRecord
    deltas: tuple[StockDelta, ...] = ()

    @property
    def already_completed(self) -> bool:
        return self.outcome is CompletionOutcome.ALREADY_COMPLETED


@dataclass(frozen=True)
class MeasurementRecord:
    thickness: str
    piece_count: int


@dataclass(frozen=True)
class ReceiptRecord:
    id: UUID
    lot_number: str
    warehouse_id: UUID | None
    wood_type_id: UUID
    status: ReceiptStatus
    estimated_pieces: int
    actual_pieces: int
    completed_at: datetime | None
    completed_by_id: str | None
    stock_applied_at: datetime | None
    measurements: tuple[MeasurementRecord, ...] = ()

    @property
    def measured_pieces(self) -> int:
        return sum(m.piece_count for m in self.measurements)


@dataclass(frozen=True)
class ReceiptCompletion:
    outcome: CompletionOutcome
    receipt: ReceiptRecord
    deltas: tuple[StockDelta, ...] = field(default_factory=tuple)

    @property
    def already_completed(self) -> bool:
        return self.outcome is CompletionOutcome.ALREADY_COMPLETED
