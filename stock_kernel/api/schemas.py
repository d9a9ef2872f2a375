"""Pydantic request/response schemas for the stock API.

These are the external contract; services exchange frozen records and
``TransferItemInput`` values internally.  Quantity and thickness rules are
enforced by the domain so that errors carry the kernel's error codes.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from stock_kernel.domain.dtos import (
    MovementRecord,
    ReceiptCompletion,
    ReceiptRecord,
    StockEntryRecord,
    TransferCompletion,
    TransferRecord,
)
from stock_kernel.domain.reconciliation import ReconciliationReport
from stock_kernel.domain.values import DryingStatus, ReceiptStatus, TransferItemInput, TransferStatus


# ---------------------------------------------------------------------------
# Transfer requests
# ---------------------------------------------------------------------------
class TransferItemRequest(BaseModel):
    wood_type_id: UUID
    thickness: str
    quantity: int
    wood_status: DryingStatus = DryingStatus.NOT_DRIED
    remarks: str | None = None

    def to_input(self) -> TransferItemInput:
        return TransferItemInput(
            wood_type_id=self.wood_type_id,
            thickness=self.thickness,
            quantity=self.quantity,
            wood_status=self.wood_status,
            remarks=self.remarks,
        )


class CreateTransferRequest(BaseModel):
    from_warehouse_id: UUID
    to_warehouse_id: UUID
    items: list[TransferItemRequest] = Field(default_factory=list)
    notes: str | None = None
    transfer_date: date | None = None


class RejectTransferRequest(BaseModel):
    reason: str = ""


class UpdateTransferItemRequest(BaseModel):
    quantity: int | None = None
    thickness: str | None = None
    wood_status: DryingStatus | None = None
    remarks: str | None = None


# ---------------------------------------------------------------------------
# Transfer responses
# ---------------------------------------------------------------------------
class TransferItemResponse(BaseModel):
    id: UUID
    line_no: int
    wood_type_id: UUID
    thickness: str
    quantity: int
    wood_status: DryingStatus
    remarks: str | None = None


class TransferHistoryResponse(BaseModel):
    actor_id: str
    actor_name: str
    action: str
    occurred_at: datetime
    details: dict | None = None


class TransferResponse(BaseModel):
    id: UUID
    transfer_number: str
    from_warehouse_id: UUID
    to_warehouse_id: UUID
    status: TransferStatus
    transfer_date: date
    notes: str | None = None
    created_by_id: str
    approved_by_id: str | None = None
    approved_at: datetime | None = None
    rejected_reason: str | None = None
    dispatched_at: datetime | None = None
    completed_at: datetime | None = None
    completed_by_id: str | None = None
    stock_applied_at: datetime | None = None
    items: list[TransferItemResponse] = Field(default_factory=list)
    history: list[TransferHistoryResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: TransferRecord) -> "TransferResponse":
        return cls(
            id=record.id,
            transfer_number=record.transfer_number,
            from_warehouse_id=record.from_warehouse_id,
            to_warehouse_id=record.to_warehouse_id,
            status=record.status,
            transfer_date=record.transfer_date,
            notes=record.notes,
            created_by_id=record.created_by_id,
            approved_by_id=record.approved_by_id,
            approved_at=record.approved_at,
            rejected_reason=record.rejected_reason,
            dispatched_at=record.dispatched_at,
            completed_at=record.completed_at,
            completed_by_id=record.completed_by_id,
            stock_applied_at=record.stock_applied_at,
            items=[
                TransferItemResponse(
                    id=i.id,
                    line_no=i.line_no,
                    wood_type_id=i.wood_type_id,
                    thickness=i.thickness,
                    quantity=i.quantity,
                    wood_status=i.wood_status,
                    remarks=i.remarks,
                )
                for i in record.items
            ],
            history=[
                TransferHistoryResponse(
                    actor_id=h.actor_id,
                    actor_name=h.actor_name,
                    action=h.action,
                    occurred_at=h.occurred_at,
                    details=h.details,
                )
                for h in record.history
            ],
        )


class TransferCompletionResponse(BaseModel):
    outcome: str
    already_completed: bool
    transfer: TransferResponse

    @classmethod
    def from_completion(cls, completion: TransferCompletion) -> "TransferCompletionResponse":
        return cls(
            outcome=completion.outcome.value,
            already_completed=completion.already_completed,
            transfer=TransferResponse.from_record(completion.transfer),
        )


# ---------------------------------------------------------------------------
# Receipts
# ---------------------------------------------------------------------------
class MeasurementResponse(BaseModel):
    thickness: str
    piece_count: int


class ReceiptResponse(BaseModel):
    id: UUID
    lot_number: str
    warehouse_id: UUID | None = None
    wood_type_id: UUID
    status: ReceiptStatus
    estimated_pieces: int
    actual_pieces: int
    completed_at: datetime | None = None
    completed_by_id: str | None = None
    stock_applied_at: datetime | None = None
    measurements: list[MeasurementResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: ReceiptRecord) -> "ReceiptResponse":
        return cls(
            id=record.id,
            lot_number=record.lot_number,
            warehouse_id=record.warehouse_id,
            wood_type_id=record.wood_type_id,
            status=record.status,
            estimated_pieces=record.estimated_pieces,
            actual_pieces=record.actual_pieces,
            completed_at=record.completed_at,
            completed_by_id=record.completed_by_id,
            stock_applied_at=record.stock_applied_at,
            measurements=[
                MeasurementResponse(thickness=m.thickness, piece_count=m.piece_count)
                for m in record.measurements
            ],
        )


class ReceiptCompletionResponse(BaseModel):
    outcome: str
    already_completed: bool
    receipt: ReceiptResponse

    @classmethod
    def from_completion(cls, completion: ReceiptCompletion) -> "ReceiptCompletionResponse":
        return cls(
            outcome=completion.outcome.value,
            already_completed=completion.already_completed,
            receipt=ReceiptResponse.from_record(completion.receipt),
        )


# ---------------------------------------------------------------------------
# Stock and reconciliation
# ---------------------------------------------------------------------------
class StockEntryResponse(BaseModel):
    warehouse_id: UUID
    wood_type_id: UUID
    thickness: str
    not_dried: int
    under_drying: int
    dried: int
    damaged: int
    total: int

    @classmethod
    def from_record(cls, record: StockEntryRecord) -> "StockEntryResponse":
        return cls(
            warehouse_id=record.warehouse_id,
            wood_type_id=record.wood_type_id,
            thickness=record.thickness,
            not_dried=record.levels.not_dried,
            under_drying=record.levels.under_drying,
            dried=record.levels.dried,
            damaged=record.levels.damaged,
            total=record.total,
        )


class StockMovementResponse(BaseModel):
    id: UUID
    warehouse_id: UUID
    wood_type_id: UUID
    thickness: str
    drying_status: DryingStatus
    quantity_change: int
    balance_after: int
    reference_type: str
    reference_id: UUID | None = None
    reference_number: str | None = None
    actor_id: str
    actor_name: str
    reason: str | None = None
    occurred_at: datetime

    @classmethod
    def from_record(cls, record: MovementRecord) -> "StockMovementResponse":
        return cls(
            id=record.id,
            warehouse_id=record.warehouse_id,
            wood_type_id=record.wood_type_id,
            thickness=record.thickness,
            drying_status=record.drying_status,
            quantity_change=record.quantity_change,
            balance_after=record.balance_after,
            reference_type=record.reference_type,
            reference_id=record.reference_id,
            reference_number=record.reference_number,
            actor_id=record.actor_id,
            actor_name=record.actor_name,
            reason=record.reason,
            occurred_at=record.occurred_at,
        )


class ReconciliationRowResponse(BaseModel):
    wood_type_id: UUID
    wood_type_name: str | None = None
    thickness: str
    expected_receipts: int
    expected_transfers_out: int
    expected_transfers_in: int
    expected_stock: int
    actual_stock: int
    discrepancy: int
    receipt_ids: list[UUID] = Field(default_factory=list)
    lot_numbers: list[str] = Field(default_factory=list)
    transfer_ids: list[UUID] = Field(default_factory=list)
    transfer_numbers: list[str] = Field(default_factory=list)


class ReconciliationFindingResponse(BaseModel):
    code: str
    severity: str
    wood_type_id: UUID
    thickness: str
    expected: int
    actual: int
    message: str


class ReconciliationReportResponse(BaseModel):
    warehouse_id: UUID
    warehouse_code: str | None = None
    wood_type_id: UUID | None = None
    checked_at: datetime
    status: str
    rows: list[ReconciliationRowResponse] = Field(default_factory=list)
    findings: list[ReconciliationFindingResponse] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ReconciliationReport) -> "ReconciliationReportResponse":
        return cls(
            warehouse_id=report.warehouse_id,
            warehouse_code=report.warehouse_code,
            wood_type_id=report.wood_type_id,
            checked_at=report.checked_at,
            status=report.status.value,
            rows=[
                ReconciliationRowResponse(
                    wood_type_id=row.wood_type_id,
                    wood_type_name=row.wood_type_name,
                    thickness=row.thickness,
                    expected_receipts=row.expected_receipts,
                    expected_transfers_out=row.expected_transfers_out,
                    expected_transfers_in=row.expected_transfers_in,
                    expected_stock=row.expected_stock,
                    actual_stock=row.actual_stock,
                    discrepancy=row.discrepancy,
                    receipt_ids=list(row.receipt_ids),
                    lot_numbers=list(row.lot_numbers),
                    transfer_ids=list(row.transfer_ids),
                    transfer_numbers=list(row.transfer_numbers),
                )
                for row in report.rows
            ],
            findings=[
                ReconciliationFindingResponse(
                    code=f.code.value,
                    severity=f.severity.value,
                    wood_type_id=f.wood_type_id,
                    thickness=f.thickness,
                    expected=f.expected,
                    actual=f.actual,
                    message=f.message,
                )
                for f in report.findings
            ],
        )


class ErrorResponse(BaseModel):
    code: str
    message: str
