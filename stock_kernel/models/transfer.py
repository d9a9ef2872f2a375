"""
Module: stock_kernel.models.transfer
Responsibility: Persistence for inter-warehouse transfers, their ordered
    item lines, and the append-only action history.
Architecture position: Kernel > Models.  Written only through TransferStore
    by TransferWorkflow.

Invariants enforced:
    - transfer_number is unique and never changes after creation.
    - status is stored as String(20) holding a TransferStatus value.
    - stock_applied_at is set in the same transaction as the ledger
      application for this transfer and never cleared.
    - TransferHistory rows are never updated or deleted (db/immutability.py).
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase
from stock_kernel.db.types import ActorId, ActorName, LongText, PieceCount, ShortCode, ThicknessLabel


class Transfer(TrackedBase):
    """A movement of pieces from one warehouse to another."""

    __tablename__ = "transfers"

    __table_args__ = (
        UniqueConstraint("transfer_number", name="uq_transfer_number"),
        Index("idx_transfer_status", "status"),
        Index("idx_transfer_from", "from_warehouse_id"),
        Index("idx_transfer_to", "to_warehouse_id"),
        Index("idx_transfer_date", "transfer_date"),
    )

    transfer_number: Mapped[str] = mapped_column(String(30), nullable=False)

    from_warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"), nullable=False)
    to_warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    transfer_date: Mapped[date] = mapped_column(nullable=False)
    notes: Mapped[LongText | None] = mapped_column(nullable=True)

    approved_by_id: Mapped[ActorId | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_reason: Mapped[LongText | None] = mapped_column(nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by_id: Mapped[ActorId | None] = mapped_column(nullable=True)

    # Applied marker: set exactly once, beside status
    stock_applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["TransferItem"]] = relationship(
        back_populates="transfer",
        order_by="TransferItem.line_no",
        cascade="all, delete-orphan",
    )

    history: Mapped[list["TransferHistory"]] = relationship(
        back_populates="transfer",
        order_by="TransferHistory.seq",
    )

    def next_line_no(self) -> int:
        return max((item.line_no for item in self.items), default=0) + 1

    def to_dto(self):
        from stock_kernel.domain.dtos import TransferRecord
        from stock_kernel.domain.values import TransferStatus

        return TransferRecord(
            id=self.id,
            transfer_number=self.transfer_number,
            from_warehouse_id=self.from_warehouse_id,
            to_warehouse_id=self.to_warehouse_id,
            status=TransferStatus(self.status),
            transfer_date=self.transfer_date,
            notes=self.notes,
            created_by_id=self.created_by_id,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            rejected_reason=self.rejected_reason,
            dispatched_at=self.dispatched_at,
            completed_at=self.completed_at,
            completed_by_id=self.completed_by_id,
            stock_applied_at=self.stock_applied_at,
            items=tuple(item.to_dto() for item in self.items),
            history=tuple(entry.to_dto() for entry in self.history),
        )

    def __repr__(self) -> str:
        return f"<Transfer {self.transfer_number} {self.status}>"


class TransferItem(Base):
    """One ordered line of a transfer."""

    __tablename__ = "transfer_items"

    __table_args__ = (
        UniqueConstraint("transfer_id", "line_no", name="uq_transfer_item_line"),
    )

    transfer_id: Mapped[UUID] = mapped_column(ForeignKey("transfers.id"), nullable=False)
    line_no: Mapped[int] = mapped_column(nullable=False)

    wood_type_id: Mapped[UUID] = mapped_column(ForeignKey("wood_types.id"), nullable=False)
    thickness: Mapped[ThicknessLabel] = mapped_column(nullable=False)
    quantity: Mapped[PieceCount] = mapped_column(nullable=False)
    wood_status: Mapped[ShortCode] = mapped_column(nullable=False, default="NOT_DRIED")
    remarks: Mapped[LongText | None] = mapped_column(nullable=True)

    transfer: Mapped[Transfer] = relationship(back_populates="items")

    def to_dto(self):
        from stock_kernel.domain.dtos import TransferItemRecord
        from stock_kernel.domain.values import DryingStatus

        return TransferItemRecord(
            id=self.id,
            line_no=self.line_no,
            wood_type_id=self.wood_type_id,
            thickness=self.thickness,
            quantity=self.quantity,
            wood_status=DryingStatus(self.wood_status),
            remarks=self.remarks,
        )

    def __repr__(self) -> str:
        return f"<TransferItem #{self.line_no} {self.thickness} {self.wood_status} x{self.quantity}>"


class TransferHistory(Base):
    """Append-only log of every action taken on a transfer."""

    __tablename__ = "transfer_history"

    __table_args__ = (
        UniqueConstraint("transfer_id", "seq", name="uq_transfer_history_seq"),
    )

    transfer_id: Mapped[UUID] = mapped_column(ForeignKey("transfers.id"), nullable=False)

    # Position within the transfer's history
    seq: Mapped[int] = mapped_column(nullable=False)

    actor_id: Mapped[ActorId] = mapped_column(nullable=False)
    actor_name: Mapped[ActorName] = mapped_column(nullable=False)
    action: Mapped[ShortCode] = mapped_column(nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    transfer: Mapped[Transfer] = relationship(back_populates="history")

    def to_dto(self):
        from stock_kernel.domain.dtos import TransferHistoryRecord

        return TransferHistoryRecord(
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            action=self.action,
            occurred_at=self.occurred_at,
            details=self.details,
        )

    def __repr__(self) -> str:
        return f"<TransferHistory {self.action} by {self.actor_name}>"
