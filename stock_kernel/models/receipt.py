"""
Receipt (lot) persistence.

A lot is one incoming batch of raw wood.  Reaching COMPLETED is the only
event that credits the ledger, and it happens at most once per lot.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase
from stock_kernel.db.types import ActorId, PieceCount, ThicknessLabel


class Receipt(TrackedBase):
    __tablename__ = "receipts"

    __table_args__ = (
        UniqueConstraint("lot_number", name="uq_receipt_lot_number"),
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)
    warehouse_id: Mapped[UUID | None] = mapped_column(ForeignKey("warehouses.id"), nullable=True)
    wood_type_id: Mapped[UUID] = mapped_column(ForeignKey("wood_types.id"), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="CREATED")

    estimated_pieces: Mapped[PieceCount] = mapped_column(nullable=False, default=0)
    actual_pieces: Mapped[PieceCount] = mapped_column(nullable=False, default=0)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by_id: Mapped[ActorId | None] = mapped_column(nullable=True)
    stock_applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    measurements: Mapped[list["ReceiptMeasurement"]] = relationship(
        back_populates="receipt",
        order_by="ReceiptMeasurement.line_no",
        cascade="all, delete-orphan",
    )

    def to_dto(self):
        from stock_kernel.domain.dtos import MeasurementRecord, ReceiptRecord
        from stock_kernel.domain.values import ReceiptStatus

        return ReceiptRecord(
            id=self.id,
            lot_number=self.lot_number,
            warehouse_id=self.warehouse_id,
            wood_type_id=self.wood_type_id,
            status=ReceiptStatus(self.status),
            estimated_pieces=self.estimated_pieces,
            actual_pieces=self.actual_pieces,
            completed_at=self.completed_at,
            completed_by_id=self.completed_by_id,
            stock_applied_at=self.stock_applied_at,
            measurements=tuple(
                MeasurementRecord(thickness=m.thickness, piece_count=m.piece_count)
                for m in self.measurements
            ),
        )

    def __repr__(self) -> str:
        return f"<Receipt {self.lot_number} {self.status}>"


class ReceiptMeasurement(Base):
    """Piece count of one thickness on a lot."""

    __tablename__ = "receipt_measurements"

    __table_args__ = (
        UniqueConstraint("receipt_id", "line_no", name="uq_receipt_measurement_line"),
    )

    receipt_id: Mapped[UUID] = mapped_column(ForeignKey("receipts.id"), nullable=False)
    line_no: Mapped[int] = mapped_column(nullable=False)
    thickness: Mapped[ThicknessLabel] = mapped_column(nullable=False)
    piece_count: Mapped[PieceCount] = mapped_column(nullable=False)

    receipt: Mapped[Receipt] = relationship(back_populates="measurements")
