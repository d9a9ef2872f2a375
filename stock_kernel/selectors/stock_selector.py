"""
StockSelector -- read-only queries feeding reconciliation.

Derives per-bucket contributions straight from COMPLETED receipts and
COMPLETED transfers, independent of the ledger, plus the stored
StockEntry totals and the StockMovement sums for comparison.
"""

from uuid import UUID

from sqlalchemy import func, or_, select

from stock_kernel.domain.reconciliation import (
    CellTotal,
    ReceiptContribution,
    TransferContribution,
    TransferDirection,
)
from stock_kernel.domain.values import ReceiptStatus, TransferStatus
from stock_kernel.models.receipt import Receipt, ReceiptMeasurement
from stock_kernel.models.stock import StockEntry, StockMovement
from stock_kernel.models.transfer import Transfer, TransferItem
from stock_kernel.models.warehouse import WoodType
from stock_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector):
    def receipt_contributions(
        self, warehouse_id: UUID, wood_type_id: UUID | None = None
    ) -> list[ReceiptContribution]:
        stmt = (
            select(
                Receipt.id,
                Receipt.lot_number,
                Receipt.wood_type_id,
                ReceiptMeasurement.thickness,
                ReceiptMeasurement.piece_count,
            )
            .join(ReceiptMeasurement, ReceiptMeasurement.receipt_id == Receipt.id)
            .where(
                Receipt.warehouse_id == warehouse_id,
                Receipt.status == ReceiptStatus.COMPLETED.value,
            )
            .order_by(Receipt.lot_number, ReceiptMeasurement.line_no)
        )
        if wood_type_id is not None:
            stmt = stmt.where(Receipt.wood_type_id == wood_type_id)
        return [
            ReceiptContribution(
                receipt_id=row.id,
                lot_number=row.lot_number,
                wood_type_id=row.wood_type_id,
                thickness=row.thickness,
                pieces=row.piece_count,
            )
            for row in self.session.execute(stmt)
        ]

    def transfer_contributions(
        self, warehouse_id: UUID, wood_type_id: UUID | None = None
    ) -> list[TransferContribution]:
        stmt = (
            select(
                Transfer.id,
                Transfer.transfer_number,
                Transfer.from_warehouse_id,
                TransferItem.wood_type_id,
                TransferItem.thickness,
                TransferItem.quantity,
            )
            .join(TransferItem, TransferItem.transfer_id == Transfer.id)
            .where(
                Transfer.status == TransferStatus.COMPLETED.value,
                or_(
                    Transfer.from_warehouse_id == warehouse_id,
                    Transfer.to_warehouse_id == warehouse_id,
                ),
            )
            .order_by(Transfer.transfer_number, TransferItem.line_no)
        )
        if wood_type_id is not None:
            stmt = stmt.where(TransferItem.wood_type_id == wood_type_id)
        return [
            TransferContribution(
                transfer_id=row.id,
                transfer_number=row.transfer_number,
                wood_type_id=row.wood_type_id,
                thickness=row.thickness,
                quantity=row.quantity,
                direction=(
                    TransferDirection.OUT
                    if row.from_warehouse_id == warehouse_id
                    else TransferDirection.IN
                ),
            )
            for row in self.session.execute(stmt)
        ]

    def entry_totals(
        self, warehouse_id: UUID, wood_type_id: UUID | None = None
    ) -> list[CellTotal]:
        stmt = select(StockEntry).where(StockEntry.warehouse_id == warehouse_id)
        if wood_type_id is not None:
            stmt = stmt.where(StockEntry.wood_type_id == wood_type_id)
        return [
            CellTotal(wood_type_id=e.wood_type_id, thickness=e.thickness, total=e.total)
            for e in self.session.execute(stmt).scalars()
        ]

    def movement_totals(
        self, warehouse_id: UUID, wood_type_id: UUID | None = None
    ) -> list[CellTotal]:
        stmt = (
            select(
                StockMovement.wood_type_id,
                StockMovement.thickness,
                func.sum(StockMovement.quantity_change).label("total"),
            )
            .where(StockMovement.warehouse_id == warehouse_id)
            .group_by(StockMovement.wood_type_id, StockMovement.thickness)
        )
        if wood_type_id is not None:
            stmt = stmt.where(StockMovement.wood_type_id == wood_type_id)
        return [
            CellTotal(wood_type_id=row.wood_type_id, thickness=row.thickness, total=int(row.total or 0))
            for row in self.session.execute(stmt)
        ]

    def wood_type_names(self) -> dict[UUID, str]:
        return {
            row.id: row.name
            for row in self.session.execute(select(WoodType.id, WoodType.name))
        }
