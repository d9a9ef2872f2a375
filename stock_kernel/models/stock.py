"""
Module: stock_kernel.models.stock
Responsibility: Ledger persistence.  StockEntry holds the four drying-status
    counts of one (warehouse, wood type, thickness) cell; StockApplication
    marks one applied logical mutation; StockMovement is the append-only
    per-cell audit record of every applied delta.
Architecture position: Kernel > Models.  Written only by LedgerStore on
    behalf of StockLedger.

Invariants enforced:
    - One StockEntry per cell (uq_stock_entry_cell).  Rows are created
      lazily and never deleted.
    - One StockApplication per idempotency key (uq_stock_application_key);
      a duplicate insert proves the mutation already happened.
    - StockMovement rows are immutable once written (db/immutability.py).

Audit relevance:
    Summing StockMovement.quantity_change per cell must reproduce the
    StockEntry total; ReconciliationEngine reports any cell where it does not.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.db.types import (
    ActorId,
    ActorName,
    IdempotencyKey,
    LongText,
    PieceCount,
    ShortCode,
    ThicknessLabel,
)


class StockEntry(Base):
    """Counts of one ledger cell."""

    __tablename__ = "stock_entries"

    __table_args__ = (
        UniqueConstraint(
            "warehouse_id", "wood_type_id", "thickness",
            name="uq_stock_entry_cell",
        ),
        Index("idx_stock_entry_warehouse", "warehouse_id"),
    )

    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"), nullable=False)
    wood_type_id: Mapped[UUID] = mapped_column(ForeignKey("wood_types.id"), nullable=False)
    thickness: Mapped[ThicknessLabel] = mapped_column(nullable=False)

    not_dried: Mapped[PieceCount] = mapped_column(nullable=False, default=0)
    under_drying: Mapped[PieceCount] = mapped_column(nullable=False, default=0)
    dried: Mapped[PieceCount] = mapped_column(nullable=False, default=0)
    damaged: Mapped[PieceCount] = mapped_column(nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def total(self) -> int:
        return self.not_dried + self.under_drying + self.dried + self.damaged

    def levels(self):
        from stock_kernel.domain.values import StockLevels

        return StockLevels(
            not_dried=self.not_dried,
            under_drying=self.under_drying,
            dried=self.dried,
            damaged=self.damaged,
        )

    def set_levels(self, levels) -> None:
        self.not_dried = levels.not_dried
        self.under_drying = levels.under_drying
        self.dried = levels.dried
        self.damaged = levels.damaged

    def to_dto(self):
        from stock_kernel.domain.dtos import StockEntryRecord

        return StockEntryRecord(
            warehouse_id=self.warehouse_id,
            wood_type_id=self.wood_type_id,
            thickness=self.thickness,
            levels=self.levels(),
        )

    def __repr__(self) -> str:
        return (
            f"<StockEntry {self.warehouse_id}/{self.wood_type_id}/{self.thickness} "
            f"nd={self.not_dried} ud={self.under_drying} d={self.dried} dm={self.damaged}>"
        )


class StockApplication(Base):
    """Persisted 'applied' marker of one logical ledger mutation."""

    __tablename__ = "stock_applications"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_stock_application_key"),
        Index("idx_stock_application_source", "source_type", "source_id"),
    )

    # transfer:<id>:complete, receipt:<id>:complete
    idempotency_key: Mapped[IdempotencyKey] = mapped_column(nullable=False)

    source_type: Mapped[ShortCode] = mapped_column(nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(nullable=True)
    source_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    actor_id: Mapped[ActorId] = mapped_column(nullable=False)
    actor_name: Mapped[ActorName] = mapped_column(nullable=False)
    reason: Mapped[LongText | None] = mapped_column(nullable=True)

    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    movement_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<StockApplication {self.idempotency_key}>"


class StockMovement(Base):
    """Append-only record of one applied cell delta."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_stock_movement_cell", "warehouse_id", "wood_type_id", "thickness"),
        Index("idx_stock_movement_reference", "reference_type", "reference_id"),
    )

    application_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("stock_applications.id"), nullable=True,
    )

    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"), nullable=False)
    wood_type_id: Mapped[UUID] = mapped_column(ForeignKey("wood_types.id"), nullable=False)
    thickness: Mapped[ThicknessLabel] = mapped_column(nullable=False)
    drying_status: Mapped[ShortCode] = mapped_column(nullable=False)

    quantity_change: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    reference_type: Mapped[ShortCode] = mapped_column(nullable=False)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    actor_id: Mapped[ActorId] = mapped_column(nullable=False)
    actor_name: Mapped[ActorName] = mapped_column(nullable=False)
    reason: Mapped[LongText | None] = mapped_column(nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self):
        from stock_kernel.domain.dtos import MovementRecord
        from stock_kernel.domain.values import DryingStatus

        return MovementRecord(
            id=self.id,
            warehouse_id=self.warehouse_id,
            wood_type_id=self.wood_type_id,
            thickness=self.thickness,
            drying_status=DryingStatus(self.drying_status),
            quantity_change=self.quantity_change,
            balance_after=self.balance_after,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            reference_number=self.reference_number,
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            reason=self.reason,
            occurred_at=self.occurred_at,
        )

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.reference_type}:{self.reference_number} "
            f"{self.drying_status} {self.quantity_change:+d}>"
        )
