"""
Warehouse and wood type master data.

Both tables are maintained by an external admin surface; the kernel only
reads them.  ``stock_control_enabled`` decides whether the ledger enforces
non-negative counts for a warehouse.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class Warehouse(Base):
    """A physical stock location."""

    __tablename__ = "warehouses"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # When False the ledger records deltas but never blocks them
    stock_control_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )

    def to_dto(self):
        from stock_kernel.domain.dtos import WarehouseRecord

        return WarehouseRecord(
            id=self.id,
            code=self.code,
            name=self.name,
            stock_control_enabled=self.stock_control_enabled,
        )

    def __repr__(self) -> str:
        return f"<Warehouse {self.code} control={self.stock_control_enabled}>"


class WoodType(Base):
    """Immutable wood species reference (Mninga, Mvule, ...)."""

    __tablename__ = "wood_types"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<WoodType {self.name}>"
