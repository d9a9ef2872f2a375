"""
Store protocols.

Services talk to persistence only through these interfaces.  Every row lock
in the system is taken inside a store method whose name says so
(``lock_cells``, ``get(..., lock=True)``); services never build locking
queries themselves.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from typing import Protocol
from uuid import UUID

from stock_kernel.domain.values import Actor, CellKey, LedgerReference


class WarehouseStore(Protocol):
    """Read access to warehouse and wood type master data."""

    def get(self, warehouse_id: UUID):
        """Return the Warehouse or raise WarehouseNotFoundError."""
        ...

    def get_by_code(self, code: str):
        """Return the Warehouse with this code or raise WarehouseNotFoundError."""
        ...

    def list_all(self) -> list:
        ...

    def get_wood_type(self, wood_type_id: UUID):
        """Return the WoodType or raise WoodTypeNotFoundError."""
        ...

    def get_wood_type_by_name(self, name: str):
        ...

    def stock_control_flags(self, warehouse_ids: Iterable[UUID]) -> dict[UUID, bool]:
        """Map each warehouse id to stock_control_enabled.  Missing ids raise."""
        ...


class LedgerStore(Protocol):
    """StockEntry cells, application markers and the movement log."""

    def read_cell(self, key: CellKey):
        """Unlocked read; None when the cell has never been written."""
        ...

    def lock_cells(self, keys: Iterable[CellKey]) -> dict:
        """
        Lock every cell with SELECT ... FOR UPDATE in sorted key order.

        Missing rows are created at zero inside a savepoint; losing a
        concurrent create falls back to locking the winner's row.
        """
        ...

    def list_for_warehouse(self, warehouse_id: UUID) -> list:
        ...

    def insert_application(
        self,
        idempotency_key: str,
        *,
        actor: Actor,
        reason: str | None,
        reference: LedgerReference,
        applied_at: datetime,
        movement_count: int,
    ):
        """Insert the application marker; a duplicate key raises AlreadyCompletedError."""
        ...

    def get_application(self, idempotency_key: str):
        ...

    def add_movement(self, movement) -> None:
        ...

    def list_movements(
        self,
        warehouse_id: UUID,
        *,
        wood_type_id: UUID | None = None,
        thickness: str | None = None,
        reference_type: str | None = None,
        occurred_from: datetime | None = None,
        occurred_to: datetime | None = None,
    ) -> list:
        """Movement rows of one warehouse, newest first."""
        ...


class TransferStore(Protocol):
    def add(self, transfer) -> None:
        ...

    def get(self, transfer_id: UUID, *, lock: bool = False):
        """Return the Transfer (row-locked when ``lock``) or raise TransferNotFoundError."""
        ...

    def list(
        self,
        *,
        status: str | None = None,
        warehouse_id: UUID | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> Sequence:
        ...

    def append_history(
        self,
        transfer,
        *,
        actor: Actor,
        action: str,
        occurred_at: datetime,
        details: dict | None = None,
    ) -> None:
        ...


class ReceiptStore(Protocol):
    def add(self, receipt) -> None:
        ...

    def get(self, receipt_id: UUID, *, lock: bool = False):
        """Return the Receipt (row-locked when ``lock``) or raise ReceiptNotFoundError."""
        ...

    def lot_number_exists(self, lot_number: str) -> bool:
        ...

    def replace_measurements(self, receipt, measurements: Sequence) -> None:
        ...
