"""
SqlLedgerStore -- StockEntry locking, application markers, movement log.

Locking protocol:
    Cells are locked with ``SELECT ... FOR UPDATE`` in ascending
    (warehouse_id, wood_type_id, thickness) order.  Two transactions that
    touch overlapping cells therefore acquire them in the same order and
    cannot deadlock on each other.  A missing row is inserted inside a
    savepoint; if another transaction inserted it first the unique
    constraint fires, the savepoint is rolled back, and the winner's row is
    locked instead (same pattern as sequence counters).

On SQLite ``with_for_update()`` renders nothing; the database-level write
lock serializes writers instead.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.values import Actor, CellKey, LedgerReference
from stock_kernel.exceptions import AlreadyCompletedError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import StockApplication, StockEntry, StockMovement

logger = get_logger("stores.ledger")


class SqlLedgerStore:
    def __init__(self, session: Session):
        self._session = session

    def _cell_query(self, key: CellKey):
        return select(StockEntry).where(
            StockEntry.warehouse_id == key.warehouse_id,
            StockEntry.wood_type_id == key.wood_type_id,
            StockEntry.thickness == key.thickness,
        )

    def read_cell(self, key: CellKey) -> StockEntry | None:
        return self._session.execute(self._cell_query(key)).scalar_one_or_none()

    def _select_for_update(self, key: CellKey) -> StockEntry | None:
        return self._session.execute(
            self._cell_query(key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_or_create(self, key: CellKey) -> StockEntry:
        entry = self._select_for_update(key)
        if entry is not None:
            return entry

        savepoint = self._session.begin_nested()
        try:
            entry = StockEntry(
                warehouse_id=key.warehouse_id,
                wood_type_id=key.wood_type_id,
                thickness=key.thickness,
                not_dried=0,
                under_drying=0,
                dried=0,
                damaged=0,
            )
            self._session.add(entry)
            self._session.flush()
            savepoint.commit()
            logger.debug(
                "stock_entry_created",
                extra={
                    "warehouse_id": str(key.warehouse_id),
                    "wood_type_id": str(key.wood_type_id),
                    "thickness": key.thickness,
                },
            )
            return entry
        except IntegrityError:
            # Another transaction created the cell first
            logger.debug(
                "stock_entry_create_race_retry",
                extra={"warehouse_id": str(key.warehouse_id), "thickness": key.thickness},
            )
            savepoint.rollback()
            return self._session.execute(
                self._cell_query(key)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()

    def lock_cells(self, keys: Iterable[CellKey]) -> dict[CellKey, StockEntry]:
        locked: dict[CellKey, StockEntry] = {}
        for key in sorted(set(keys), key=CellKey.sort_key):
            locked[key] = self._lock_or_create(key)
        return locked

    def list_for_warehouse(self, warehouse_id: UUID) -> list[StockEntry]:
        return list(
            self._session.execute(
                select(StockEntry)
                .where(StockEntry.warehouse_id == warehouse_id)
                .order_by(StockEntry.wood_type_id, StockEntry.thickness)
            ).scalars()
        )

    def get_application(self, idempotency_key: str) -> StockApplication | None:
        return self._session.execute(
            select(StockApplication).where(StockApplication.idempotency_key == idempotency_key)
        ).scalar_one_or_none()

    def insert_application(
        self,
        idempotency_key: str,
        *,
        actor: Actor,
        reason: str | None,
        reference: LedgerReference,
        applied_at: datetime,
        movement_count: int,
    ) -> StockApplication:
        if self.get_application(idempotency_key) is not None:
            raise AlreadyCompletedError(idempotency_key)

        savepoint = self._session.begin_nested()
        try:
            application = StockApplication(
                idempotency_key=idempotency_key,
                source_type=reference.reference_type,
                source_id=reference.reference_id,
                source_number=reference.reference_number,
                actor_id=actor.id,
                actor_name=actor.name,
                reason=reason,
                applied_at=applied_at,
                movement_count=movement_count,
            )
            self._session.add(application)
            self._session.flush()
            savepoint.commit()
            return application
        except IntegrityError as exc:
            # A concurrent transaction committed the same key
            savepoint.rollback()
            raise AlreadyCompletedError(idempotency_key) from exc

    def add_movement(self, movement: StockMovement) -> None:
        self._session.add(movement)

    def list_movements(
        self,
        warehouse_id: UUID,
        *,
        wood_type_id: UUID | None = None,
        thickness: str | None = None,
        reference_type: str | None = None,
        occurred_from: datetime | None = None,
        occurred_to: datetime | None = None,
    ) -> list[StockMovement]:
        stmt = select(StockMovement).where(StockMovement.warehouse_id == warehouse_id)
        if wood_type_id is not None:
            stmt = stmt.where(StockMovement.wood_type_id == wood_type_id)
        if thickness is not None:
            stmt = stmt.where(StockMovement.thickness == thickness)
        if reference_type is not None:
            stmt = stmt.where(StockMovement.reference_type == reference_type)
        if occurred_from is not None:
            stmt = stmt.where(StockMovement.occurred_at >= occurred_from)
        if occurred_to is not None:
            stmt = stmt.where(StockMovement.occurred_at <= occurred_to)
        stmt = stmt.order_by(
            StockMovement.occurred_at.desc(),
            StockMovement.wood_type_id,
            StockMovement.thickness,
            StockMovement.drying_status,
        )
        return list(self._session.execute(stmt).scalars())
