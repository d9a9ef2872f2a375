"""SQLAlchemy TransferStore."""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from stock_kernel.domain.values import Actor
from stock_kernel.exceptions import TransferNotFoundError
from stock_kernel.models.transfer import Transfer, TransferHistory


class SqlTransferStore:
    def __init__(self, session: Session):
        self._session = session

    def add(self, transfer: Transfer) -> None:
        self._session.add(transfer)

    def get(self, transfer_id: UUID, *, lock: bool = False) -> Transfer:
        stmt = select(Transfer).where(Transfer.id == transfer_id)
        if lock:
            # Lock only the transfer row; items and history load separately
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        transfer = self._session.execute(stmt).scalar_one_or_none()
        if transfer is None:
            raise TransferNotFoundError(transfer_id)
        return transfer

    def list(
        self,
        *,
        status: str | None = None,
        warehouse_id: UUID | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[Transfer]:
        stmt = select(Transfer).options(
            selectinload(Transfer.items), selectinload(Transfer.history)
        )
        if status is not None:
            stmt = stmt.where(Transfer.status == status)
        if warehouse_id is not None:
            stmt = stmt.where(
                or_(
                    Transfer.from_warehouse_id == warehouse_id,
                    Transfer.to_warehouse_id == warehouse_id,
                )
            )
        if date_from is not None:
            stmt = stmt.where(Transfer.transfer_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Transfer.transfer_date <= date_to)
        stmt = stmt.order_by(Transfer.transfer_date.desc(), Transfer.transfer_number.desc())
        return list(self._session.execute(stmt).scalars())

    def append_history(
        self,
        transfer: Transfer,
        *,
        actor: Actor,
        action: str,
        occurred_at: datetime,
        details: dict | None = None,
    ) -> TransferHistory:
        next_seq = (
            self._session.execute(
                select(func.coalesce(func.max(TransferHistory.seq), 0))
                .where(TransferHistory.transfer_id == transfer.id)
            ).scalar_one()
            + 1
        )
        entry = TransferHistory(
            transfer_id=transfer.id,
            seq=next_seq,
            actor_id=actor.id,
            actor_name=actor.name,
            action=action,
            occurred_at=occurred_at,
            details=details,
        )
        transfer.history.append(entry)
        self._session.flush()
        return entry
