"""SQLAlchemy WarehouseStore."""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.exceptions import WarehouseNotFoundError, WoodTypeNotFoundError
from stock_kernel.models.warehouse import Warehouse, WoodType


class SqlWarehouseStore:
    def __init__(self, session: Session):
        self._session = session

    def get(self, warehouse_id: UUID) -> Warehouse:
        warehouse = self._session.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise WarehouseNotFoundError(warehouse_id)
        return warehouse

    def get_by_code(self, code: str) -> Warehouse:
        warehouse = self._session.execute(
            select(Warehouse).where(Warehouse.code == code)
        ).scalar_one_or_none()
        if warehouse is None:
            raise WarehouseNotFoundError(code)
        return warehouse

    def list_all(self) -> list[Warehouse]:
        return list(
            self._session.execute(select(Warehouse).order_by(Warehouse.code)).scalars()
        )

    def get_wood_type(self, wood_type_id: UUID) -> WoodType:
        wood_type = self._session.get(WoodType, wood_type_id)
        if wood_type is None:
            raise WoodTypeNotFoundError(wood_type_id)
        return wood_type

    def get_wood_type_by_name(self, name: str) -> WoodType:
        wood_type = self._session.execute(
            select(WoodType).where(WoodType.name == name)
        ).scalar_one_or_none()
        if wood_type is None:
            raise WoodTypeNotFoundError(name)
        return wood_type

    def stock_control_flags(self, warehouse_ids: Iterable[UUID]) -> dict[UUID, bool]:
        wanted = set(warehouse_ids)
        if not wanted:
            return {}
        rows = self._session.execute(
            select(Warehouse.id, Warehouse.stock_control_enabled)
            .where(Warehouse.id.in_(wanted))
        ).all()
        flags = {row.id: row.stock_control_enabled for row in rows}
        for warehouse_id in wanted:
            if warehouse_id not in flags:
                raise WarehouseNotFoundError(warehouse_id)
        return flags
