"""
ReconciliationService -- imperative shell around ReconciliationChecker.

Read-only: gathers completed receipts, completed transfers, StockEntry
totals and StockMovement sums through StockSelector, and hands them to
the pure checker.  Discrepancies are reported and logged, never repaired.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.reconciliation import ReconciliationChecker, ReconciliationReport
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.stock_selector import StockSelector
from stock_kernel.stores.warehouse_store import SqlWarehouseStore

logger = get_logger("services.reconciliation")


class ReconciliationService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        checker: ReconciliationChecker | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._checker = checker or ReconciliationChecker()
        self._selector = StockSelector(session)
        self._warehouses = SqlWarehouseStore(session)

    def reconcile(self, warehouse_id: UUID, wood_type_id: UUID | None = None) -> ReconciliationReport:
        warehouse = self._warehouses.get(warehouse_id)
        if wood_type_id is not None:
            self._warehouses.get_wood_type(wood_type_id)

        report = self._checker.reconcile(
            warehouse.id,
            receipts=self._selector.receipt_contributions(warehouse.id, wood_type_id),
            transfers=self._selector.transfer_contributions(warehouse.id, wood_type_id),
            actual=self._selector.entry_totals(warehouse.id, wood_type_id),
            logged=self._selector.movement_totals(warehouse.id, wood_type_id),
            checked_at=self._clock.now(),
            wood_type_names=self._selector.wood_type_names(),
            warehouse_code=warehouse.code,
            wood_type_id=wood_type_id,
        )

        extra = {
            "warehouse_id": str(warehouse.id),
            "warehouse_code": warehouse.code,
            "row_count": len(report.rows),
            "finding_count": len(report.findings),
            "status": report.status.value,
        }
        if report.has_discrepancies:
            logger.warning(
                "reconciliation_discrepancies_found",
                extra={**extra, "finding_codes": sorted({f.code.value for f in report.findings})},
            )
        else:
            logger.info("reconciliation_passed", extra=extra)
        return report

    def reconcile_all(self) -> list[ReconciliationReport]:
        return [self.reconcile(warehouse.id) for warehouse in self._warehouses.list_all()]
