"""SQLAlchemy ReceiptStore."""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.values import Measurement
from stock_kernel.exceptions import ReceiptNotFoundError
from stock_kernel.models.receipt import Receipt, ReceiptMeasurement


class SqlReceiptStore:
    def __init__(self, session: Session):
        self._session = session

    def add(self, receipt: Receipt) -> None:
        self._session.add(receipt)

    def get(self, receipt_id: UUID, *, lock: bool = False) -> Receipt:
        stmt = select(Receipt).where(Receipt.id == receipt_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        receipt = self._session.execute(stmt).scalar_one_or_none()
        if receipt is None:
            raise ReceiptNotFoundError(receipt_id)
        return receipt

    def lot_number_exists(self, lot_number: str) -> bool:
        return (
            self._session.execute(
                select(Receipt.id).where(Receipt.lot_number == lot_number)
            ).first()
            is not None
        )

    def replace_measurements(self, receipt: Receipt, measurements: Sequence[Measurement]) -> None:
        # Old lines must be gone before new ones reuse their line numbers
        receipt.measurements.clear()
        self._session.flush()
        for line_no, measurement in enumerate(measurements, start=1):
            receipt.measurements.append(
                ReceiptMeasurement(
                    line_no=line_no,
                    thickness=measurement.thickness,
                    piece_count=measurement.piece_count,
                )
            )
        self._session.flush()
