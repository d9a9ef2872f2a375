"""
Stock reconciliation -- pure engine and its types.

Recomputes what a warehouse should hold from completed documents only:

    expected = receipts_in - transfers_out + transfers_in

per (wood type, thickness) bucket, and compares it with the StockEntry
total summed over drying statuses.  A second check compares each cell's
StockMovement sum with its StockEntry total.

Architecture: Kernel > Domain -- zero I/O.  ReconciliationService gathers
the inputs; this module never reads or repairs anything.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class CheckSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class CheckStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


class FindingCode(str, Enum):
    STOCK_DISCREPANCY = "STOCK_DISCREPANCY"
    LEDGER_LOG_MISMATCH = "LEDGER_LOG_MISMATCH"


class TransferDirection(str, Enum):
    OUT = "OUT"
    IN = "IN"


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class ReceiptContribution:
    """Pieces of one thickness credited by one COMPLETED lot."""

    receipt_id: UUID
    lot_number: str
    wood_type_id: UUID
    thickness: str
    pieces: int


@dataclass(frozen=True)
class TransferContribution:
    """Quantity of one COMPLETED transfer item, seen from the audited warehouse."""

    transfer_id: UUID
    transfer_number: str
    wood_type_id: UUID
    thickness: str
    quantity: int
    direction: TransferDirection


@dataclass(frozen=True)
class CellTotal:
    """A per-bucket total read from StockEntry or summed from StockMovement."""

    wood_type_id: UUID
    thickness: str
    total: int


# =============================================================================
# Outputs
# =============================================================================


@dataclass(frozen=True)
class ReconciliationRow:
    wood_type_id: UUID
    thickness: str
    expected_receipts: int
    expected_transfers_out: int
    expected_transfers_in: int
    actual_stock: int
    wood_type_name: str | None = None
    receipt_ids: tuple[UUID, ...] = ()
    lot_numbers: tuple[str, ...] = ()
    transfer_ids: tuple[UUID, ...] = ()
    transfer_numbers: tuple[str, ...] = ()

    @property
    def expected_stock(self) -> int:
        return self.expected_receipts - self.expected_transfers_out + self.expected_transfers_in

    @property
    def discrepancy(self) -> int:
        return self.actual_stock - self.expected_stock

    @property
    def is_consistent(self) -> bool:
        return self.discrepancy == 0


@dataclass(frozen=True)
class ReconciliationFinding:
    code: FindingCode
    severity: CheckSeverity
    wood_type_id: UUID
    thickness: str
    expected: int
    actual: int
    message: str


@dataclass(frozen=True)
class ReconciliationReport:
    warehouse_id: UUID
    checked_at: datetime
    rows: tuple[ReconciliationRow, ...] = ()
    findings: tuple[ReconciliationFinding, ...] = ()
    warehouse_code: str | None = None
    wood_type_id: UUID | None = None

    @property
    def status(self) -> CheckStatus:
        if any(f.severity is CheckSeverity.ERROR for f in self.findings):
            return CheckStatus.FAILED
        return CheckStatus.PASSED

    @property
    def has_discrepancies(self) -> bool:
        return self.status is CheckStatus.FAILED

    def discrepancies(self) -> tuple[ReconciliationRow, ...]:
        return tuple(row for row in self.rows if not row.is_consistent)


@dataclass
class _Bucket:
    receipts: int = 0
    transfers_out: int = 0
    transfers_in: int = 0
    receipt_ids: list[UUID] = field(default_factory=list)
    lot_numbers: list[str] = field(default_factory=list)
    transfer_ids: list[UUID] = field(default_factory=list)
    transfer_numbers: list[str] = field(default_factory=list)


def _append_unique(values: list, value) -> None:
    if value not in values:
        values.append(value)


# =============================================================================
# Engine
# =============================================================================


class ReconciliationChecker:
    """Pure reconciliation of one warehouse."""

    def build_rows(
        self,
        receipts: Iterable[ReceiptContribution],
        transfers: Iterable[TransferContribution],
        actual: Iterable[CellTotal],
        wood_type_names: Mapping[UUID, str] | None = None,
    ) -> tuple[ReconciliationRow, ...]:
        buckets: dict[tuple[UUID, str], _Bucket] = {}
        actual_totals: dict[tuple[UUID, str], int] = {}

        for receipt in receipts:
            bucket = buckets.setdefault((receipt.wood_type_id, receipt.thickness), _Bucket())
            bucket.receipts += receipt.pieces
            _append_unique(bucket.receipt_ids, receipt.receipt_id)
            _append_unique(bucket.lot_numbers, receipt.lot_number)

        for transfer in transfers:
            bucket = buckets.setdefault((transfer.wood_type_id, transfer.thickness), _Bucket())
            if transfer.direction is TransferDirection.OUT:
                bucket.transfers_out += transfer.quantity
            else:
                bucket.transfers_in += transfer.quantity
            _append_unique(bucket.transfer_ids, transfer.transfer_id)
            _append_unique(bucket.transfer_numbers, transfer.transfer_number)

        for cell in actual:
            slot = (cell.wood_type_id, cell.thickness)
            actual_totals[slot] = actual_totals.get(slot, 0) + cell.total
            buckets.setdefault(slot, _Bucket())

        names = wood_type_names or {}
        rows = []
        for (wood_type_id, thickness), bucket in sorted(
            buckets.items(), key=lambda item: (str(item[0][0]), item[0][1])
        ):
            rows.append(
                ReconciliationRow(
                    wood_type_id=wood_type_id,
                    thickness=thickness,
                    expected_receipts=bucket.receipts,
                    expected_transfers_out=bucket.transfers_out,
                    expected_transfers_in=bucket.transfers_in,
                    actual_stock=actual_totals.get((wood_type_id, thickness), 0),
                    wood_type_name=names.get(wood_type_id),
                    receipt_ids=tuple(bucket.receipt_ids),
                    lot_numbers=tuple(bucket.lot_numbers),
                    transfer_ids=tuple(bucket.transfer_ids),
                    transfer_numbers=tuple(bucket.transfer_numbers),
                )
            )
        return tuple(rows)

    def check_discrepancies(
        self, rows: Iterable[ReconciliationRow]
    ) -> list[ReconciliationFinding]:
        return [
            ReconciliationFinding(
                code=FindingCode.STOCK_DISCREPANCY,
                severity=CheckSeverity.ERROR,
                wood_type_id=row.wood_type_id,
                thickness=row.thickness,
                expected=row.expected_stock,
                actual=row.actual_stock,
                message=(
                    f"{row.wood_type_name or row.wood_type_id} {row.thickness}: ledger holds "
                    f"{row.actual_stock}, completed documents give {row.expected_stock} "
                    f"({row.discrepancy:+d})"
                ),
            )
            for row in rows
            if not row.is_consistent
        ]

    def check_movement_log(
        self,
        actual: Iterable[CellTotal],
        logged: Iterable[CellTotal],
    ) -> list[ReconciliationFinding]:
        """Cells whose movement log does not sum to the stored total."""
        entry_totals = {(c.wood_type_id, c.thickness): c.total for c in actual}
        log_totals = {(c.wood_type_id, c.thickness): c.total for c in logged}
        findings = []
        for wood_type_id, thickness in sorted(
            set(entry_totals) | set(log_totals), key=lambda slot: (str(slot[0]), slot[1])
        ):
            stored = entry_totals.get((wood_type_id, thickness), 0)
            summed = log_totals.get((wood_type_id, thickness), 0)
            if stored != summed:
                findings.append(
                    ReconciliationFinding(
                        code=FindingCode.LEDGER_LOG_MISMATCH,
                        severity=CheckSeverity.ERROR,
                        wood_type_id=wood_type_id,
                        thickness=thickness,
                        expected=summed,
                        actual=stored,
                        message=(
                            f"{thickness}: stock entry total {stored} differs from "
                            f"movement log sum {summed}"
                        ),
                    )
                )
        return findings

    def reconcile(
        self,
        warehouse_id: UUID,
        *,
        receipts: Iterable[ReceiptContribution],
        transfers: Iterable[TransferContribution],
        actual: Iterable[CellTotal],
        logged: Iterable[CellTotal],
        checked_at: datetime,
        wood_type_names: Mapping[UUID, str] | None = None,
        warehouse_code: str | None = None,
        wood_type_id: UUID | None = None,
    ) -> ReconciliationReport:
        actual = list(actual)
        rows = self.build_rows(receipts, transfers, actual, wood_type_names)
        findings = self.check_discrepancies(rows) + self.check_movement_log(actual, logged)
        return ReconciliationReport(
            warehouse_id=warehouse_id,
            checked_at=checked_at,
            rows=rows,
            findings=tuple(findings),
            warehouse_code=warehouse_code,
            wood_type_id=wood_type_id,
        )
