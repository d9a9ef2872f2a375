"""
Values -- immutable domain value objects for the stock ledger.

Responsibility:
    Status enums, the ledger cell key, per-cell stock levels, signed deltas,
    the explicit Actor identity, and the input shapes accepted by the
    transfer and receipt workflows.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Thickness labels are opaque strings, normalised by trimming only;
      an empty label is rejected.
    - Transfer item and measurement quantities are positive integers.
    - StockLevels never hold negative counts unless produced by an
      uncontrolled warehouse (the ledger decides, not this module).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID

from stock_kernel.exceptions import InvalidQuantityError, InvalidThicknessError


class DryingStatus(str, Enum):
    """Physical drying state of a piece.  Distinct from document status."""

    NOT_DRIED = "NOT_DRIED"
    UNDER_DRYING = "UNDER_DRYING"
    DRIED = "DRIED"
    DAMAGED = "DAMAGED"

    @property
    def column(self) -> str:
        """Name of the StockEntry count column holding this status."""
        return self.value.lower()


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"


class ReceiptStatus(str, Enum):
    CREATED = "CREATED"
    PENDING = "PENDING"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Transfer statuses in which items may still be edited
EDITABLE_TRANSFER_STATUSES = frozenset(
    {TransferStatus.PENDING, TransferStatus.IN_TRANSIT}
)


def normalize_thickness(label: str | None) -> str:
    """Trim a thickness label.  Never parsed as a number."""
    if label is None:
        raise InvalidThicknessError(label)
    normalized = str(label).strip()
    if not normalized:
        raise InvalidThicknessError(label)
    return normalized


def require_positive(quantity: int, field: str = "quantity") -> int:
    """Return quantity if it is a positive int (bools are rejected)."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(quantity, field)
    return quantity


@dataclass(frozen=True, slots=True)
class Actor:
    """
    An already-authenticated identity performing a mutation.

    Passed explicitly to every mutating operation; the kernel never reads
    identity from ambient state.
    """

    id: str
    name: str
    email: str | None = None
    role: str | None = None

    def __post_init__(self) -> None:
        if not self.id or not str(self.id).strip():
            raise ValueError("Actor id must not be empty")


@dataclass(frozen=True, slots=True, order=True)
class CellKey:
    """
    Key of one StockEntry row.  Ordering is the lock order.

    The thickness label must already be normalised.
    """

    warehouse_id: UUID
    wood_type_id: UUID
    thickness: str

    def sort_key(self) -> tuple[str, str, str]:
        return (str(self.warehouse_id), str(self.wood_type_id), self.thickness)


@dataclass(frozen=True, slots=True)
class StockLevels:
    """Counts of one cell, one per drying status."""

    not_dried: int = 0
    under_drying: int = 0
    dried: int = 0
    damaged: int = 0

    def get(self, status: DryingStatus) -> int:
        return getattr(self, DryingStatus(status).column)

    def with_delta(self, status: DryingStatus, delta: int) -> StockLevels:
        column = DryingStatus(status).column
        return replace(self, **{column: getattr(self, column) + delta})

    @property
    def total(self) -> int:
        return self.not_dried + self.under_drying + self.dried + self.damaged

    def is_negative(self) -> bool:
        return min(self.not_dried, self.under_drying, self.dried, self.damaged) < 0


@dataclass(frozen=True, slots=True)
class StockDelta:
    """A signed change to one status count of one cell."""

    key: CellKey
    status: DryingStatus
    quantity: int

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise InvalidQuantityError(self.quantity, "delta")
        object.__setattr__(self, "status", DryingStatus(self.status))


@dataclass(frozen=True, slots=True)
class LedgerReference:
    """What caused a ledger mutation: source document type, id and number."""

    reference_type: str
    reference_id: UUID | None = None
    reference_number: str | None = None


@dataclass(frozen=True, slots=True)
class TransferItemInput:
    """One requested line of a new transfer."""

    wood_type_id: UUID
    thickness: str
    quantity: int
    wood_status: DryingStatus = DryingStatus.NOT_DRIED
    remarks: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "thickness", normalize_thickness(self.thickness))
        require_positive(self.quantity)
        object.__setattr__(self, "wood_status", DryingStatus(self.wood_status))


@dataclass(frozen=True, slots=True)
class Measurement:
    """Pieces of one thickness measured on a receipt."""

    thickness: str
    piece_count: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "thickness", normalize_thickness(self.thickness))
        require_positive(self.piece_count, "piece_count")
