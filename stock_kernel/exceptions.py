"""
Typed exception hierarchy for the stock kernel.

Every error raised by the ledger, the transfer workflow and receipt
completion is a subclass of ``StockKernelError``.  Each class carries a
class-level ``code`` (machine-readable, API-safe) and stores its context as
attributes so that logs and HTTP responses can report structured fields
instead of parsing messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- AlreadyCompletedError
    |
    +-- WorkflowError
    |   +-- InvalidStateTransitionError
    |   |   +-- ItemsFrozenError
    |   +-- NoWarehouseAssignedError
    |   +-- EmptyMeasurementsError
    |
    +-- NotFoundError
    |   +-- WarehouseNotFoundError
    |   +-- WoodTypeNotFoundError
    |   +-- TransferNotFoundError
    |   +-- TransferItemNotFoundError
    |   +-- ReceiptNotFoundError
    |
    +-- ValidationError
    |   +-- SameWarehouseTransferError
    |   +-- EmptyTransferError
    |   +-- InvalidQuantityError
    |   +-- InvalidThicknessError
    |   +-- RejectionReasonRequiredError
    |   +-- DuplicateLotNumberError
    |   +-- InvalidLotNumberError
    |
    +-- ConcurrencyConflictError
    |
    +-- ImmutabilityViolationError

===============================================================================
HANDLING PATTERNS
===============================================================================

1. IDEMPOTENCY (AlreadyCompletedError is success):

    try:
        ledger.apply(deltas, idempotency_key=key, ...)
    except AlreadyCompletedError:
        return TransferCompletion.already_completed(transfer)

2. RETRY (only ConcurrencyConflictError):

    TransactionRunner retries ConcurrencyConflictError with backoff and
    re-raises everything else untouched.

3. API MAPPING:

    NotFoundError -> 404, ValidationError -> 422,
    InsufficientStockError / InvalidStateTransitionError -> 409,
    ConcurrencyConflictError -> 503.
"""

from uuid import UUID


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses have a ``code`` class attribute.
    """

    code: str = "STOCK_KERNEL_ERROR"

    def to_dict(self) -> dict:
        """Structured body for API responses: code, message and attributes."""
        body = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if key.startswith("_"):
                continue
            body[key] = str(value) if isinstance(value, UUID) else value
        return body


# Ledger errors


class StockError(StockKernelError):
    """Base exception for ledger errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """A controlled warehouse would go negative for one cell."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        warehouse_id: UUID | str,
        wood_type_id: UUID | str,
        thickness: str,
        status: str,
        available: int,
        requested: int,
    ):
        self.warehouse_id = warehouse_id
        self.wood_type_id = wood_type_id
        self.thickness = thickness
        self.status = status
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient {status} stock of {thickness} in warehouse "
            f"{warehouse_id}: available {available}, requested {requested}"
        )


class AlreadyCompletedError(StockError):
    """The idempotency key was already applied.  Callers treat this as success."""

    code: str = "ALREADY_COMPLETED"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"Stock application already recorded: {idempotency_key}")


# Workflow errors


class WorkflowError(StockKernelError):
    """Base exception for transfer and receipt workflow errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidStateTransitionError(WorkflowError):
    """The requested action is not allowed from the entity's current status."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: UUID | str,
        from_status: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in status {from_status}"
        )


class ItemsFrozenError(InvalidStateTransitionError):
    """Transfer items may only be edited while PENDING or IN_TRANSIT."""

    code: str = "ITEMS_FROZEN"


class NoWarehouseAssignedError(WorkflowError):
    """Receipt has no warehouse to credit."""

    code: str = "NO_WAREHOUSE_ASSIGNED"

    def __init__(self, receipt_id: UUID | str, lot_number: str):
        self.receipt_id = receipt_id
        self.lot_number = lot_number
        super().__init__(f"No warehouse assigned to lot {lot_number}")


class EmptyMeasurementsError(WorkflowError):
    """Receipt has no measured pieces."""

    code: str = "EMPTY_MEASUREMENTS"

    def __init__(self, receipt_id: UUID | str, lot_number: str):
        self.receipt_id = receipt_id
        self.lot_number = lot_number
        super().__init__(f"No measurements recorded for lot {lot_number}")


# Not found


class NotFoundError(StockKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class WarehouseNotFoundError(NotFoundError):
    code: str = "WAREHOUSE_NOT_FOUND"

    def __init__(self, warehouse_id: UUID | str):
        self.warehouse_id = warehouse_id
        super().__init__(f"Warehouse not found: {warehouse_id}")


class WoodTypeNotFoundError(NotFoundError):
    code: str = "WOOD_TYPE_NOT_FOUND"

    def __init__(self, wood_type_id: UUID | str):
        self.wood_type_id = wood_type_id
        super().__init__(f"Wood type not found: {wood_type_id}")


class TransferNotFoundError(NotFoundError):
    code: str = "TRANSFER_NOT_FOUND"

    def __init__(self, transfer_id: UUID | str):
        self.transfer_id = transfer_id
        super().__init__(f"Transfer not found: {transfer_id}")


class TransferItemNotFoundError(NotFoundError):
    code: str = "TRANSFER_ITEM_NOT_FOUND"

    def __init__(self, transfer_id: UUID | str, item_id: UUID | str):
        self.transfer_id = transfer_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found on transfer {transfer_id}")


class ReceiptNotFoundError(NotFoundError):
    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, receipt_id: UUID | str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt not found: {receipt_id}")


# Validation


class ValidationError(StockKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class SameWarehouseTransferError(ValidationError):
    code: str = "SAME_WAREHOUSE_TRANSFER"

    def __init__(self, warehouse_id: UUID | str):
        self.warehouse_id = warehouse_id
        super().__init__(
            f"Source and destination warehouse are the same: {warehouse_id}"
        )


class EmptyTransferError(ValidationError):
    code: str = "EMPTY_TRANSFER"

    def __init__(self):
        super().__init__("A transfer needs at least one item")


class InvalidQuantityError(ValidationError):
    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: int, field: str = "quantity"):
        self.quantity = quantity
        self.field = field
        super().__init__(f"{field} must be a positive integer, got {quantity!r}")


class InvalidThicknessError(ValidationError):
    code: str = "INVALID_THICKNESS"

    def __init__(self, thickness: str | None):
        self.thickness = thickness
        super().__init__(f"Thickness label must not be empty, got {thickness!r}")


class RejectionReasonRequiredError(ValidationError):
    code: str = "REJECTION_REASON_REQUIRED"

    def __init__(self, transfer_id: UUID | str):
        self.transfer_id = transfer_id
        super().__init__(f"A reason is required to reject transfer {transfer_id}")


class DuplicateLotNumberError(ValidationError):
    code: str = "DUPLICATE_LOT_NUMBER"

    def __init__(self, lot_number: str):
        self.lot_number = lot_number
        super().__init__(f"Lot number already exists: {lot_number}")


class InvalidLotNumberError(ValidationError):
    code: str = "INVALID_LOT_NUMBER"

    def __init__(self, lot_number: str | None):
        self.lot_number = lot_number
        super().__init__(f"Lot number must not be empty, got {lot_number!r}")


# Concurrency


class ConcurrencyConflictError(StockKernelError):
    """
    Lock wait timed out, deadlock, or serialization failure.

    The only error TransactionRunner retries.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, message: str = "Concurrent update conflict", retry_after: int = 1):
        self.retry_after = retry_after
        super().__init__(message)


# Immutability


class ImmutabilityViolationError(StockKernelError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: UUID | str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(
            f"{entity_type} {entity_id} is append-only; {operation} rejected"
        )
