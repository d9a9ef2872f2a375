"""
ORM-level append-only enforcement.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
SQL reaches the database.  The listeners registered here reject:

Entity              | Rule
--------------------|--------------------------------------------
TransferHistory     | never updated or deleted
StockMovement       | never updated or deleted
StockApplication    | never updated or deleted
Transfer            | transfer_number never changes
Receipt             | lot_number never changes

A violation raises ImmutabilityViolationError and aborts the flush.
"""

from sqlalchemy import event, inspect

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(entity_type: str, target, operation: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        operation=operation,
    )


def _reject_update(mapper, connection, target):
    _reject(type(target).__name__, target, "UPDATE")


def _reject_delete(mapper, connection, target):
    _reject(type(target).__name__, target, "DELETE")


def _frozen_column_check(column_name: str):
    def _check(mapper, connection, target):
        history = inspect(target).attrs[column_name].history
        if history.deleted and history.deleted[0] is not None:
            _reject(type(target).__name__, target, f"UPDATE {column_name}")

    _check.__name__ = f"_check_{column_name}_frozen"
    return _check


_check_transfer_number = _frozen_column_check("transfer_number")
_check_lot_number = _frozen_column_check("lot_number")


def _listeners():
    from stock_kernel.models.receipt import Receipt
    from stock_kernel.models.stock import StockApplication, StockMovement
    from stock_kernel.models.transfer import Transfer, TransferHistory

    return [
        (TransferHistory, "before_update", _reject_update),
        (TransferHistory, "before_delete", _reject_delete),
        (StockMovement, "before_update", _reject_update),
        (StockMovement, "before_delete", _reject_delete),
        (StockApplication, "before_update", _reject_update),
        (StockApplication, "before_delete", _reject_delete),
        (Transfer, "before_update", _check_transfer_number),
        (Receipt, "before_update", _check_lot_number),
    ]


def register_immutability_listeners() -> None:
    """
    Register all append-only listeners.  Safe to call more than once.

    Call once at startup, after models are importable.
    """
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the listeners.

    WARNING: Only use this in tests that need to corrupt data on purpose.
    """
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
