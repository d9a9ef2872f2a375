"""Persistence interfaces and their SQLAlchemy implementations."""

from stock_kernel.stores.base import LedgerStore, ReceiptStore, TransferStore, WarehouseStore
from stock_kernel.stores.ledger_store import SqlLedgerStore
from stock_kernel.stores.receipt_store import SqlReceiptStore
from stock_kernel.stores.transfer_store import SqlTransferStore
from stock_kernel.stores.warehouse_store import SqlWarehouseStore

__all__ = [
    "LedgerStore",
    "TransferStore",
    "ReceiptStore",
    "WarehouseStore",
    "SqlLedgerStore",
    "SqlTransferStore",
    "SqlReceiptStore",
    "SqlWarehouseStore",
]
