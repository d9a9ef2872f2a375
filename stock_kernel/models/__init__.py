"""ORM models for the stock kernel."""

from stock_kernel.models.receipt import Receipt, ReceiptMeasurement
from stock_kernel.models.sequence import SequenceCounter
from stock_kernel.models.stock import StockApplication, StockEntry, StockMovement
from stock_kernel.models.transfer import Transfer, TransferHistory, TransferItem
from stock_kernel.models.warehouse import Warehouse, WoodType

__all__ = [
    "Warehouse",
    "WoodType",
    "StockEntry",
    "StockApplication",
    "StockMovement",
    "Transfer",
    "TransferItem",
    "TransferHistory",
    "Receipt",
    "ReceiptMeasurement",
    "SequenceCounter",
]
