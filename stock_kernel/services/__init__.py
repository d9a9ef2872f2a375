"""Stock kernel services.  Each flushes only; TransactionRunner commits."""

from stock_kernel.services.ledger_service import StockLedger
from stock_kernel.services.receipt_service import ReceiptService
from stock_kernel.services.reconciliation_service import ReconciliationService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.transaction_runner import TransactionRunner
from stock_kernel.services.transfer_service import TransferWorkflow

__all__ = [
    "StockLedger",
    "TransferWorkflow",
    "ReceiptService",
    "ReconciliationService",
    "SequenceService",
    "TransactionRunner",
]
