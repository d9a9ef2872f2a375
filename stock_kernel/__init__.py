"""
Stock Kernel

Inter-warehouse wood stock ledger with:
- Atomic, idempotent receipt and transfer completion
- Row-locked, non-negative counts for stock-controlled warehouses
- Append-only movement log and transfer history
- Read-only reconciliation against completed documents
"""

__version__ = "0.1.0"
