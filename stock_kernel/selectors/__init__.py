"""Read-only selectors."""

from stock_kernel.selectors.stock_selector import StockSelector

__all__ = ["StockSelector"]
