"""Kernel services: the audit-trail writer and the stock-counter writer."""

from inventory_kernel.services.batch_transaction_service import BatchTransactionService
from inventory_kernel.services.stock_counter_service import StockCounterService

__all__ = ["BatchTransactionService", "StockCounterService"]
