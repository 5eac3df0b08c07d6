"""Pure domain layer: value objects, enumerations and the clock abstraction."""

from inventory_kernel.domain.batch import (
    BatchAllocation,
    BatchStatus,
    BatchTransaction,
    ExpiringBatch,
    ProductBatch,
    StockReconciliation,
    TransactionType,
    generate_batch_number,
)
from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "BatchAllocation",
    "BatchStatus",
    "BatchTransaction",
    "Clock",
    "DeterministicClock",
    "ExpiringBatch",
    "ProductBatch",
    "StockReconciliation",
    "SystemClock",
    "TransactionType",
    "generate_batch_number",
]
