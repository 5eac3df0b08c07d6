"""ORM models. Importing this package registers every table on Base.metadata."""

from inventory_kernel.models.batch_transaction import BatchTransactionModel
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.models.product_size import ProductSizeModel

__all__ = [
    "ProductBatchModel",
    "BatchTransactionModel",
    "ProductSizeModel",
]
