"""Read-only query selectors."""

from inventory_kernel.selectors.batch_selector import BatchSelector, fefo_order_by

__all__ = ["BatchSelector", "fefo_order_by"]
