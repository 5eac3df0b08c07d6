"""
inventory_services -- Stateful orchestration over engines and kernel.

Services own the lot-affecting workflows and are the public API callers use
inside a ``session_scope()``.
"""

from inventory_services.batch_inventory_service import BatchInventoryService

__all__ = ["BatchInventoryService"]
