"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the allocator and deductor must be able to tell "not enough stock"
apart from "the lot moved under us" apart from "the database is down" without
parsing message strings.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        allocations = service.allocate_quantity(size_id, 8)
    except InsufficientStockError as e:
        notify_user(f"Only {e.available} units left")
        api_response(code=e.code, shortfall=e.shortfall)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- BatchError
    |   +-- BatchNotFoundError
    |   +-- InvalidBatchError
    |   +-- BatchNotActiveError
    |
    +-- AllocationError
    |   +-- InvalidAllocationRequestError
    |   +-- InsufficientStockError
    |   +-- StaleAllocationError
    |
    +-- AdjustmentError
    |   +-- NegativeQuantityError
    |   +-- ReturnExceedsReceivedError
    |
    +-- StockCounterError
    |   +-- ProductSizeNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Batch           | BATCH_NOT_FOUND             | Lot ID doesn't exist
                | INVALID_BATCH               | Lot attributes fail validation on receipt
                | BATCH_NOT_ACTIVE            | Operation requires an active lot
----------------|-----------------------------|-----------------------------------------
Allocation      | INVALID_ALLOCATION_REQUEST  | Requested quantity <= 0
                | INSUFFICIENT_STOCK          | Active lots cannot cover the request
                | STALE_ALLOCATION            | Lot no longer holds the allocated quantity
----------------|-----------------------------|-----------------------------------------
Adjustment      | NEGATIVE_QUANTITY           | Adjustment would drive availability < 0
                | RETURN_EXCEEDS_RECEIVED     | Return would exceed the received quantity
----------------|-----------------------------|-----------------------------------------
Stock counter   | PRODUCT_SIZE_NOT_FOUND      | Size row for the counter doesn't exist
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an audit transaction

===============================================================================
HANDLING POLICY
===============================================================================

Errors always propagate.  No query or stock-sync path returns False or an
empty list in place of raising.  Because services only flush, a raised error
lets the caller's ``session_scope()`` roll back every write made by the
failing operation.

===============================================================================
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Batch-related exceptions


class BatchError(InventoryKernelError):
    """Base exception for lot-related errors."""

    code: str = "BATCH_ERROR"


class BatchNotFoundError(BatchError):
    """Referenced lot does not exist."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class InvalidBatchError(BatchError):
    """Lot attributes failed validation when receiving inventory."""

    code: str = "INVALID_BATCH"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid batch {field}: {reason}")


class BatchNotActiveError(BatchError):
    """Operation requires an active lot."""

    code: str = "BATCH_NOT_ACTIVE"

    def __init__(self, batch_id: str, status: str):
        self.batch_id = batch_id
        self.status = status
        super().__init__(f"Batch {batch_id} is {status}, expected active")


# Allocation-related exceptions


class AllocationError(InventoryKernelError):
    """Base exception for allocation and deduction errors."""

    code: str = "ALLOCATION_ERROR"


class InvalidAllocationRequestError(AllocationError):
    """Requested quantity must be positive."""

    code: str = "INVALID_ALLOCATION_REQUEST"

    def __init__(self, requested_quantity: int):
        self.requested_quantity = requested_quantity
        super().__init__(
            f"Requested quantity must be positive, got {requested_quantity}"
        )


class InsufficientStockError(AllocationError):
    """
    Active lots cannot cover the requested quantity.

    No allocation is returned and no lot is touched.  ``shortfall`` is the
    unmet remainder (requested - available).
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_size_id: str,
        requested: int,
        available: int,
    ):
        self.product_size_id = product_size_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient stock. Need {self.shortfall} more units "
            f"(requested {requested}, available {available})"
        )


class StaleAllocationError(AllocationError):
    """
    A lot no longer holds the quantity an allocation assigned to it.

    Raised by the conditional decrement when another writer consumed the
    lot between allocation and deduction.
    """

    code: str = "STALE_ALLOCATION"

    def __init__(self, batch_id: str, requested: int, available: int | None):
        self.batch_id = batch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Batch {batch_id} cannot supply {requested} units "
            f"(available: {available})"
        )


# Adjustment-related exceptions


class AdjustmentError(InventoryKernelError):
    """Base exception for quantity adjustment errors."""

    code: str = "ADJUSTMENT_ERROR"


class NegativeQuantityError(AdjustmentError):
    """Adjustment would result in negative available quantity."""

    code: str = "NEGATIVE_QUANTITY"

    def __init__(self, batch_id: str, current: int, adjustment: int):
        self.batch_id = batch_id
        self.current = current
        self.adjustment = adjustment
        super().__init__(
            f"Adjustment would result in negative quantity for batch {batch_id}: "
            f"{current} + ({adjustment}) = {current + adjustment}"
        )


class ReturnExceedsReceivedError(AdjustmentError):
    """Returned quantity would push availability above the received quantity."""

    code: str = "RETURN_EXCEEDS_RECEIVED"

    def __init__(self, batch_id: str, quantity: int, available: int, received: int):
        self.batch_id = batch_id
        self.quantity = quantity
        self.available = available
        self.received = received
        super().__init__(
            f"Return of {quantity} to batch {batch_id} exceeds received quantity "
            f"({available} available of {received} received)"
        )


# Stock counter exceptions


class StockCounterError(InventoryKernelError):
    """Base exception for size-level stock counter errors."""

    code: str = "STOCK_COUNTER_ERROR"


class ProductSizeNotFoundError(StockCounterError):
    """Size row holding the denormalized counter does not exist."""

    code: str = "PRODUCT_SIZE_NOT_FOUND"

    def __init__(self, product_size_id: str):
        self.product_size_id = product_size_id
        super().__init__(f"Product size not found: {product_size_id}")


# Immutability-related exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Batch transactions are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
