"""
Lot Domain Models (``inventory_kernel.domain.batch``).

Responsibility
--------------
Frozen value objects for the nouns of lot tracking: lots (batches), proposed
allocations, audit transactions, expiring-lot views and stock-counter
reconciliations.  Also the status and transaction-type enumerations whose
string values form the persistence contract.

Architecture
------------
Layer: **Kernel > Domain** -- pure data structures.  All dataclasses are
``frozen=True``.  They carry NO database identity and NO I/O; ORM models
convert to them via ``to_dto()``.

Invariants
----------
- ``BatchAllocation.quantity`` is positive.
- ``ProductBatch.quantity_available`` is non-negative.
- Enumeration values are exactly the strings stored in the database.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.db.types import round_money


class BatchStatus(str, Enum):
    """Lot lifecycle states."""

    ACTIVE = "active"
    EXPIRED = "expired"
    DAMAGED = "damaged"


class TransactionType(str, Enum):
    """Kinds of lot-affecting operations recorded in the audit trail."""

    RECEIVE = "receive"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    EXPIRED = "expired"
    DAMAGED = "damaged"


@dataclass(frozen=True)
class ProductBatch:
    """
    A received lot of one product-size variant.

    Contract: Immutable snapshot of a ``product_batches`` row.  A newer
    snapshot must be read after any mutation.
    """

    id: UUID
    product_id: UUID
    product_size_id: UUID
    batch_number: str
    lot_number: str
    quantity: int
    quantity_available: int
    received_date: datetime
    status: BatchStatus = BatchStatus.ACTIVE
    manufacturing_date: date | None = None
    expiry_date: date | None = None
    cost_per_unit: Decimal | None = None
    supplier_id: UUID | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.quantity_available < 0:
            raise ValueError(
                f"quantity_available cannot be negative, got {self.quantity_available}"
            )

    @property
    def is_available(self) -> bool:
        """True if the lot can be allocated from."""
        return self.status == BatchStatus.ACTIVE and self.quantity_available > 0


@dataclass(frozen=True)
class BatchAllocation:
    """
    One entry of a proposed, not-yet-committed allocation.

    Produced by the allocator, consumed exactly once by the deductor.
    """

    batch_id: UUID
    lot_number: str
    quantity: int
    expiry_date: date | None = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"Allocation quantity must be positive, got {self.quantity}")


@dataclass(frozen=True)
class BatchTransaction:
    """An append-only audit record for one lot-affecting operation."""

    id: UUID
    batch_id: UUID
    transaction_type: TransactionType
    quantity: int
    created_at: datetime
    reference_id: str | None = None
    reference_type: str | None = None
    notes: str | None = None
    created_by: UUID | None = None


@dataclass(frozen=True)
class ExpiringBatch:
    """An active lot whose expiry falls inside a warning window."""

    batch: ProductBatch
    days_until_expiry: int
    sku: str | None = None

    @property
    def is_past_expiry(self) -> bool:
        return self.days_until_expiry < 0

    @property
    def value_at_risk(self) -> Decimal | None:
        """Cost of the remaining units, or None when the lot has no unit cost."""
        if self.batch.cost_per_unit is None:
            return None
        return round_money(self.batch.cost_per_unit * self.batch.quantity_available)


@dataclass(frozen=True)
class StockReconciliation:
    """Result of recomputing a size-level stock counter from its lots."""

    product_size_id: UUID
    recorded: int
    computed: int

    @property
    def drift(self) -> int:
        """recorded - computed; positive means the counter overstated stock."""
        return self.recorded - self.computed

    @property
    def in_sync(self) -> bool:
        return self.drift == 0


def generate_batch_number(
    prefix: str = "BATCH",
    today: date | None = None,
    rng: random.Random | None = None,
) -> str:
    """
    Build a batch number of the form ``PREFIX-YYMM-NNNN``.

    ``today`` defaults to the current date and ``rng`` to a freshly seeded
    generator; pass both for deterministic output.
    """
    today = today or date.today()
    rng = rng or random.Random()
    suffix = rng.randint(0, 9999)
    return f"{prefix}-{today:%y%m}-{suffix:04d}"
