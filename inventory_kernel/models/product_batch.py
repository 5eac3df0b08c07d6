"""
Module: inventory_kernel.models.product_batch
Responsibility: ORM persistence for inventory lots (batches).  Each lot is a
    received quantity of one product-size variant with its own expiry, cost
    and remaining availability.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (to_dto() imports the domain DTO lazily).

Invariants enforced:
    B1 -- quantity_available starts equal to quantity on receipt and is
          never driven below zero by the deductor (conditional decrement).
    B2 -- status is one of active | expired | damaged (stored as string,
          the exact values the persistence contract expects).
    B3 -- FEFO ordering support.  (product_size_id, status, expiry_date,
          received_date) index backs the allocator's candidate query.

Failure modes:
    - IntegrityError on a product_size_id with no product_sizes row
      (PostgreSQL; SQLite does not enforce foreign keys by default).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TimestampedBase


class ProductBatchModel(TimestampedBase):
    """
    Persistent storage for inventory lots.

    Contract:
        Maps to the ``product_batches`` table.  Column names and status
        values are the wire contract with the store and MUST NOT change.

    Guarantees:
        - quantity and quantity_available are whole units.
        - cost_per_unit is Decimal (Numeric(38, 9)) or NULL.
        - expiry_date NULL means "never expires" and sorts last in FEFO.
    """

    __tablename__ = "product_batches"

    __table_args__ = (
        # Query: FEFO candidates for a size
        Index(
            "idx_product_batch_fefo",
            "product_size_id",
            "status",
            "expiry_date",
            "received_date",
        ),
        # Query: expiring lots
        Index("idx_product_batch_status_expiry", "status", "expiry_date"),
        # Query: lookup by batch number
        Index("idx_product_batch_number", "product_id", "batch_number"),
    )

    product_id: Mapped[UUID] = mapped_column(nullable=False)

    product_size_id: Mapped[UUID] = mapped_column(
        ForeignKey("product_sizes.id"),
        nullable=False,
    )

    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    manufacturing_date: Mapped[date | None] = mapped_column(nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(nullable=True)

    # Received quantity (immutable after receipt)
    quantity: Mapped[int] = mapped_column(nullable=False)

    # INVARIANT B1: never negative
    quantity_available: Mapped[int] = mapped_column(nullable=False)

    cost_per_unit: Mapped[Decimal | None] = mapped_column(nullable=True)

    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)

    # INVARIANT B2
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    received_date: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        """Convert ORM model to frozen ProductBatch DTO."""
        from inventory_kernel.domain.batch import BatchStatus, ProductBatch

        return ProductBatch(
            id=self.id,
            product_id=self.product_id,
            product_size_id=self.product_size_id,
            batch_number=self.batch_number,
            lot_number=self.lot_number,
            manufacturing_date=self.manufacturing_date,
            expiry_date=self.expiry_date,
            quantity=self.quantity,
            quantity_available=self.quantity_available,
            cost_per_unit=self.cost_per_unit,
            supplier_id=self.supplier_id,
            status=BatchStatus(self.status),
            notes=self.notes,
            received_date=self.received_date,
        )

    def __repr__(self) -> str:
        return (
            f"<ProductBatch {self.id}: lot={self.lot_number} "
            f"avail={self.quantity_available}/{self.quantity} "
            f"exp={self.expiry_date} status={self.status}>"
        )
