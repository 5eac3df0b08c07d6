"""
Module: inventory_kernel.models.batch_transaction
Responsibility: ORM persistence for the per-lot audit trail.  One row per
    lot-affecting operation: receive, sale, adjustment, return, expired,
    damaged.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    T1 -- Append-only.  Rows are never updated or deleted; enforced by the
          ORM listeners in db/immutability.py.
    T2 -- quantity is non-negative.  Adjustments record the absolute delta;
          expired/damaged markers record 0.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE flush (T1).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base


class BatchTransactionModel(Base):
    """
    Persistent storage for lot audit records.

    Contract:
        Maps to the ``batch_transactions`` table.  ``transaction_type``
        values are the wire contract with the store and MUST NOT change.
    """

    __tablename__ = "batch_transactions"

    __table_args__ = (
        # Query: history for a lot, newest first
        Index("idx_batch_txn_batch_created", "batch_id", "created_at"),
        # Query: everything booked against an order
        Index("idx_batch_txn_reference", "reference_type", "reference_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        ForeignKey("product_batches.id"),
        nullable=False,
    )

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # INVARIANT T2
    quantity: Mapped[int] = mapped_column(nullable=False)

    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen BatchTransaction DTO."""
        from inventory_kernel.domain.batch import BatchTransaction, TransactionType

        return BatchTransaction(
            id=self.id,
            batch_id=self.batch_id,
            transaction_type=TransactionType(self.transaction_type),
            quantity=self.quantity,
            reference_id=self.reference_id,
            reference_type=self.reference_type,
            notes=self.notes,
            created_at=self.created_at,
            created_by=self.created_by,
        )

    def __repr__(self) -> str:
        return (
            f"<BatchTransaction {self.id}: batch={self.batch_id} "
            f"{self.transaction_type} qty={self.quantity}>"
        )
