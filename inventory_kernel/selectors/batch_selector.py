"""
Module: inventory_kernel.selectors.batch_selector
Responsibility: Read-only queries over lots and their audit trail: FEFO-ordered
    candidate lots, expiring lots, availability totals, and per-lot history.
Architecture position: Kernel > Selectors.  Returns frozen DTOs from
    inventory_kernel.domain.batch.

Invariants enforced:
    - FEFO order: expiry_date ascending with NULL expiry last, then
      received_date ascending (oldest first).  Every lot listing that feeds
      allocation uses this single ordering.
    - "Available" means status = active AND quantity_available > 0.

Failure modes:
    - BatchNotFoundError from get_batch() for an unknown id.
    - SQLAlchemy errors propagate unchanged.
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.sql import Select

from inventory_kernel.domain.batch import (
    BatchStatus,
    BatchTransaction,
    ExpiringBatch,
    ProductBatch,
)
from inventory_kernel.exceptions import BatchNotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch_transaction import BatchTransactionModel
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.models.product_size import ProductSizeModel
from inventory_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.batch")


def fefo_order_by() -> tuple:
    """ORDER BY clauses for FEFO: earliest expiry first, no-expiry last, then oldest."""
    return (
        ProductBatchModel.expiry_date.is_(None),
        ProductBatchModel.expiry_date.asc(),
        ProductBatchModel.received_date.asc(),
    )


class BatchSelector(BaseSelector[ProductBatchModel]):
    """
    Query lots and batch transactions.

    Contract:
        Read-only.  ``lock=True`` on the available-lot query adds
        ``SELECT ... FOR UPDATE`` so a caller that allocates and deducts in one
        transaction holds the candidate rows until commit (PostgreSQL; SQLite
        serializes writers at the database level and ignores the clause).
    """

    def _available_query(self, product_size_id: UUID) -> Select:
        return (
            select(ProductBatchModel)
            .where(ProductBatchModel.product_size_id == product_size_id)
            .where(ProductBatchModel.status == BatchStatus.ACTIVE.value)
            .where(ProductBatchModel.quantity_available > 0)
        )

    def get_batch(self, batch_id: UUID) -> ProductBatch:
        """Get one lot by id."""
        model = self.session.get(ProductBatchModel, batch_id)
        if model is None:
            raise BatchNotFoundError(str(batch_id))
        return model.to_dto()

    def get_batches_by_size(self, product_size_id: UUID) -> list[ProductBatch]:
        """All active lots for a size, including fully consumed ones, FEFO ordered."""
        stmt = (
            select(ProductBatchModel)
            .where(ProductBatchModel.product_size_id == product_size_id)
            .where(ProductBatchModel.status == BatchStatus.ACTIVE.value)
            .order_by(*fefo_order_by())
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def get_available_batches(
        self,
        product_size_id: UUID,
        lock: bool = False,
    ) -> list[ProductBatch]:
        """
        Active lots with stock remaining, in FEFO order.

        Args:
            product_size_id: The size variant to query.
            lock: Take row locks on the returned lots (FOR UPDATE).
        """
        stmt = self._available_query(product_size_id).order_by(*fefo_order_by())
        if lock:
            stmt = stmt.with_for_update()
        batches = [m.to_dto() for m in self.session.scalars(stmt)]

        logger.debug(
            "available_batches_loaded",
            extra={
                "product_size_id": str(product_size_id),
                "batch_count": len(batches),
                "locked": lock,
            },
        )
        return batches

    def get_total_available_quantity(self, product_size_id: UUID) -> int:
        """Sum of quantity_available over the available lots of a size."""
        stmt = (
            select(func.coalesce(func.sum(ProductBatchModel.quantity_available), 0))
            .where(ProductBatchModel.product_size_id == product_size_id)
            .where(ProductBatchModel.status == BatchStatus.ACTIVE.value)
            .where(ProductBatchModel.quantity_available > 0)
        )
        return int(self.session.scalar(stmt))

    def get_expiring_batches(self, today: date, days: int) -> list[ExpiringBatch]:
        """
        Active lots with stock whose expiry is on or before today + days.

        Lots without an expiry date never appear.  Results are ordered by
        expiry ascending and carry the size's SKU when the size row exists.
        """
        cutoff = today + timedelta(days=days)
        stmt = (
            select(ProductBatchModel, ProductSizeModel.sku)
            .outerjoin(
                ProductSizeModel,
                ProductSizeModel.id == ProductBatchModel.product_size_id,
            )
            .where(ProductBatchModel.status == BatchStatus.ACTIVE.value)
            .where(ProductBatchModel.quantity_available > 0)
            .where(ProductBatchModel.expiry_date.is_not(None))
            .where(ProductBatchModel.expiry_date <= cutoff)
            .order_by(
                ProductBatchModel.expiry_date.asc(),
                ProductBatchModel.received_date.asc(),
            )
        )

        results: list[ExpiringBatch] = []
        for model, sku in self.session.execute(stmt):
            batch = model.to_dto()
            results.append(
                ExpiringBatch(
                    batch=batch,
                    days_until_expiry=(batch.expiry_date - today).days,
                    sku=sku,
                )
            )

        logger.debug(
            "expiring_batches_loaded",
            extra={
                "cutoff": cutoff.isoformat(),
                "days": days,
                "batch_count": len(results),
            },
        )
        return results

    def get_batch_transactions(self, batch_id: UUID) -> list[BatchTransaction]:
        """Full audit history for one lot, newest first."""
        stmt = (
            select(BatchTransactionModel)
            .where(BatchTransactionModel.batch_id == batch_id)
            .order_by(BatchTransactionModel.created_at.desc())
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def get_transactions_by_reference(
        self,
        reference_type: str,
        reference_id: str,
    ) -> list[BatchTransaction]:
        """Every audit record booked against one reference (e.g. an order), oldest first."""
        stmt = (
            select(BatchTransactionModel)
            .where(BatchTransactionModel.reference_type == reference_type)
            .where(BatchTransactionModel.reference_id == reference_id)
            .order_by(BatchTransactionModel.created_at.asc())
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def get_batch_by_number(
        self,
        product_id: UUID,
        batch_number: str,
    ) -> ProductBatch | None:
        """Look up a lot by its product and batch number."""
        stmt = (
            select(ProductBatchModel)
            .where(ProductBatchModel.product_id == product_id)
            .where(ProductBatchModel.batch_number == batch_number)
            .order_by(ProductBatchModel.received_date.desc())
            .limit(1)
        )
        model = self.session.scalars(stmt).first()
        return model.to_dto() if model is not None else None
