"""
StockCounterService -- the single writer of ``product_sizes.stock``.

Responsibility:
    Maintain the denormalized size-level stock counter.  Lot mutators call
    ``apply_delta`` with the signed change they made; ``recompute`` rebuilds
    the counter from the lots themselves and reports any drift.

Architecture position:
    Kernel > Services.  Reads availability through BatchSelector.

Invariants enforced:
    S1 -- The counter is never written below zero (apply_delta clamps).
    S2 -- Single code path: no other module writes ``product_sizes.stock``.
    S3 -- ``recompute`` sets the counter to the sum of quantity_available
          over active lots.

Failure modes:
    - ProductSizeNotFoundError if the size row does not exist.  The caller's
      rollback then discards the lot mutation that triggered the update.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.batch import StockReconciliation
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.exceptions import ProductSizeNotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.product_size import ProductSizeModel
from inventory_kernel.selectors.batch_selector import BatchSelector
from inventory_kernel.services.base import BaseService

logger = get_logger("services.stock_counter")


class StockCounterService(BaseService[ProductSizeModel]):
    """Reads and writes the size-level stock counter."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._selector = BatchSelector(session)

    def _load_for_update(self, product_size_id: UUID) -> ProductSizeModel:
        stmt = (
            select(ProductSizeModel)
            .where(ProductSizeModel.id == product_size_id)
            .with_for_update()
        )
        size = self.session.scalars(stmt).first()
        if size is None:
            logger.error(
                "product_size_not_found",
                extra={"product_size_id": str(product_size_id)},
            )
            raise ProductSizeNotFoundError(str(product_size_id))
        return size

    def apply_delta(self, product_size_id: UUID, delta: int) -> int:
        """
        Add a signed delta to the counter, clamping the result at zero.

        Returns:
            The new counter value.
        """
        size = self._load_for_update(product_size_id)
        previous = size.stock or 0
        new_stock = previous + delta
        if new_stock < 0:
            logger.warning(
                "stock_counter_clamped",
                extra={
                    "product_size_id": str(product_size_id),
                    "previous": previous,
                    "delta": delta,
                    "unclamped": new_stock,
                },
            )
            new_stock = 0

        size.stock = new_stock
        size.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "stock_counter_updated",
            extra={
                "product_size_id": str(product_size_id),
                "previous": previous,
                "delta": delta,
                "stock": new_stock,
            },
        )
        return new_stock

    def recompute(self, product_size_id: UUID) -> StockReconciliation:
        """
        Rebuild the counter from active lots.

        Returns:
            StockReconciliation with the value that was recorded before and
            the value computed from lots (now written).
        """
        size = self._load_for_update(product_size_id)
        recorded = size.stock or 0
        computed = self._selector.get_total_available_quantity(product_size_id)
        result = StockReconciliation(
            product_size_id=product_size_id,
            recorded=recorded,
            computed=computed,
        )

        if not result.in_sync:
            size.stock = computed
            size.updated_at = self._clock.now()
            self.session.flush()
            logger.warning(
                "stock_counter_drift_corrected",
                extra={
                    "product_size_id": str(product_size_id),
                    "recorded": recorded,
                    "computed": computed,
                    "drift": result.drift,
                },
            )
        else:
            logger.info(
                "stock_counter_in_sync",
                extra={
                    "product_size_id": str(product_size_id),
                    "stock": computed,
                },
            )
        return result
