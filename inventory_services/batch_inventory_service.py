"""
inventory_services.batch_inventory_service -- Lot receipt, FEFO allocation and deduction.

Responsibility:
    Orchestrate every lot-affecting operation: receive a lot, propose a FEFO
    allocation, commit an allocation (deduct), mark lots expired or damaged,
    adjust and return quantities, and reconcile the size-level stock counter.
    Also exposes the read-side queries callers need around those operations.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes FEFOAllocator (pure allocation), BatchSelector (reads),
    BatchTransactionService (audit trail) and StockCounterService (the only
    writer of ``product_sizes.stock``).

Invariants enforced:
    - One audit record per operation: every mutator writes exactly one
      ``batch_transactions`` row per lot it touches.
    - Non-negative availability: deduction uses a conditional server-side
      decrement; adjustments are rejected before any write.
    - All-or-nothing: the service only flushes.  Any failure propagates and
      the caller's rollback discards every lot decrement, audit row and
      counter change made so far.

Failure modes:
    - InvalidAllocationRequestError for a non-positive request.
    - InsufficientStockError when active lots cannot cover a request.
    - StaleAllocationError when a lot no longer holds its allocated share.
    - BatchNotFoundError / BatchNotActiveError for bad lot references.
    - NegativeQuantityError / ReturnExceedsReceivedError on adjustments.
    - ProductSizeNotFoundError when the size counter row is missing.

Audit relevance:
    Every mutation is logged with batch_id, quantity and reference, and the
    ``batch_transactions`` trail records who/what/why for each lot.

Usage:
    from inventory_kernel.db import session_scope
    from inventory_services import BatchInventoryService

    with session_scope() as session:
        service = BatchInventoryService(session)
        allocations = service.allocate_quantity(size_id, 8)
        service.deduct_from_batches(
            allocations, reference_id="SO-1001", reference_type="order",
        )
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.orm import Session

from inventory_config.schema import InventoryConfig
from inventory_engines.allocation import FEFOAllocator
from inventory_kernel.db.types import to_money
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
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.exceptions import (
    BatchNotActiveError,
    BatchNotFoundError,
    InsufficientStockError,
    InvalidBatchError,
    NegativeQuantityError,
    ReturnExceedsReceivedError,
    StaleAllocationError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.selectors.batch_selector import BatchSelector
from inventory_kernel.services.batch_transaction_service import BatchTransactionService
from inventory_kernel.services.stock_counter_service import StockCounterService

logger = get_logger("services.batch_inventory")


class BatchInventoryService:
    """
    Lot-level inventory operations.

    Contract:
        Receives a Session (and optionally a Clock and InventoryConfig) via
        constructor injection.  Never commits; the caller owns the
        transaction boundary.
    Guarantees:
        - ``allocate_quantity`` is read-only and returns a FEFO-ordered,
          exactly-summing allocation or raises InsufficientStockError.
        - ``deduct_from_batches`` decrements each lot by exactly its share
          and the size counter by the total, or raises with nothing applied
          once the caller rolls back.
        - ``allocate_and_deduct`` does both under row locks.
    Non-goals:
        - Does not manage products or sizes (only the counter on the size).
        - Does not value inventory; cost_per_unit is carried, not posted.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._config = config or InventoryConfig.with_defaults()
        self._selector = BatchSelector(session)
        self._transactions = BatchTransactionService(session, self._clock)
        self._stock = StockCounterService(session, self._clock)
        self._allocator = FEFOAllocator()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_batch(self, batch_id: UUID, refresh: bool = False) -> ProductBatchModel:
        model = self.session.get(
            ProductBatchModel, batch_id, populate_existing=refresh,
        )
        if model is None:
            logger.warning("batch_not_found", extra={"batch_id": str(batch_id)})
            raise BatchNotFoundError(str(batch_id))
        return model

    @staticmethod
    def _require_active(model: ProductBatchModel) -> None:
        if model.status != BatchStatus.ACTIVE.value:
            raise BatchNotActiveError(str(model.id), model.status)

    def _set_status(
        self,
        batch_id: UUID,
        status: BatchStatus,
        transaction_type: TransactionType,
        notes: str,
    ) -> ProductBatch:
        model = self._load_batch(batch_id)
        self._require_active(model)

        model.status = status.value
        model.updated_at = self._clock.now()
        self.session.flush()

        # Status markers carry no quantity; the size counter is left alone.
        self._transactions.record(
            batch_id=batch_id,
            transaction_type=transaction_type,
            quantity=0,
            notes=notes,
        )

        logger.info(
            "batch_status_changed",
            extra={
                "batch_id": str(batch_id),
                "status": status.value,
                "quantity_available": model.quantity_available,
            },
        )
        return model.to_dto()

    # =========================================================================
    # Receipt
    # =========================================================================

    def create_batch(
        self,
        product_id: UUID,
        product_size_id: UUID,
        quantity: int,
        lot_number: str,
        batch_number: str | None = None,
        expiry_date: date | None = None,
        manufacturing_date: date | None = None,
        cost_per_unit: Decimal | str | int | None = None,
        supplier_id: UUID | None = None,
        notes: str | None = None,
        received_date: datetime | None = None,
        created_by: UUID | None = None,
    ) -> ProductBatch:
        """
        Receive a new lot.

        Inserts the lot with ``quantity_available == quantity`` and status
        active, appends a ``receive`` transaction, and raises the size
        counter by ``quantity``.

        Raises:
            InvalidBatchError: quantity <= 0, empty lot number, or expiry
                before manufacturing date.
            ProductSizeNotFoundError: size row missing.
        """
        if quantity <= 0:
            raise InvalidBatchError("quantity", f"must be positive, got {quantity}")
        if not lot_number or not lot_number.strip():
            raise InvalidBatchError("lot_number", "must not be empty")
        if (
            expiry_date is not None
            and manufacturing_date is not None
            and expiry_date < manufacturing_date
        ):
            raise InvalidBatchError(
                "expiry_date",
                f"{expiry_date} is before manufacturing date {manufacturing_date}",
            )

        if batch_number is None:
            batch_number = generate_batch_number(
                prefix=self._config.batch_number_prefix,
                today=self._clock.today(),
            )

        model = ProductBatchModel(
            id=uuid4(),
            product_id=product_id,
            product_size_id=product_size_id,
            batch_number=batch_number,
            lot_number=lot_number.strip(),
            manufacturing_date=manufacturing_date,
            expiry_date=expiry_date,
            quantity=quantity,
            quantity_available=quantity,
            cost_per_unit=to_money(cost_per_unit),
            supplier_id=supplier_id,
            status=BatchStatus.ACTIVE.value,
            notes=notes,
            received_date=received_date or self._clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        self._transactions.record(
            batch_id=model.id,
            transaction_type=TransactionType.RECEIVE,
            quantity=quantity,
            notes=f"Received batch {batch_number}",
            created_by=created_by,
        )
        self._stock.apply_delta(product_size_id, quantity)

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(model.id),
                "product_size_id": str(product_size_id),
                "batch_number": batch_number,
                "lot_number": model.lot_number,
                "quantity": quantity,
                "expiry_date": expiry_date.isoformat() if expiry_date else None,
            },
        )
        return model.to_dto()

    # =========================================================================
    # Allocation and deduction
    # =========================================================================

    def allocate_quantity(
        self,
        product_size_id: UUID,
        requested_quantity: int,
        lock: bool = False,
    ) -> list[BatchAllocation]:
        """
        Propose a FEFO allocation for ``requested_quantity`` units.

        Read-only.  The result is advisory until passed to
        ``deduct_from_batches``.

        Raises:
            InvalidAllocationRequestError: requested_quantity <= 0.
            InsufficientStockError: available stock < requested_quantity;
                ``shortfall`` carries the unmet remainder.
        """
        batches = self._selector.get_available_batches(product_size_id, lock=lock)
        result = self._allocator.allocate(
            batches=batches,
            requested_quantity=requested_quantity,
        )

        if not result.is_fully_allocated:
            logger.warning(
                "allocation_insufficient_stock",
                extra={
                    "product_size_id": str(product_size_id),
                    "requested_quantity": requested_quantity,
                    "available": result.total_allocated,
                    "shortfall": result.shortfall,
                },
            )
            raise InsufficientStockError(
                str(product_size_id),
                requested_quantity,
                result.total_allocated,
            )

        logger.info(
            "allocation_completed",
            extra={
                "product_size_id": str(product_size_id),
                "requested_quantity": requested_quantity,
                "lot_count": result.lot_count,
            },
        )
        return list(result.allocations)

    def _decrement(self, allocation: BatchAllocation) -> ProductBatchModel:
        """Conditionally decrement one lot; raise StaleAllocationError if it no longer fits."""
        model = self._load_batch(allocation.batch_id)
        self._require_active(model)

        stmt = (
            update(ProductBatchModel)
            .where(ProductBatchModel.id == allocation.batch_id)
            .where(ProductBatchModel.status == BatchStatus.ACTIVE.value)
            .where(ProductBatchModel.quantity_available >= allocation.quantity)
            .values(
                quantity_available=ProductBatchModel.quantity_available
                - allocation.quantity,
                updated_at=self._clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)

        # Reload so the identity map reflects the server-side value.
        model = self._load_batch(allocation.batch_id, refresh=True)

        if result.rowcount != 1:
            self._require_active(model)
            logger.warning(
                "deduction_stale_allocation",
                extra={
                    "batch_id": str(allocation.batch_id),
                    "requested": allocation.quantity,
                    "available": model.quantity_available,
                },
            )
            raise StaleAllocationError(
                str(allocation.batch_id),
                allocation.quantity,
                model.quantity_available,
            )
        return model

    def deduct_from_batches(
        self,
        allocations: Sequence[BatchAllocation],
        reference_id: str | None = None,
        reference_type: str | None = None,
        created_by: UUID | None = None,
    ) -> list[BatchTransaction]:
        """
        Commit an allocation: decrement each lot and the size counters.

        Per entry: re-read the lot, decrement it atomically by the allocated
        quantity, and append a ``sale`` transaction.  Then lower each owning
        size's counter by the total taken from its lots (clamped at 0).

        Returns:
            The ``sale`` transactions, one per allocation entry.

        Raises:
            StaleAllocationError, BatchNotFoundError, BatchNotActiveError,
            ProductSizeNotFoundError.  Nothing is committed here; the
            caller's rollback undoes any entries already applied.
        """
        if not allocations:
            logger.info("deduction_skipped_empty", extra={"reference_id": reference_id})
            return []

        recorded: list[BatchTransaction] = []
        totals_by_size: dict[UUID, int] = {}

        with LogContext.bind(reference_id=reference_id):
            try:
                for allocation in allocations:
                    model = self._decrement(allocation)
                    recorded.append(
                        self._transactions.record(
                            batch_id=allocation.batch_id,
                            transaction_type=TransactionType.SALE,
                            quantity=allocation.quantity,
                            reference_id=reference_id,
                            reference_type=reference_type,
                            notes=f"Sale from lot {allocation.lot_number}",
                            created_by=created_by,
                        )
                    )
                    totals_by_size[model.product_size_id] = (
                        totals_by_size.get(model.product_size_id, 0)
                        + allocation.quantity
                    )

                for product_size_id, total in totals_by_size.items():
                    self._stock.apply_delta(product_size_id, -total)
            except Exception:
                logger.exception(
                    "deduction_failed",
                    extra={
                        "reference_type": reference_type,
                        "applied_entries": len(recorded),
                        "total_entries": len(allocations),
                    },
                )
                raise

            logger.info(
                "deduction_completed",
                extra={
                    "reference_type": reference_type,
                    "lot_count": len(recorded),
                    "total_quantity": sum(totals_by_size.values()),
                },
            )
        return recorded

    def allocate_and_deduct(
        self,
        product_size_id: UUID,
        quantity: int,
        reference_id: str | None = None,
        reference_type: str | None = None,
        created_by: UUID | None = None,
    ) -> list[BatchAllocation]:
        """
        Allocate and deduct as one unit of work.

        Candidate lots are read with ``SELECT ... FOR UPDATE`` so no other
        transaction can consume them before this one commits.

        Returns:
            The allocation that was applied.
        """
        with LogContext.bind(product_size_id=str(product_size_id)):
            allocations = self.allocate_quantity(product_size_id, quantity, lock=True)
            self.deduct_from_batches(
                allocations,
                reference_id=reference_id,
                reference_type=reference_type,
                created_by=created_by,
            )
        return allocations

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def mark_batch_expired(self, batch_id: UUID, notes: str | None = None) -> ProductBatch:
        """
        Set a lot's status to expired.

        quantity_available is kept and the size counter is not touched; the
        lot simply stops being offered for allocation.
        """
        return self._set_status(
            batch_id,
            BatchStatus.EXPIRED,
            TransactionType.EXPIRED,
            notes or "Batch marked as expired",
        )

    def mark_batch_damaged(self, batch_id: UUID, notes: str | None = None) -> ProductBatch:
        """Set a lot's status to damaged.  Same counter semantics as expiry."""
        return self._set_status(
            batch_id,
            BatchStatus.DAMAGED,
            TransactionType.DAMAGED,
            notes or "Batch marked as damaged",
        )

    def adjust_batch_quantity(
        self,
        batch_id: UUID,
        adjustment: int,
        reason: str,
        notes: str | None = None,
        created_by: UUID | None = None,
    ) -> ProductBatch:
        """
        Apply a signed correction to a lot's available quantity.

        Raises:
            BatchNotFoundError: unknown lot (nothing written).
            NegativeQuantityError: result would be below zero (nothing written).
        """
        model = self._load_batch(batch_id)
        current = model.quantity_available
        new_quantity = current + adjustment

        if new_quantity < 0:
            logger.warning(
                "adjustment_rejected_negative",
                extra={
                    "batch_id": str(batch_id),
                    "current": current,
                    "adjustment": adjustment,
                },
            )
            raise NegativeQuantityError(str(batch_id), current, adjustment)

        model.quantity_available = new_quantity
        model.updated_at = self._clock.now()
        self.session.flush()

        self._transactions.record(
            batch_id=batch_id,
            transaction_type=TransactionType.ADJUSTMENT,
            quantity=abs(adjustment),
            notes=f"{reason}: {notes or ''}",
            created_by=created_by,
        )
        self._stock.apply_delta(model.product_size_id, adjustment)

        logger.info(
            "batch_adjusted",
            extra={
                "batch_id": str(batch_id),
                "previous": current,
                "adjustment": adjustment,
                "quantity_available": new_quantity,
                "reason": reason,
            },
        )
        return model.to_dto()

    def return_to_batch(
        self,
        batch_id: UUID,
        quantity: int,
        reference_id: str | None = None,
        reference_type: str | None = None,
        notes: str | None = None,
        created_by: UUID | None = None,
    ) -> ProductBatch:
        """
        Put returned units back into an active lot.

        Raises:
            InvalidBatchError: quantity <= 0.
            BatchNotActiveError: lot is expired or damaged.
            ReturnExceedsReceivedError: availability would exceed the
                received quantity.
        """
        if quantity <= 0:
            raise InvalidBatchError("quantity", f"return must be positive, got {quantity}")

        model = self._load_batch(batch_id)
        self._require_active(model)

        if model.quantity_available + quantity > model.quantity:
            raise ReturnExceedsReceivedError(
                str(batch_id), quantity, model.quantity_available, model.quantity,
            )

        model.quantity_available += quantity
        model.updated_at = self._clock.now()
        self.session.flush()

        self._transactions.record(
            batch_id=batch_id,
            transaction_type=TransactionType.RETURN,
            quantity=quantity,
            reference_id=reference_id,
            reference_type=reference_type,
            notes=notes or f"Return to lot {model.lot_number}",
            created_by=created_by,
        )
        self._stock.apply_delta(model.product_size_id, quantity)

        logger.info(
            "batch_return_recorded",
            extra={
                "batch_id": str(batch_id),
                "quantity": quantity,
                "quantity_available": model.quantity_available,
                "reference_id": reference_id,
            },
        )
        return model.to_dto()

    def reconcile_stock_counter(self, product_size_id: UUID) -> StockReconciliation:
        """Rewrite the size counter from its active lots and report drift."""
        return self._stock.recompute(product_size_id)

    def record_transaction(
        self,
        batch_id: UUID,
        transaction_type: TransactionType,
        quantity: int,
        reference_id: str | None = None,
        reference_type: str | None = None,
        notes: str | None = None,
        created_by: UUID | None = None,
    ) -> BatchTransaction:
        """Append one audit record for a lot without changing the lot."""
        self._load_batch(batch_id)
        return self._transactions.record(
            batch_id=batch_id,
            transaction_type=transaction_type,
            quantity=quantity,
            reference_id=reference_id,
            reference_type=reference_type,
            notes=notes,
            created_by=created_by,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_available_batches(self, product_size_id: UUID) -> list[ProductBatch]:
        return self._selector.get_available_batches(product_size_id)

    def get_batches_by_size(self, product_size_id: UUID) -> list[ProductBatch]:
        return self._selector.get_batches_by_size(product_size_id)

    def get_batch(self, batch_id: UUID) -> ProductBatch:
        return self._selector.get_batch(batch_id)

    def get_batch_by_number(
        self, product_id: UUID, batch_number: str,
    ) -> ProductBatch | None:
        return self._selector.get_batch_by_number(product_id, batch_number)

    def get_total_available_quantity(self, product_size_id: UUID) -> int:
        return self._selector.get_total_available_quantity(product_size_id)

    def get_batch_transactions(self, batch_id: UUID) -> list[BatchTransaction]:
        """Audit history for one lot, newest first."""
        return self._selector.get_batch_transactions(batch_id)

    def get_transactions_by_reference(
        self, reference_type: str, reference_id: str,
    ) -> list[BatchTransaction]:
        return self._selector.get_transactions_by_reference(reference_type, reference_id)

    def get_expiring_batches(self, days: int | None = None) -> list[ExpiringBatch]:
        """
        Active lots with stock expiring within ``days`` of today.

        ``days`` defaults to ``InventoryConfig.expiry_warning_days``.  Lots
        already past expiry are included with a negative days_until_expiry.
        """
        if days is None:
            days = self._config.expiry_warning_days
        if days < 0:
            raise ValueError(f"days cannot be negative, got {days}")
        return self._selector.get_expiring_batches(self._clock.today(), days)
