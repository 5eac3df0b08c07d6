"""
Module: inventory_engines.allocation
Responsibility:
    Split a requested quantity across lots in FEFO order (first-expiry,
    first-out, falling back to first-received) with a greedy walk.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import inventory_kernel/domain and inventory_kernel/exceptions.

Invariants enforced:
    - Ordering: earliest expiry first, lots without expiry last, ties broken by
      oldest received_date.
    - Conservation: total_allocated + shortfall == requested_quantity.
    - Minimality: every lot except the last one used is fully consumed, so no
      later lot is touched while an earlier one still has stock.
    - Purity: no clock access, no I/O.

Failure modes:
    - InvalidAllocationRequestError if requested_quantity <= 0.

Usage:
    from inventory_engines.allocation import FEFOAllocator

    result = FEFOAllocator().allocate(batches=lots, requested_quantity=8)
    if not result.is_fully_allocated:
        ...  # result.shortfall units could not be covered
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone

from inventory_engines.tracer import traced_engine
from inventory_kernel.domain.batch import BatchAllocation, ProductBatch
from inventory_kernel.exceptions import InvalidAllocationRequestError
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


def _as_utc(value: datetime) -> datetime:
    # Naive values are read back from backends without tz support and are UTC.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def fefo_sort_key(batch: ProductBatch) -> tuple:
    """Sort key: expiry ascending (None last), then received_date ascending."""
    return (
        batch.expiry_date is None,
        batch.expiry_date or date.max,
        _as_utc(batch.received_date),
    )


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of one allocation run.

    Contract:
        Advisory only.  Nothing has been written; the deductor commits it.
    Guarantees:
        - ``total_allocated + shortfall == requested_quantity``.
        - ``allocations`` is in FEFO order and every entry has quantity > 0.
    """

    requested_quantity: int
    allocations: tuple[BatchAllocation, ...]
    total_allocated: int
    shortfall: int

    @property
    def is_fully_allocated(self) -> bool:
        """True if the request was covered in full."""
        return self.shortfall == 0

    @property
    def lot_count(self) -> int:
        """Number of lots the allocation draws from."""
        return len(self.allocations)


class FEFOAllocator:
    """
    Greedy FEFO allocator.

    Contract:
        Pure function over a snapshot of lots.  Lots that are not active or
        have no stock are ignored, so callers may pass an unfiltered list.
    Non-goals:
        - Does not check that lots belong to one size; the caller queries by size.
        - Does not raise on shortfall; the service decides how to surface it.
    """

    @traced_engine("fefo_allocation", "1.0", fingerprint_fields=("requested_quantity",))
    def allocate(
        self,
        batches: Sequence[ProductBatch],
        requested_quantity: int,
    ) -> AllocationResult:
        """
        Allocate ``requested_quantity`` across ``batches``.

        Args:
            batches: Candidate lots, in any order.
            requested_quantity: Units wanted (> 0).

        Returns:
            AllocationResult (possibly with shortfall > 0).

        Raises:
            InvalidAllocationRequestError: requested_quantity <= 0.
        """
        if requested_quantity <= 0:
            logger.warning(
                "allocation_invalid_request",
                extra={"requested_quantity": requested_quantity},
            )
            raise InvalidAllocationRequestError(requested_quantity)

        candidates = sorted(
            (b for b in batches if b.is_available),
            key=fefo_sort_key,
        )

        remaining = requested_quantity
        allocations: list[BatchAllocation] = []

        for batch in candidates:
            if remaining <= 0:
                break

            take = min(batch.quantity_available, remaining)
            if take > 0:
                allocations.append(
                    BatchAllocation(
                        batch_id=batch.id,
                        lot_number=batch.lot_number,
                        quantity=take,
                        expiry_date=batch.expiry_date,
                    )
                )
                remaining -= take

        total_allocated = requested_quantity - remaining

        # INVARIANT: conservation
        assert total_allocated + remaining == requested_quantity

        logger.info(
            "allocation_computed",
            extra={
                "requested_quantity": requested_quantity,
                "total_allocated": total_allocated,
                "shortfall": remaining,
                "candidate_count": len(candidates),
                "lot_count": len(allocations),
            },
        )

        return AllocationResult(
            requested_quantity=requested_quantity,
            allocations=tuple(allocations),
            total_allocated=total_allocated,
            shortfall=remaining,
        )
