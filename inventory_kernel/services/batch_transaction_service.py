"""
BatchTransactionService -- append-only writer for the lot audit trail.

Responsibility:
    Write exactly one ``batch_transactions`` row per lot-affecting operation.
    This is the only code path that inserts audit records.

Invariants enforced:
    T1 -- Append-only: this service only inserts.  Updates and deletes are
          blocked by the ORM listeners in db/immutability.py.
    T2 -- Non-negative quantity.

Failure modes:
    - ValueError if quantity < 0.
    - SQLAlchemy errors propagate.  A failed audit write fails the whole
      operation; the caller's rollback removes the lot mutation with it.
"""

from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from inventory_kernel.domain.batch import BatchTransaction, TransactionType
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch_transaction import BatchTransactionModel
from inventory_kernel.services.base import BaseService

logger = get_logger("services.batch_transaction")


class BatchTransactionService(BaseService[BatchTransactionModel]):
    """Records lot audit transactions inside the caller's transaction."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        batch_id: UUID,
        transaction_type: TransactionType,
        quantity: int,
        reference_id: str | None = None,
        reference_type: str | None = None,
        notes: str | None = None,
        created_by: UUID | None = None,
    ) -> BatchTransaction:
        """
        Append one audit record.

        Args:
            batch_id: The lot affected.
            transaction_type: What happened to the lot.
            quantity: Units affected (absolute value; 0 for status markers).
            reference_id: Optional external reference (e.g. order id).
            reference_type: Kind of reference (e.g. "order").
            notes: Free text.
            created_by: Acting user, if known.

        Returns:
            The recorded BatchTransaction.
        """
        if quantity < 0:
            raise ValueError(f"Transaction quantity cannot be negative, got {quantity}")

        model = BatchTransactionModel(
            id=uuid4(),
            batch_id=batch_id,
            transaction_type=transaction_type.value,
            quantity=quantity,
            reference_id=reference_id,
            reference_type=reference_type,
            notes=notes,
            created_at=self._clock.now(),
            created_by=created_by,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "batch_transaction_recorded",
            extra={
                "transaction_id": str(model.id),
                "batch_id": str(batch_id),
                "transaction_type": transaction_type.value,
                "quantity": quantity,
                "reference_id": reference_id,
                "reference_type": reference_type,
            },
        )
        return model.to_dto()
