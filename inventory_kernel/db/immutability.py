"""
Module: inventory_kernel.db.immutability
Responsibility: ORM event listeners that enforce the append-only rule for the
    batch transaction audit trail.
Architecture position: Kernel > DB.  Imports models lazily inside the
    register/unregister functions.

Invariants enforced:
    - Batch transactions are never updated or deleted once written.  One
      record exists per lot-affecting operation for the lifetime of the lot.

Failure modes:
    - ImmutabilityViolationError raised from the flush that attempted the
      UPDATE or DELETE.  The session must be rolled back by the caller.

Non-goals:
    - Raw SQL (session.execute(text(...)) or Core update()/delete()) bypasses
      mapper events.  Nothing in this code base issues such statements against
      batch_transactions.
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_batch_transaction_update(mapper, connection, target):
    """Prevent any updates to BatchTransaction records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "BatchTransaction",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="BatchTransaction",
        entity_id=str(target.id),
        reason="Batch transactions are append-only and cannot be modified",
    )


def _check_batch_transaction_delete(mapper, connection, target):
    """Prevent deletion of BatchTransaction records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "BatchTransaction",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="BatchTransaction",
        entity_id=str(target.id),
        reason="Batch transactions cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register the append-only enforcement listeners.

    Call this during application initialization, after models are imported
    and before any database operations begin.
    """
    from inventory_kernel.models.batch_transaction import BatchTransactionModel

    if not event.contains(
        BatchTransactionModel, "before_update", _check_batch_transaction_update
    ):
        event.listen(BatchTransactionModel, "before_update", _check_batch_transaction_update)
    if not event.contains(
        BatchTransactionModel, "before_delete", _check_batch_transaction_delete
    ):
        event.listen(BatchTransactionModel, "before_delete", _check_batch_transaction_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only enforcement listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from inventory_kernel.models.batch_transaction import BatchTransactionModel

    _safe_remove_listener(
        BatchTransactionModel, "before_update", _check_batch_transaction_update
    )
    _safe_remove_listener(
        BatchTransactionModel, "before_delete", _check_batch_transaction_delete
    )
