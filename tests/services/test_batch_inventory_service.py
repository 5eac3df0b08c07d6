"""
Tests for BatchInventoryService.

Covers:
- Receiving lots (counter increment, receive transaction, generated batch numbers)
- FEFO allocation and insufficient-stock signalling
- Deduction conservation and all-or-nothing rollback on stale allocations
- Expiry / damage marking, adjustments and returns
- Stock counter reconciliation
- Expiring-lot queries
"""

import re
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from inventory_config.schema import InventoryConfig
from inventory_kernel.domain.batch import BatchAllocation, BatchStatus, TransactionType
from inventory_kernel.exceptions import (
    BatchNotActiveError,
    BatchNotFoundError,
    InsufficientStockError,
    InvalidAllocationRequestError,
    InvalidBatchError,
    NegativeQuantityError,
    ProductSizeNotFoundError,
    ReturnExceedsReceivedError,
    StaleAllocationError,
)
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_services import BatchInventoryService


def _types(txns) -> list[str]:
    return [t.transaction_type.value for t in txns]


class TestCreateBatch:
    """Tests for receiving lots."""

    def test_receive_sets_available_and_counter(self, service, size, create_lot):
        lot = create_lot(quantity=12, expiry_date=date(2025, 6, 1), cost_per_unit="4.25")

        assert lot.quantity == 12
        assert lot.quantity_available == 12
        assert lot.status == BatchStatus.ACTIVE
        assert lot.cost_per_unit == Decimal("4.25")
        assert size.stock == 12

    def test_receive_records_one_transaction(self, service, create_lot):
        lot = create_lot(quantity=7, batch_number="BATCH-2501-0042")

        txns = service.get_batch_transactions(lot.id)
        assert len(txns) == 1
        assert txns[0].transaction_type == TransactionType.RECEIVE
        assert txns[0].quantity == 7
        assert txns[0].notes == "Received batch BATCH-2501-0042"

    def test_batch_number_generated_when_missing(self, create_lot):
        lot = create_lot(quantity=1)

        # Deterministic clock is in January 2025
        assert re.fullmatch(r"BATCH-2501-\d{4}", lot.batch_number)

    def test_batch_number_prefix_from_config(self, session, deterministic_clock, size, test_product_id):
        service = BatchInventoryService(
            session,
            clock=deterministic_clock,
            config=InventoryConfig(batch_number_prefix="LOT"),
        )
        lot = service.create_batch(
            product_id=test_product_id,
            product_size_id=size.id,
            quantity=3,
            lot_number="L-1",
        )
        assert lot.batch_number.startswith("LOT-2501-")

    def test_received_date_defaults_to_clock(self, service, create_lot, deterministic_clock):
        lot = create_lot(quantity=1)

        assert lot.received_date == deterministic_clock.now()

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_non_positive_quantity_rejected(self, service, size, create_lot, quantity):
        with pytest.raises(InvalidBatchError) as exc_info:
            create_lot(quantity=quantity)

        assert exc_info.value.field == "quantity"
        assert size.stock == 0
        assert service.get_batches_by_size(size.id) == []

    def test_expiry_before_manufacture_rejected(self, create_lot):
        with pytest.raises(InvalidBatchError) as exc_info:
            create_lot(
                quantity=1,
                expiry_date=date(2025, 1, 1),
                manufacturing_date=date(2025, 2, 1),
            )
        assert exc_info.value.field == "expiry_date"

    def test_unknown_size_raises(self, create_lot):
        with pytest.raises(ProductSizeNotFoundError):
            create_lot(quantity=1, product_size_id=uuid4())

    def test_float_cost_rejected(self, create_lot):
        with pytest.raises(TypeError):
            create_lot(quantity=1, cost_per_unit=4.25)

    def test_logs_batch_created(self, create_lot, captured_logs):
        lot = create_lot(quantity=2)

        records = [r for r in captured_logs() if r["message"] == "batch_created"]
        assert len(records) == 1
        assert records[0]["batch_id"] == str(lot.id)
        assert records[0]["quantity"] == 2


class TestAllocateQuantity:
    """Tests for the read-only allocator."""

    def test_end_to_end_allocation(self, service, size, create_lot):
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        b = create_lot(quantity=10, expiry_date=date(2025, 5, 1))

        allocations = service.allocate_quantity(size.id, 8)

        assert [(x.batch_id, x.quantity) for x in allocations] == [(a.id, 5), (b.id, 3)]

    def test_allocation_does_not_mutate(self, service, size, create_lot):
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))

        service.allocate_quantity(size.id, 3)

        assert service.get_batch(a.id).quantity_available == 5
        assert size.stock == 5
        assert _types(service.get_batch_transactions(a.id)) == ["receive"]

    def test_insufficient_stock_reports_shortfall(self, service, size, create_lot):
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        create_lot(quantity=7)

        with pytest.raises(InsufficientStockError) as exc_info:
            service.allocate_quantity(size.id, 20)

        err = exc_info.value
        assert err.requested == 20
        assert err.available == 12
        assert err.shortfall == 8
        assert err.product_size_id == str(size.id)
        assert service.get_batch(a.id).quantity_available == 5

    def test_invalid_request(self, service, size, create_lot):
        create_lot(quantity=5)

        with pytest.raises(InvalidAllocationRequestError):
            service.allocate_quantity(size.id, 0)

    def test_other_sizes_ignored(self, service, size, create_size, create_lot):
        other = create_size(sku="OTHER")
        create_lot(quantity=50, expiry_date=date(2025, 1, 2), product_size_id=other.id)
        mine = create_lot(quantity=5, expiry_date=date(2025, 9, 1))

        allocations = service.allocate_quantity(size.id, 5)

        assert [a.batch_id for a in allocations] == [mine.id]


class TestDeductFromBatches:
    """Tests for committing allocations."""

    def test_end_to_end_deduction(self, service, size, create_lot):
        """A(5) + B(10), request 8 -> A=0, B=7, counter -8."""
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        b = create_lot(quantity=10, expiry_date=date(2025, 5, 1))
        assert size.stock == 15

        allocations = service.allocate_quantity(size.id, 8)
        sales = service.deduct_from_batches(
            allocations, reference_id="SO-1001", reference_type="order",
        )

        assert service.get_batch(a.id).quantity_available == 0
        assert service.get_batch(b.id).quantity_available == 7
        assert size.stock == 7
        assert [(s.batch_id, s.quantity) for s in sales] == [(a.id, 5), (b.id, 3)]

    def test_sale_transactions_carry_reference(self, service, size, create_lot):
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1), lot_number="LOT-A")
        service.deduct_from_batches(
            service.allocate_quantity(size.id, 2),
            reference_id="SO-7",
            reference_type="order",
        )

        sale = service.get_transactions_by_reference("order", "SO-7")
        assert len(sale) == 1
        assert sale[0].batch_id == a.id
        assert sale[0].transaction_type == TransactionType.SALE
        assert sale[0].quantity == 2
        assert sale[0].notes == "Sale from lot LOT-A"

    def test_fully_consumed_lot_leaves_available_list(self, service, size, create_lot):
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        b = create_lot(quantity=10, expiry_date=date(2025, 5, 1))

        service.deduct_from_batches(service.allocate_quantity(size.id, 5))

        assert [x.id for x in service.get_available_batches(size.id)] == [b.id]
        # Still listed by size, with nothing left
        by_size = service.get_batches_by_size(size.id)
        assert [x.id for x in by_size] == [a.id, b.id]
        assert by_size[0].quantity_available == 0

    def test_counter_clamped_at_zero(self, service, session, size, create_lot):
        create_lot(quantity=5)
        size.stock = 2
        session.flush()

        service.deduct_from_batches(service.allocate_quantity(size.id, 5))

        assert size.stock == 0

    def test_empty_allocation_is_noop(self, service, size, create_lot):
        create_lot(quantity=5)

        assert service.deduct_from_batches([]) == []
        assert size.stock == 5

    def test_stale_allocation_rolls_back_everything(self, service, session, size, create_lot):
        """A lot shrinking between allocate and deduct aborts the whole deduction."""
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        b = create_lot(quantity=10, expiry_date=date(2025, 5, 1))
        session.commit()

        allocations = service.allocate_quantity(size.id, 8)
        service.adjust_batch_quantity(b.id, -8, "Shrinkage")
        session.commit()
        assert size.stock == 7

        with pytest.raises(StaleAllocationError) as exc_info:
            service.deduct_from_batches(allocations, reference_id="SO-9", reference_type="order")
        session.rollback()

        assert exc_info.value.batch_id == str(b.id)
        assert exc_info.value.requested == 3
        assert exc_info.value.available == 2
        # Lot A was decremented first; the rollback restores it.
        assert service.get_batch(a.id).quantity_available == 5
        assert service.get_batch(b.id).quantity_available == 2
        assert service.get_transactions_by_reference("order", "SO-9") == []
        assert size.stock == 7

    def test_deduct_from_inactive_lot_rejected(self, service, size, create_lot):
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        allocations = service.allocate_quantity(size.id, 3)
        service.mark_batch_expired(a.id)

        with pytest.raises(BatchNotActiveError):
            service.deduct_from_batches(allocations)

    def test_lot_expired_behind_cached_copy_not_decremented(self, service, session, size, create_lot):
        """Status is checked by the UPDATE itself, not only on the loaded row."""
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        allocations = service.allocate_quantity(size.id, 3)
        service.get_batch(a.id)

        # Expire the row without touching the session's cached copy.
        session.execute(
            update(ProductBatchModel)
            .where(ProductBatchModel.id == a.id)
            .values(status=BatchStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        assert session.get(ProductBatchModel, a.id).status == BatchStatus.ACTIVE.value

        with pytest.raises(BatchNotActiveError):
            service.deduct_from_batches(allocations)

        lot = service.get_batch(a.id)
        assert lot.status == BatchStatus.EXPIRED
        assert lot.quantity_available == 5

    def test_deduct_unknown_lot(self, service):
        with pytest.raises(BatchNotFoundError):
            service.deduct_from_batches(
                [BatchAllocation(batch_id=uuid4(), lot_number="X", quantity=1)]
            )

    def test_logs_deduction_completed(self, service, size, create_lot, captured_logs):
        create_lot(quantity=5)
        service.deduct_from_batches(
            service.allocate_quantity(size.id, 4), reference_id="SO-3",
        )

        records = [r for r in captured_logs() if r["message"] == "deduction_completed"]
        assert len(records) == 1
        assert records[0]["total_quantity"] == 4
        assert records[0]["reference_id"] == "SO-3"


class TestAllocateAndDeduct:
    """Tests for the single-unit allocate + deduct path."""

    def test_allocates_and_deducts(self, service, size, create_lot):
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        b = create_lot(quantity=10, expiry_date=date(2025, 5, 1))

        applied = service.allocate_and_deduct(
            size.id, 8, reference_id="SO-1", reference_type="order",
        )

        assert [(x.batch_id, x.quantity) for x in applied] == [(a.id, 5), (b.id, 3)]
        assert service.get_total_available_quantity(size.id) == 7
        assert size.stock == 7

    def test_per_lot_records_carry_bound_context(self, service, size, create_lot, captured_logs):
        a = create_lot(quantity=5, expiry_date=date(2025, 2, 1))
        service.allocate_and_deduct(size.id, 2, reference_id="SO-7", reference_type="order")

        sales = [
            r for r in captured_logs()
            if r["message"] == "batch_transaction_recorded" and r.get("reference_id") == "SO-7"
        ]
        assert len(sales) == 1
        assert sales[0]["product_size_id"] == str(size.id)
        assert sales[0]["batch_id"] == str(a.id)

    def test_insufficient_stock_writes_nothing(self, service, size, create_lot):
        a = create_lot(quantity=5)

        with pytest.raises(InsufficientStockError):
            service.allocate_and_deduct(size.id, 6)

        assert service.get_batch(a.id).quantity_available == 5
        assert _types(service.get_batch_transactions(a.id)) == ["receive"]
        assert size.stock == 5


class TestLifecycle:
    """Tests for expiry, damage, adjustments and returns."""

    def test_mark_expired_keeps_quantity_and_counter(self, service, size, create_lot):
        a = create_lot(quantity=5, expiry_date=date(2025, 1, 10))

        expired = service.mark_batch_expired(a.id)

        assert expired.status == BatchStatus.EXPIRED
        assert expired.quantity_available == 5
        assert size.stock == 5
        assert service.get_available_batches(size.id) == []
        last = service.get_batch_transactions(a.id)[0]
        assert last.transaction_type == TransactionType.EXPIRED
        assert last.quantity == 0
        assert last.notes == "Batch marked as expired"

    def test_mark_expired_twice_rejected(self, service, create_lot):
        a = create_lot(quantity=5)
        service.mark_batch_expired(a.id)

        with pytest.raises(BatchNotActiveError) as exc_info:
            service.mark_batch_expired(a.id)
        assert exc_info.value.status == "expired"

    def test_mark_damaged(self, service, size, create_lot):
        a = create_lot(quantity=4)

        damaged = service.mark_batch_damaged(a.id, notes="Water damage")

        assert damaged.status == BatchStatus.DAMAGED
        assert size.stock == 4
        last = service.get_batch_transactions(a.id)[0]
        assert last.transaction_type == TransactionType.DAMAGED
        assert last.notes == "Water damage"

    def test_mark_unknown_lot(self, service):
        with pytest.raises(BatchNotFoundError):
            service.mark_batch_expired(uuid4())

    def test_adjust_negative_result_rejected(self, service, size, create_lot):
        a = create_lot(quantity=5)

        with pytest.raises(NegativeQuantityError) as exc_info:
            service.adjust_batch_quantity(a.id, -6, "Recount")

        assert exc_info.value.current == 5
        assert exc_info.value.adjustment == -6
        assert service.get_batch(a.id).quantity_available == 5
        assert _types(service.get_batch_transactions(a.id)) == ["receive"]
        assert size.stock == 5

    def test_adjust_updates_lot_counter_and_trail(self, service, size, create_lot, deterministic_clock):
        a = create_lot(quantity=5)

        deterministic_clock.advance(1)
        service.adjust_batch_quantity(a.id, -2, "Damaged in transit", notes="2 broken")
        deterministic_clock.advance(1)
        adjusted = service.adjust_batch_quantity(a.id, 4, "Recount")

        assert adjusted.quantity_available == 7
        assert size.stock == 7
        txns = service.get_batch_transactions(a.id)
        assert _types(txns) == ["adjustment", "adjustment", "receive"]
        assert txns[0].quantity == 4
        assert txns[0].notes == "Recount: "
        assert txns[1].quantity == 2
        assert txns[1].notes == "Damaged in transit: 2 broken"

    def test_adjust_unknown_lot(self, service):
        with pytest.raises(BatchNotFoundError):
            service.adjust_batch_quantity(uuid4(), 1, "Recount")

    def test_return_to_batch(self, service, size, create_lot, deterministic_clock):
        a = create_lot(quantity=10)
        service.allocate_and_deduct(size.id, 4, reference_id="SO-1", reference_type="order")

        deterministic_clock.advance(1)
        returned = service.return_to_batch(
            a.id, 3, reference_id="RMA-1", reference_type="return",
        )

        assert returned.quantity_available == 9
        assert size.stock == 9
        last = service.get_batch_transactions(a.id)[0]
        assert last.transaction_type == TransactionType.RETURN
        assert last.quantity == 3
        assert last.reference_id == "RMA-1"

    def test_return_cannot_exceed_received(self, service, size, create_lot):
        a = create_lot(quantity=10)
        service.allocate_and_deduct(size.id, 2)

        with pytest.raises(ReturnExceedsReceivedError) as exc_info:
            service.return_to_batch(a.id, 3)

        assert exc_info.value.received == 10
        assert exc_info.value.available == 8
        assert service.get_batch(a.id).quantity_available == 8

    def test_return_requires_positive_quantity(self, service, create_lot):
        a = create_lot(quantity=10)

        with pytest.raises(InvalidBatchError):
            service.return_to_batch(a.id, 0)

    def test_return_to_expired_lot_rejected(self, service, size, create_lot):
        a = create_lot(quantity=10)
        service.allocate_and_deduct(size.id, 2)
        service.mark_batch_expired(a.id)

        with pytest.raises(BatchNotActiveError):
            service.return_to_batch(a.id, 1)


class TestTransactionTrail:
    """Every mutating operation writes exactly one matching record."""

    def test_one_record_per_operation(self, service, size, create_lot, deterministic_clock):
        a = create_lot(quantity=10, expiry_date=date(2025, 3, 1))
        deterministic_clock.advance(1)
        service.allocate_and_deduct(size.id, 4)
        deterministic_clock.advance(1)
        service.adjust_batch_quantity(a.id, -1, "Recount")
        deterministic_clock.advance(1)
        service.return_to_batch(a.id, 2)
        deterministic_clock.advance(1)
        service.mark_batch_expired(a.id)

        txns = service.get_batch_transactions(a.id)
        assert [(t.transaction_type.value, t.quantity) for t in txns] == [
            ("expired", 0),
            ("return", 2),
            ("adjustment", 1),
            ("sale", 4),
            ("receive", 10),
        ]

    def test_record_transaction(self, service, create_lot):
        a = create_lot(quantity=1)

        txn = service.record_transaction(
            a.id, TransactionType.ADJUSTMENT, 0, notes="Audit note",
        )

        assert txn.batch_id == a.id
        assert len(service.get_batch_transactions(a.id)) == 2

    def test_record_transaction_unknown_lot(self, service):
        with pytest.raises(BatchNotFoundError):
            service.record_transaction(uuid4(), TransactionType.ADJUSTMENT, 0)


class TestReconcileStockCounter:
    """Tests for rebuilding the size counter from lots."""

    def test_in_sync(self, service, size, create_lot):
        create_lot(quantity=5)

        result = service.reconcile_stock_counter(size.id)

        assert result.in_sync
        assert result.recorded == result.computed == 5

    def test_drift_corrected(self, service, session, size, create_lot, captured_logs):
        create_lot(quantity=5)
        size.stock = 40
        session.flush()

        result = service.reconcile_stock_counter(size.id)

        assert result.recorded == 40
        assert result.computed == 5
        assert result.drift == 35
        assert size.stock == 5
        assert any(r["message"] == "stock_counter_drift_corrected" for r in captured_logs())

    def test_expired_lots_excluded(self, service, size, create_lot):
        a = create_lot(quantity=5)
        create_lot(quantity=3)
        service.mark_batch_expired(a.id)

        result = service.reconcile_stock_counter(size.id)

        assert result.recorded == 8
        assert result.computed == 3
        assert size.stock == 3

    def test_unknown_size(self, service):
        with pytest.raises(ProductSizeNotFoundError):
            service.reconcile_stock_counter(uuid4())


class TestQueries:
    """Tests for read-side passthroughs."""

    def test_expiring_batches_window(self, service, size, create_lot):
        soon = create_lot(quantity=5, expiry_date=date(2025, 1, 20), cost_per_unit="2.00")
        create_lot(quantity=5, expiry_date=date(2025, 6, 1))
        create_lot(quantity=5)

        rows = service.get_expiring_batches(30)

        assert [r.batch.id for r in rows] == [soon.id]
        assert rows[0].days_until_expiry == 19
        assert rows[0].sku == "SKU-001"
        assert rows[0].value_at_risk == Decimal("10.00")

    def test_expiring_default_window_from_config(self, service, create_lot):
        march = create_lot(quantity=5, expiry_date=date(2025, 3, 15))
        create_lot(quantity=5, expiry_date=date(2025, 6, 1))

        rows = service.get_expiring_batches()

        assert [r.batch.id for r in rows] == [march.id]

    def test_expiring_includes_past_expiry(self, service, create_lot):
        past = create_lot(quantity=5, expiry_date=date(2024, 12, 25))

        rows = service.get_expiring_batches(0)

        assert [r.batch.id for r in rows] == [past.id]
        assert rows[0].is_past_expiry

    def test_expiring_negative_days_rejected(self, service):
        with pytest.raises(ValueError):
            service.get_expiring_batches(-1)

    def test_get_batch_by_number(self, service, create_lot, test_product_id):
        lot = create_lot(quantity=5, batch_number="BATCH-2501-1234")

        assert service.get_batch_by_number(test_product_id, "BATCH-2501-1234").id == lot.id
        assert service.get_batch_by_number(test_product_id, "NOPE") is None

    def test_get_batch_unknown(self, service):
        with pytest.raises(BatchNotFoundError):
            service.get_batch(uuid4())
