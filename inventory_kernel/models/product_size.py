"""
Module: inventory_kernel.models.product_size
Responsibility: ORM mapping for the product-size variant row that carries the
    denormalized ``stock`` counter.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    S1 -- stock is never written below zero (clamped by StockCounterService).

Audit relevance:
    ``stock`` is a cache of the sum of quantity_available over active lots.
    Only StockCounterService writes it; reconcile() recomputes it from lots.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base


class ProductSizeModel(Base):
    """Persistent storage for product-size variants (``product_sizes``)."""

    __tablename__ = "product_sizes"

    product_id: Mapped[UUID] = mapped_column(nullable=False, index=True)

    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size_value: Mapped[str | None] = mapped_column(String(50), nullable=True)
    size_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # INVARIANT S1
    stock: Mapped[int] = mapped_column(nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ProductSize {self.id}: sku={self.sku} stock={self.stock}>"
