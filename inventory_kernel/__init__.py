"""
Inventory Kernel - lot-based stock tracking

A lot (batch) ledger for product-size variants with:
- FEFO/FIFO allocation of requested quantities across lots
- Atomic, all-or-nothing deduction of committed allocations
- Append-only per-lot transaction audit trail
- A single code path for the denormalized size-level stock counter
"""

__version__ = "0.1.0"
