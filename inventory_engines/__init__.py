"""
Module: inventory_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import inventory_kernel.domain and inventory_kernel.exceptions.
    MUST NOT import inventory_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
    - Determinism: identical inputs always produce identical outputs.
"""

from inventory_engines.allocation import AllocationResult, FEFOAllocator, fefo_sort_key
from inventory_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AllocationResult",
    "FEFOAllocator",
    "compute_input_fingerprint",
    "fefo_sort_key",
    "traced_engine",
]
