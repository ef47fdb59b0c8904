"""
Stock Kernel

Append-only inventory ledger for workshop parts with:
- Movement ledger as the single source of truth
- Reservation lifecycle derived from ledger history
- Per-item serialized writes (row lock + optimistic version)
- Snapshot-consistent read models
"""

__version__ = "0.1.0"
