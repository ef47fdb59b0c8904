"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/dtos.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
    - Session ownership: the caller owns the session and its snapshot
      (stock_kernel.db.engine.snapshot_scope), so every query of one request
      sees the same committed state.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Selectors accept a Session from the caller and only read through it."""

    def __init__(self, session: Session):
        self.session = session
