"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ DTOs.  Selectors never create, modify, or delete data.

Invariants enforced:
    - Read-only access: no session.add/delete/flush/commit.
    - DTO return convention: frozen dataclasses or computed values, not ORM
      instances.
    - Reads take no locks and may observe a slightly stale snapshot.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    The caller owns the session and its transaction scope.
    """

    def __init__(self, session: Session):
        self.session = session
