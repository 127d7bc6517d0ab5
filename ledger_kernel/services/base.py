"""
BaseService -- abstract base for all kernel write services.

Services receive a Session from the caller and persist through
``session.flush()`` only.  The caller (PaymentOrchestrator or a test
harness) owns commit/rollback, so a multi-step write unit is atomic.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
