"""
BaseService -- abstract base for all stock kernel services.

Services receive a SQLAlchemy ``Session`` and persist with
``session.flush()`` only.  The caller (TransactionRunner, the API layer, or
a test) owns commit and rollback, so one command is one transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT call ``session.commit()`` or ``session.rollback()``.
        - Does NOT provide report queries; those live in ``selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
