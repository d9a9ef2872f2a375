"""
Module: stock_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    Selectors NEVER add, flush, commit or delete; they return plain
    records, not ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Read-only access within the caller's session."""

    def __init__(self, session: Session):
        self.session = session
