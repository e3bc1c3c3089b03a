"""
BaseService -- abstract base for kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    write-side service in the kernel.  Services receive a SQLAlchemy
    ``Session`` and persist through ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries belong to the caller.  A barcode allocation
    (counter increment + registry insert) therefore commits or rolls back as
    one unit together with whatever catalog write the caller is making.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from retail_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` on the outer transaction; partial rollback
          uses savepoints (``session.begin_nested()``).
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
