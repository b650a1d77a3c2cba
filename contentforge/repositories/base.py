"""Base repository with shared get-by-ID patterns and store error translation.

Subclasses specify model_class and id_column; the base provides the
primary-key lookup. ``store_errors()`` turns connection-level
SQLAlchemy failures into ``StoreUnavailableError`` so callers see one error
type no matter which backend is configured.
"""

import logging
from contextlib import contextmanager
from typing import TypeVar, Generic, Iterator, Optional, Type

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, Query

from ..database import Base
from ..exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Shared repository logic for SQLAlchemy models.

    Class variables to set in subclasses:
        model_class:     The SQLAlchemy model (e.g., Job)
        id_column:       Name of the primary-key column (default "id")
    """

    model_class: Type[ModelT]
    id_column: str = "id"

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def store_errors(self, operation: str) -> Iterator[None]:
        """Roll back and raise StoreUnavailableError on connection failures."""
        try:
            yield
        except (OperationalError, InterfaceError) as e:
            logger.error("Store operation %s failed: %s", operation, e)
            try:
                self.db.rollback()
            except (OperationalError, InterfaceError):
                logger.debug("Rollback after store failure also failed")
            raise StoreUnavailableError(original_error=e) from e

    def _base_query(self) -> Query:
        """Base query for get_by_id_optional."""
        return self.db.query(self.model_class)

    def get_by_id_optional(self, entity_id: str) -> Optional[ModelT]:
        """Get entity by primary key, or None if not found."""
        col = getattr(self.model_class, self.id_column)
        with self.store_errors("get_by_id"):
            return self._base_query().filter(col == entity_id).first()
