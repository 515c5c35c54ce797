from contextlib import contextmanager
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from nubia.core.exceptions import ConflictError, DatabaseError, NotFoundError
import logging

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Session-scoped data access for one model.

    Repositories never commit: the request's session_scope() owns the
    transaction, so an order, its lines and its reservations land together
    or not at all.
    """

    model: Type[T]
    resource_name: str = "Resource"

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def guard(self, operation: str):
        """Translate SQLAlchemy failures into API exceptions."""
        try:
            yield
        except IntegrityError as e:
            logger.error(f"Integrity violation during {operation} on {self.model.__tablename__}: {e.orig}")
            raise ConflictError(f"{self.resource_name} conflicts with an existing record")
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation} on {self.model.__tablename__}: {e}")
            raise DatabaseError(str(e), operation)

    def get_by_id(self, entity_id: int, for_update: bool = False) -> Optional[T]:
        with self.guard("SELECT"):
            stmt = select(self.model).where(self.model.id == entity_id)
            if for_update:
                stmt = stmt.with_for_update()
            return self.session.scalars(stmt).first()

    def get_or_404(self, entity_id: int, for_update: bool = False) -> T:
        entity = self.get_by_id(entity_id, for_update=for_update)
        if entity is None:
            raise NotFoundError(self.resource_name, str(entity_id))
        return entity

    def add(self, entity: T) -> T:
        with self.guard("INSERT"):
            self.session.add(entity)
            self.session.flush()
            return entity

    def delete(self, entity: T) -> None:
        with self.guard("DELETE"):
            self.session.delete(entity)
            self.session.flush()

    def flush(self) -> None:
        with self.guard("UPDATE"):
            self.session.flush()

    def scalars(self, stmt) -> List[T]:
        with self.guard("SELECT"):
            return list(self.session.scalars(stmt).all())

    def scalar(self, stmt) -> Any:
        with self.guard("SELECT"):
            return self.session.scalar(stmt)

    def count(self, *criteria) -> int:
        stmt = select(func.count()).select_from(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        return int(self.scalar(stmt) or 0)
