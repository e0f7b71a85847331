import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.exceptions import DatabaseError, NotFoundError

T = TypeVar('T')

logger = logging.getLogger(__name__)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository providing common database operations.
    Implements Repository Pattern for clean separation of data access logic.

    Repositories share the request's Session; they flush but never commit.
    The owning service decides where a unit of work ends via commit().
    """

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def model(self) -> Type[T]:
        """Mapped class the repository manages"""
        pass

    @property
    def resource_name(self) -> str:
        return self.model.__name__

    @contextmanager
    def guard(self, operation: str):
        """Translate SQLAlchemy failures into DatabaseError, rolling back the session"""
        try:
            yield
        except IntegrityError as e:
            self.session.rollback()
            logger.error(f"Integrity constraint violation during {operation}: {str(e)}")
            raise DatabaseError(f"Data integrity violation: {str(e)}", operation)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"{operation} failed: {str(e)}")
            raise DatabaseError(f"{operation} failed", operation)

    def get_by_id(self, entity_id: int) -> Optional[T]:
        with self.guard("SELECT"):
            return self.session.get(self.model, entity_id)

    def get_or_404(self, entity_id: int, message: Optional[str] = None) -> T:
        entity = self.get_by_id(entity_id)
        if entity is None:
            raise NotFoundError(self.resource_name, str(entity_id), message=message)
        return entity

    def exists(self, entity_id: int) -> bool:
        """Check if entity exists by ID"""
        return self.get_by_id(entity_id) is not None

    def list_all(self) -> List[T]:
        with self.guard("SELECT"):
            return list(self.session.scalars(select(self.model)))

    def count(self, *criteria) -> int:
        with self.guard("SELECT"):
            stmt = select(func.count()).select_from(self.model)
            if criteria:
                stmt = stmt.where(*criteria)
            return self.session.scalar(stmt) or 0

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
        with self.guard("WRITE"):
            self.session.flush()

    def commit(self) -> None:
        with self.guard("COMMIT"):
            self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
