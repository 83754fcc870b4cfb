"""
Base repository shared by the authentication repositories.

Repositories never commit on their own except through ``commit()``; the
services decide where a transaction ends.
"""

from datetime import datetime
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Session

from repositories.database import Base

T = TypeVar("T", bound=Base)  # type: ignore[type-arg]


class BaseRepository(Generic[T]):
    """Lookups, inserts and age-based purges for one SQLAlchemy model."""

    def __init__(self, model: type[T], db: Session):
        self.model = model
        self.db = db

    def get_by_id(self, id: int) -> T | None:
        return self.db.query(self.model).filter(self.model.id == id).first()

    def add(self, entity: T) -> None:
        """Stage a new row in the session. Caller commits."""
        self.db.add(entity)

    def delete_older_than(self, column: Any, cutoff: datetime, *criteria: Any) -> int:
        """
        Bulk delete rows whose ``column`` is before ``cutoff``.

        Extra SQLAlchemy criteria narrow the delete. Caller commits.

        Returns:
            Number of rows deleted
        """
        query = self.db.query(self.model).filter(column < cutoff)
        for criterion in criteria:
            query = query.filter(criterion)
        return query.delete(synchronize_session=False)

    def commit(self) -> None:
        self.db.commit()

    def refresh(self, entity: T) -> None:
        """Reload ``entity`` after a commit expired it."""
        self.db.refresh(entity)
