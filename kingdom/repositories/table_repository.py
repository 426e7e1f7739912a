"""
Table repository - Generic data access layer for card and history tables.
Handles select/insert/update/delete/upsert for one mapped model.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from kingdom.models import Base


class TableRepository:
    """Repository for a single table"""

    def __init__(self, model: type[Base]):
        self.model = model

    def _column(self, name: str):
        column = getattr(self.model, name, None)
        if column is None:
            raise ValueError(f"{self.model.__tablename__} has no column {name}")
        return column

    def get_by_id(self, db: Session, record_id: str):
        """Get record by ID"""
        return db.query(self.model).filter(self.model.id == record_id).first()

    def select(
        self,
        db: Session,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        since: Optional[Dict[str, datetime]] = None,
    ) -> List[Base]:
        """
        Select records with equality and lower-bound filters.

        Args:
            db: Database session
            filters: Column -> value equality filters
            order_by: Column to order by
            descending: Reverse ordering
            since: Column -> minimum value (inclusive)

        Returns:
            Matching records
        """
        query = db.query(self.model)

        for name, value in (filters or {}).items():
            query = query.filter(self._column(name) == value)

        for name, value in (since or {}).items():
            query = query.filter(self._column(name) >= value)

        if order_by:
            column = self._column(order_by)
            query = query.order_by(column.desc() if descending else column.asc())

        return query.all()

    def insert(self, db: Session, values: Dict[str, Any]) -> Base:
        """Create a new record"""
        record = self.model(**values)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    def update(self, db: Session, record_id: str, values: Dict[str, Any]) -> Optional[Base]:
        """Update existing record, returns None when it does not exist"""
        record = self.get_by_id(db, record_id)
        if not record:
            return None
        for name, value in values.items():
            self._column(name)
            setattr(record, name, value)
        db.commit()
        db.refresh(record)
        return record

    def increment(
        self,
        db: Session,
        record_id: str,
        column_name: str,
        delta: int,
        minimum: Optional[int] = None,
    ) -> bool:
        """
        Atomically add delta to an integer column.

        Args:
            db: Database session
            record_id: Record to change
            column_name: Integer column
            delta: Signed amount
            minimum: Refuse the change if the result would drop below this

        Returns:
            True if a row was changed
        """
        column = self._column(column_name)
        query = db.query(self.model).filter(self.model.id == record_id)
        if minimum is not None:
            query = query.filter(column + delta >= minimum)
        updated = query.update({column: column + delta}, synchronize_session=False)
        db.commit()
        return updated == 1

    def delete(self, db: Session, filters: Dict[str, Any], commit: bool = True) -> int:
        """Delete records matching equality filters, returns the count"""
        query = db.query(self.model)
        for name, value in filters.items():
            query = query.filter(self._column(name) == value)
        count = query.delete(synchronize_session=False)
        if commit:
            db.commit()
        return count

    def upsert(self, db: Session, values: Dict[str, Any]) -> Base:
        """Insert or update by primary key"""
        record = db.merge(self.model(**values))
        db.commit()
        db.refresh(record)
        return record
