"""
Remote store client.
Table-level select/insert/update/delete/upsert over SQLAlchemy sessions.
Every call runs in its own session and returns plain row dicts, so callers
never hold ORM objects past the request that produced them.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from kingdom.constants import (
    TABLE_TASKS, TABLE_RULES, TABLE_REWARDS, TABLE_PUNISHMENTS,
    TABLE_PUNISHMENT_HISTORY, TABLE_RULE_VIOLATIONS,
    TABLE_TASK_COMPLETION_HISTORY, TABLE_PROFILES,
)
from kingdom.exceptions import RecordNotFoundException, RemoteStoreException
from kingdom.models import (
    Task, Rule, Reward, Punishment, PunishmentHistory, RuleViolation,
    TaskCompletionHistory, Profile,
)
from kingdom.repositories.table_repository import TableRepository
from kingdom.repositories.profile_repository import ProfileRepository

logger = logging.getLogger("kingdom.remote")

TABLE_MODELS = {
    TABLE_TASKS: Task,
    TABLE_RULES: Rule,
    TABLE_REWARDS: Reward,
    TABLE_PUNISHMENTS: Punishment,
    TABLE_PUNISHMENT_HISTORY: PunishmentHistory,
    TABLE_RULE_VIOLATIONS: RuleViolation,
    TABLE_TASK_COMPLETION_HISTORY: TaskCompletionHistory,
    TABLE_PROFILES: Profile,
}


def row_to_dict(row) -> Dict[str, Any]:
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


class RemoteStore:
    """Client for the remote relational store"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.repos = {table: TableRepository(model) for table, model in TABLE_MODELS.items()}
        self.profile_repo = ProfileRepository()

    def _repo(self, table: str) -> TableRepository:
        try:
            return self.repos[table]
        except KeyError:
            raise RemoteStoreException("lookup", f"unknown table {table}")

    @contextmanager
    def _session(self, operation: str, table: str):
        db: Session = self.session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"{operation} on {table} failed: {e}")
            raise RemoteStoreException(operation, str(e)) from e
        finally:
            db.close()

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        since: Optional[Dict[str, datetime]] = None,
    ) -> List[Dict[str, Any]]:
        """Select rows with equality filters and optional ordering"""
        repo = self._repo(table)
        with self._session("select", table) as db:
            rows = repo.select(db, filters, order_by, descending, since)
            return [row_to_dict(row) for row in rows]

    def get(self, table: str, record_id: str) -> Dict[str, Any]:
        """Select a single row by id"""
        repo = self._repo(table)
        with self._session("select", table) as db:
            row = repo.get_by_id(db, record_id)
            if not row:
                raise RecordNotFoundException(table, record_id)
            return row_to_dict(row)

    def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it with server-assigned fields"""
        repo = self._repo(table)
        with self._session("insert", table) as db:
            return row_to_dict(repo.insert(db, values))

    def update(self, table: str, record_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Update a row and return the stored version"""
        repo = self._repo(table)
        with self._session("update", table) as db:
            row = repo.update(db, record_id, values)
            if not row:
                raise RecordNotFoundException(table, record_id)
            return row_to_dict(row)

    def increment(
        self, table: str, record_id: str, column: str, delta: int, minimum: Optional[int] = None
    ) -> bool:
        """Atomically add delta to an integer column"""
        repo = self._repo(table)
        with self._session("increment", table) as db:
            return repo.increment(db, record_id, column, delta, minimum)

    def delete(
        self,
        table: str,
        filters: Dict[str, Any],
        cascade: Optional[Dict[str, str]] = None,
    ) -> int:
        """
        Hard delete rows matching filters.

        Args:
            table: Table to delete from
            filters: Equality filters
            cascade: child table -> foreign key column, deleted in the same
                transaction when filters select by id

        Returns:
            Number of deleted rows in the parent table
        """
        repo = self._repo(table)
        with self._session("delete", table) as db:
            if cascade and "id" in filters:
                for child_table, fk_column in cascade.items():
                    self._repo(child_table).delete(db, {fk_column: filters["id"]}, commit=False)
            return repo.delete(db, filters)

    def upsert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or update a row by id"""
        repo = self._repo(table)
        with self._session("upsert", table) as db:
            return row_to_dict(repo.upsert(db, values))

    # ===== PROFILE POINTS =====

    def get_profile(self, profile_id: str) -> Dict[str, Any]:
        return self.get(TABLE_PROFILES, profile_id)

    def add_points(self, profile_id: str, delta: int, dom: bool = False) -> Dict[str, Any]:
        """Atomically adjust a balance and return the profile"""
        with self._session("add_points", TABLE_PROFILES) as db:
            if not self.profile_repo.add_points(db, profile_id, delta, dom):
                raise RecordNotFoundException(TABLE_PROFILES, profile_id)
            return row_to_dict(self.profile_repo.get_by_id(db, profile_id))

    def spend_points(self, profile_id: str, amount: int, dom: bool = False) -> Optional[Dict[str, Any]]:
        """Atomically spend points, returns None when the balance is short"""
        with self._session("spend_points", TABLE_PROFILES) as db:
            if not self.profile_repo.spend_points(db, profile_id, amount, dom):
                return None
            return row_to_dict(self.profile_repo.get_by_id(db, profile_id))

    def get_partner_id(self, profile_id: str) -> Optional[str]:
        with self._session("select", TABLE_PROFILES) as db:
            profile = self.profile_repo.get_by_id(db, profile_id)
            if not profile:
                raise RecordNotFoundException(TABLE_PROFILES, profile_id)
            return profile.linked_partner_id
