"""
Card service base.
One list query plus optimistic create/update/delete for a card table
(tasks, rules, rewards, punishments). Subclasses name the table, keys and
record schema, and add their domain actions on top.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from kingdom.cache import QueryKey
from kingdom.constants import LIST_FETCH_RETRY_BASE_DELAY, LIST_STALE_SECONDS
from kingdom.exceptions import RecordNotFoundException, ValidationException
from kingdom.remote_store import RemoteStore
from kingdom.schemas import Pending
from kingdom.services.optimistic import (
    MutationContext, RelatedList, create_optimistic, delete_optimistic, update_optimistic,
)
from kingdom.services.queries import fetch_list

logger = logging.getLogger("kingdom.cards")

T = TypeVar("T", bound=BaseModel)


class CardService(Generic[T]):
    """Cached, optimistic data access for one card table"""

    table: str
    query_key: QueryKey
    mirror_key: str
    record_type: Type[T]
    entity_name: str
    fetch_timeout: Optional[float] = None
    fetch_retries: int = 0
    stale_time: Optional[float] = LIST_STALE_SECONDS
    cascade: Optional[Dict[str, str]] = None  # child table -> foreign key column
    related: Optional[RelatedList] = None

    def __init__(self, ctx: MutationContext, remote: RemoteStore):
        self.ctx = ctx
        self.remote = remote

    def _to_record(self, row: Dict[str, Any]) -> T:
        return self.record_type.model_validate(row)

    def _fetch_all(self) -> List[T]:
        rows = self.remote.select(self.table, order_by="created_at", descending=True)
        return [self._to_record(row) for row in rows]

    def list(self) -> List[T]:
        """All records, newest first"""
        return fetch_list(
            self.ctx,
            self.query_key,
            self._fetch_all,
            self.mirror_key,
            self.record_type,
            timeout=self.fetch_timeout,
            retries=self.fetch_retries,
            retry_base_delay=LIST_FETCH_RETRY_BASE_DELAY,
            stale_time=self.stale_time,
        )

    def get(self, record_id: str) -> T:
        """Authoritative copy of one record from the remote store"""
        return self._to_record(self.remote.get(self.table, record_id))

    # ===== MUTATIONS =====

    def insert_values(self, payload: BaseModel) -> Dict[str, Any]:
        """Column values for a new row; subclasses fill entity defaults"""
        return payload.model_dump()

    def build_optimistic(self, payload: BaseModel, temp_id: str) -> T:
        now = datetime.now()
        return self.record_type.model_validate({
            **self.insert_values(payload),
            "id": temp_id,
            "state": Pending(temp_id=temp_id),
            "created_at": now,
            "updated_at": now,
        })

    def _remote_insert(self, payload: BaseModel) -> T:
        return self._to_record(self.remote.insert(self.table, self.insert_values(payload)))

    def _remote_update(self, record_id: str, patch: Dict[str, Any]) -> T:
        return self._to_record(self.remote.update(self.table, record_id, patch))

    def _remote_delete(self, record_id: str) -> None:
        deleted = self.remote.delete(self.table, {"id": record_id}, cascade=self.cascade)
        if not deleted:
            raise RecordNotFoundException(self.table, record_id)

    def create(self, payload: BaseModel) -> T:
        record = create_optimistic(
            self.ctx,
            self.query_key,
            payload,
            self._remote_insert,
            self.build_optimistic,
            self.entity_name,
            self.mirror_key,
        )
        logger.info(f"Created {self.table} {record.id}")
        return record

    def update(self, record_id: str, changes: Union[BaseModel, Dict[str, Any]]) -> T:
        """Apply a partial update; only fields that were set are sent"""
        if isinstance(changes, BaseModel):
            patch = changes.model_dump(exclude_unset=True)
        else:
            patch = dict(changes)
        if not patch:
            raise ValidationException("patch", "no fields to update")
        return update_optimistic(
            self.ctx,
            self.query_key,
            record_id,
            patch,
            self._remote_update,
            self.entity_name,
            self.mirror_key,
        )

    def delete(self, record_id: str) -> None:
        delete_optimistic(
            self.ctx,
            self.query_key,
            record_id,
            self._remote_delete,
            self.entity_name,
            self.mirror_key,
            related=self.related,
        )
        logger.info(f"Deleted {self.table} {record_id}")
