"""
Optimistic mutation helpers.
Generic create/update/delete wrappers around a remote call: snapshot the
cached list, apply the change locally, call the remote store, then either
patch the cache with the authoritative record or restore the snapshot.

Every mutation moves idle -> optimistic_applied -> settled_success or
settled_error. Remote failures roll back, raise a notice and propagate.
A failed local mirror write after a successful remote call only warns.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, TypeVar

from pydantic import BaseModel

from kingdom.cache import QueryCache, QueryKey
from kingdom.constants import TEMP_ID_PREFIX
from kingdom.exceptions import MirrorWriteException
from kingdom.mirror import LocalMirror
from kingdom.notifications import Notifier
from kingdom.schemas import Pending

logger = logging.getLogger("kingdom.mutations")

T = TypeVar("T", bound=BaseModel)


class MutationStatus(str, Enum):
    IDLE = "idle"
    OPTIMISTIC_APPLIED = "optimistic_applied"
    SETTLED_SUCCESS = "settled_success"
    SETTLED_ERROR = "settled_error"


@dataclass
class MutationContext:
    """Shared collaborators handed to every data service"""
    cache: QueryCache
    mirror: LocalMirror
    notifier: Notifier


@dataclass
class RelatedList:
    """A second cached list trimmed together with a delete"""
    query_key: QueryKey
    match_field: str  # Field holding the deleted record's id
    mirror_key: Optional[str] = None


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


def merge_record(record: T, patch: Dict[str, Any]) -> T:
    """Validated copy of record with patch applied"""
    return type(record).model_validate({**record.model_dump(), **patch})


def is_placeholder(record: BaseModel, temp_id: str) -> bool:
    state = getattr(record, "state", None)
    return isinstance(state, Pending) and state.temp_id == temp_id


class OptimisticMutation:
    """Bookkeeping for a single mutation's lifetime"""

    def __init__(self, ctx: MutationContext, entity_name: str):
        self.ctx = ctx
        self.entity_name = entity_name
        self.status = MutationStatus.IDLE
        self._snapshots: Dict[QueryKey, List[Any]] = {}
        self._cold: Set[QueryKey] = set()  # Keys with no fully loaded list before the mutation

    def _transition(self, status: MutationStatus) -> None:
        logger.debug(f"[{self.entity_name}] {self.status.value} -> {status.value}")
        self.status = status

    def apply(self, key: QueryKey, updater: Callable[[List[Any]], List[Any]]) -> None:
        """Snapshot key (once) and write the optimistic list"""
        self.ctx.cache.cancel_queries(key)
        if key not in self._snapshots:
            state = self.ctx.cache.get_query_state(key)
            if state is None or not state.has_data or state.is_partial:
                self._cold.add(key)
            self._snapshots[key] = list(self.ctx.cache.get_query_data(key) or [])
        self.ctx.cache.set_query_data(key, lambda old: updater(list(old or [])))
        if self.status == MutationStatus.IDLE:
            self._transition(MutationStatus.OPTIMISTIC_APPLIED)

    def succeed(self, message: Optional[str] = None) -> None:
        self._transition(MutationStatus.SETTLED_SUCCESS)
        if message:
            self.ctx.notifier.success(message)

    def fail(self, error: Exception, action: str) -> None:
        """Restore every snapshot exactly and report the failure"""
        for key, snapshot in self._snapshots.items():
            self.ctx.cache.set_query_data(key, snapshot)
        self._transition(MutationStatus.SETTLED_ERROR)
        self.ctx.notifier.error(f"Error {action} {self.entity_name}", str(error))

    def persist(self, key: QueryKey, mirror_key: Optional[str]) -> None:
        """
        Write the settled list to the local mirror; failures only warn.

        A list that was not loaded before the mutation holds only locally
        mutated records, so the mirror keeps its previous contents until the
        next fetch rewrites it.
        """
        if not mirror_key:
            return
        if key in self._cold:
            logger.debug(f"[{self.entity_name}] {key} was not loaded, leaving mirror {mirror_key} as is")
            return
        try:
            self.ctx.mirror.save_records(mirror_key, self.ctx.cache.get_query_data(key) or [])
            self.ctx.mirror.set_last_sync(mirror_key)
        except MirrorWriteException as e:
            self.ctx.notifier.warning(
                "Local save error",
                f"{self.entity_name} saved on server, but failed to save locally: {e.details}",
            )

    def settle(self) -> None:
        """Mark touched lists stale so the next read confirms server state"""
        for key in self._snapshots:
            if key in self._cold:
                self.ctx.cache.mark_partial(key)
            else:
                self.ctx.cache.invalidate_queries(key)


def create_optimistic(
    ctx: MutationContext,
    query_key: QueryKey,
    payload: Any,
    remote_insert: Callable[[Any], T],
    build_optimistic_record: Callable[[Any, str], T],
    entity_name: str,
    mirror_key: Optional[str] = None,
    success_message: Optional[str] = None,
) -> T:
    """
    Create a record with an immediate placeholder in the cached list.

    Args:
        ctx: Cache, mirror and notifier
        query_key: Key of the cached list
        payload: Fields required to create the record
        remote_insert: Inserts payload remotely, returns the server record
        build_optimistic_record: Builds a full Pending record from payload and a temp id
        entity_name: Name used in notices
        mirror_key: Mirror key to rewrite on success
        success_message: Notice text, defaults to "<entity_name> created successfully!"

    Returns:
        The server record

    Raises:
        Whatever remote_insert raised, after the cache has been restored
    """
    mutation = OptimisticMutation(ctx, entity_name)
    temp_id = new_temp_id()
    optimistic = build_optimistic_record(payload, temp_id)
    mutation.apply(query_key, lambda old: [optimistic] + old)

    try:
        try:
            record = remote_insert(payload)
        except Exception as e:
            mutation.fail(e, "creating")
            raise

        def swap_placeholder(old: List[Any]) -> List[Any]:
            # A refetch may already have delivered the server copy
            result = []
            placed = False
            for item in old:
                if is_placeholder(item, temp_id):
                    if not placed:
                        result.append(record)
                        placed = True
                elif item.id != record.id:
                    result.append(item)
            if not placed:
                result.insert(0, record)
            return result

        ctx.cache.set_query_data(query_key, lambda old: swap_placeholder(list(old or [])))
        mutation.succeed(success_message or f"{entity_name} created successfully!")
        mutation.persist(query_key, mirror_key)
        return record
    finally:
        mutation.settle()


def update_optimistic(
    ctx: MutationContext,
    query_key: QueryKey,
    record_id: str,
    patch: Dict[str, Any],
    remote_update: Callable[[str, Dict[str, Any]], T],
    entity_name: str,
    mirror_key: Optional[str] = None,
) -> T:
    """
    Merge patch into the cached record, then confirm with the server copy.

    A record missing from the cache is left alone locally; the remote
    update still runs.
    """
    mutation = OptimisticMutation(ctx, entity_name)
    touched = dict(patch, updated_at=datetime.now())
    mutation.apply(
        query_key,
        lambda old: [merge_record(item, touched) if item.id == record_id else item for item in old],
    )

    try:
        try:
            record = remote_update(record_id, patch)
        except Exception as e:
            mutation.fail(e, "updating")
            raise

        ctx.cache.set_query_data(
            query_key,
            lambda old: [record if item.id == record.id else item for item in (old or [])],
        )
        mutation.succeed(f"{entity_name} updated successfully!")
        mutation.persist(query_key, mirror_key)
        return record
    finally:
        mutation.settle()


def delete_optimistic(
    ctx: MutationContext,
    query_key: QueryKey,
    record_id: str,
    remote_delete: Callable[[str], Any],
    entity_name: str,
    mirror_key: Optional[str] = None,
    related: Optional[RelatedList] = None,
) -> None:
    """
    Remove a record (and optionally rows of a related list pointing at it)
    immediately; restore both lists in place if the remote delete fails.
    """
    mutation = OptimisticMutation(ctx, entity_name)
    mutation.apply(query_key, lambda old: [item for item in old if item.id != record_id])
    if related:
        mutation.apply(
            related.query_key,
            lambda old: [
                item for item in old if getattr(item, related.match_field, None) != record_id
            ],
        )

    try:
        try:
            remote_delete(record_id)
        except Exception as e:
            mutation.fail(e, "deleting")
            raise

        mutation.succeed(f"{entity_name} deleted successfully!")
        mutation.persist(query_key, mirror_key)
        if related:
            mutation.persist(related.query_key, related.mirror_key)
    finally:
        mutation.settle()
