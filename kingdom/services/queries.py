"""
List query service.
Cache-first list reads with remote refresh and local-mirror fallback.
"""
import logging
import time
from typing import Callable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from kingdom.cache import QueryKey
from kingdom.exceptions import KingdomException, MirrorWriteException, RemoteStoreException
from kingdom.services.optimistic import MutationContext

logger = logging.getLogger("kingdom.queries")

T = TypeVar("T", bound=BaseModel)


def with_retries(fetch: Callable[[], List[T]], retries: int, base_delay: float, label: str) -> List[T]:
    """Run fetch, retrying remote failures with exponential backoff"""
    attempt = 0
    while True:
        try:
            return fetch()
        except RemoteStoreException as e:
            if attempt >= retries:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(f"[{label}] attempt {attempt + 1} failed ({e}), retrying in {delay}s")
            time.sleep(delay)
            attempt += 1


def load_mirrored_list(
    ctx: MutationContext, mirror_key: str, record_type: Type[T]
) -> Optional[List[T]]:
    """Records saved under mirror_key, None if nothing usable is stored"""
    rows = ctx.mirror.load_records(mirror_key)
    if rows is None:
        return None
    records = []
    for row in rows:
        try:
            records.append(record_type.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Skipping unreadable {mirror_key} entry: {e}")
    return records


def fetch_list(
    ctx: MutationContext,
    query_key: QueryKey,
    remote_fetch: Callable[[], List[T]],
    mirror_key: str,
    record_type: Type[T],
    timeout: Optional[float] = None,
    retries: int = 0,
    retry_base_delay: float = 0.5,
    stale_time: Optional[float] = None,
) -> List[T]:
    """
    Read a list through the cache.

    Fresh cached data is returned as is. Otherwise the remote store is asked
    (sharing any identical in-flight fetch) and the result is cached and
    mirrored. If the remote store fails or times out, the last fully loaded
    cached value is served, then the mirror, then a list holding only
    local mutations.

    Args:
        ctx: Cache, mirror and notifier
        query_key: Cache key of the list
        remote_fetch: Loads the list from the remote store
        mirror_key: Local mirror key of the list
        record_type: Schema used to read mirrored rows
        timeout: Seconds to wait for the remote store
        retries: Extra attempts on remote failure
        retry_base_delay: First backoff delay in seconds
        stale_time: Seconds before cached data counts as stale (None = until invalidated)

    Raises:
        KingdomException: remote failed and no cached or mirrored copy exists
    """
    def fetch_and_mirror() -> List[T]:
        records = with_retries(remote_fetch, retries, retry_base_delay, mirror_key)
        try:
            ctx.mirror.save_records(mirror_key, records)
            ctx.mirror.set_last_sync(mirror_key)
        except MirrorWriteException as e:
            logger.warning(f"Could not mirror {mirror_key}: {e}")
        return records

    try:
        return ctx.cache.fetch_query(query_key, fetch_and_mirror, stale_time=stale_time, timeout=timeout)
    except KingdomException as e:
        logger.warning(f"Remote fetch for {query_key} failed: {e}")
        state = ctx.cache.get_query_state(query_key)
        if state is not None and state.has_data and not state.is_partial:
            return state.data
        local = load_mirrored_list(ctx, mirror_key, record_type)
        if local is None:
            if state is not None and state.has_data:
                return state.data
            raise
        logger.info(f"Serving {len(local)} {mirror_key} records from the local mirror")
        ctx.cache.set_query_data(query_key, local)
        ctx.cache.invalidate_queries(query_key)
        return local
