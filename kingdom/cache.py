"""
In-memory query cache.
Key-addressed store of query results with subscriptions, invalidation,
cancellation and de-duplication of identical in-flight fetches.

Keys are tuples; invalidation and removal match on key prefix, so
("tasks",) covers ("tasks", user_id) as well. Stored values are treated as
immutable: writers replace lists instead of mutating them, which is what
makes a plain reference a valid rollback snapshot.
"""
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from kingdom.exceptions import FetchTimeoutException

logger = logging.getLogger("kingdom.cache")

QueryKey = Tuple[Any, ...]
Listener = Callable[[QueryKey, Any], None]


@dataclass
class QueryState:
    data: Any = None
    data_updated_at: Optional[float] = None  # time.monotonic() of last write
    is_invalidated: bool = False
    is_fetching: bool = False
    generation: int = 0  # Bumped by cancel_queries; stale fetch results are dropped
    is_partial: bool = False  # Built from local mutations only, never a full fetch

    @property
    def has_data(self) -> bool:
        return self.data_updated_at is not None


def _matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[:len(prefix)] == prefix


class QueryCache:
    """Shared cache passed into every data service"""

    def __init__(self, max_fetch_workers: int = 4):
        self._queries: Dict[QueryKey, QueryState] = {}
        self._listeners: Dict[QueryKey, List[Listener]] = {}
        self._in_flight: Dict[QueryKey, Future] = {}
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_fetch_workers, thread_name_prefix="kingdom-fetch"
        )

    def _state(self, key: QueryKey) -> QueryState:
        state = self._queries.get(key)
        if state is None:
            state = QueryState()
            self._queries[key] = state
        return state

    def _notify(self, key: QueryKey, data: Any) -> None:
        for listener in list(self._listeners.get(key, [])):
            try:
                listener(key, data)
            except Exception as e:
                logger.error(f"Cache listener for {key} failed: {e}")

    # ===== READ / WRITE =====

    def get_query_data(self, key: QueryKey, default: Any = None) -> Any:
        with self._lock:
            state = self._queries.get(key)
            if state is None or not state.has_data:
                return default
            return state.data

    def get_query_state(self, key: QueryKey) -> Optional[QueryState]:
        with self._lock:
            return self._queries.get(key)

    def set_query_data(self, key: QueryKey, value: Any) -> Any:
        """
        Replace cached data for a key.

        Args:
            key: Query key
            value: New value, or a callable receiving the old value (None if
                absent) and returning the new one

        Returns:
            The stored value
        """
        with self._lock:
            new_data = self._write(key, value)
        self._notify(key, new_data)
        return new_data

    def _write(self, key: QueryKey, value: Any) -> Any:
        # Caller holds the lock
        state = self._state(key)
        new_data = value(state.data if state.has_data else None) if callable(value) else value
        state.data = new_data
        state.data_updated_at = time.monotonic()
        state.is_invalidated = False
        state.is_partial = False
        return new_data

    def is_stale(self, key: QueryKey, stale_time: Optional[float] = None) -> bool:
        """No data, invalidated, or older than stale_time seconds (None = never by age)"""
        with self._lock:
            state = self._queries.get(key)
            if state is None or not state.has_data or state.is_invalidated:
                return True
            if stale_time is None:
                return False
            return time.monotonic() - state.data_updated_at > stale_time

    # ===== INVALIDATION =====

    def invalidate_queries(self, prefix: QueryKey) -> List[QueryKey]:
        """Mark every matching query stale so the next read refetches"""
        with self._lock:
            matched = [key for key in self._queries if _matches(key, prefix)]
            for key in matched:
                self._queries[key].is_invalidated = True
        for key in matched:
            logger.debug(f"Invalidated {key}")
        return matched

    def mark_partial(self, key: QueryKey) -> None:
        """Flag key's data as incomplete and stale until a write replaces it"""
        with self._lock:
            state = self._queries.get(key)
            if state is not None and state.has_data:
                state.is_partial = True
                state.is_invalidated = True

    def cancel_queries(self, prefix: QueryKey) -> None:
        """Discard the results of matching in-flight fetches"""
        with self._lock:
            for key, state in self._queries.items():
                if _matches(key, prefix):
                    state.generation += 1
            for key in [key for key in self._in_flight if _matches(key, prefix)]:
                del self._in_flight[key]

    def remove_queries(self, prefix: QueryKey) -> None:
        with self._lock:
            for key in [key for key in self._queries if _matches(key, prefix)]:
                del self._queries[key]

    def clear(self) -> None:
        with self._lock:
            self._queries.clear()
            self._in_flight.clear()

    # ===== SUBSCRIPTIONS =====

    def subscribe(self, key: QueryKey, listener: Listener) -> Callable[[], None]:
        """Call listener(key, data) on every write to key; returns unsubscribe"""
        with self._lock:
            self._listeners.setdefault(key, []).append(listener)

        def unsubscribe():
            with self._lock:
                listeners = self._listeners.get(key, [])
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    # ===== FETCHING =====

    def fetch_query(
        self,
        key: QueryKey,
        fetcher: Callable[[], Any],
        stale_time: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Return fresh cached data or run fetcher and store its result.

        Identical concurrent fetches share one call. A fetch whose key was
        cancelled while it ran does not write its result.

        Raises:
            FetchTimeoutException: timeout elapsed before fetcher finished
        """
        with self._lock:
            if not self.is_stale(key, stale_time):
                return self._queries[key].data
            future = self._in_flight.get(key)
            if future is None:
                state = self._state(key)
                state.is_fetching = True
                future = self._executor.submit(self._run_fetch, key, fetcher, state.generation)
                self._in_flight[key] = future

        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            raise FetchTimeoutException(key, timeout)

    def _run_fetch(self, key: QueryKey, fetcher: Callable[[], Any], generation: int) -> Any:
        try:
            data = fetcher()
        finally:
            with self._lock:
                state = self._state(key)
                state.is_fetching = False
                if self._in_flight.get(key) is not None and state.generation == generation:
                    del self._in_flight[key]
        with self._lock:
            if self._state(key).generation != generation:
                logger.debug(f"Dropping result of cancelled fetch for {key}")
                return data
            self._write(key, data)
        self._notify(key, data)
        return data

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
