"""
Points service.
Reads and adjusts profile point balances. Every change goes through a
single atomic statement in the remote store; the cache and mirror are then
set from the balance the store returns.
"""
import logging

from kingdom.constants import MIRROR_POINTS_KEY, PROFILE_POINTS_QUERY_KEY
from kingdom.exceptions import (
    InsufficientPointsException, KingdomException, MirrorWriteException,
)
from kingdom.remote_store import RemoteStore
from kingdom.schemas import ProfilePoints
from kingdom.services.optimistic import MutationContext

logger = logging.getLogger("kingdom.points")


class PointsService:
    """Service for profile point balances"""

    def __init__(self, ctx: MutationContext, remote: RemoteStore):
        self.ctx = ctx
        self.remote = remote

    @staticmethod
    def query_key(profile_id: str) -> tuple:
        return PROFILE_POINTS_QUERY_KEY + (profile_id,)

    @staticmethod
    def mirror_key(profile_id: str) -> str:
        return f"{MIRROR_POINTS_KEY}:{profile_id}"

    def _to_points(self, row: dict) -> ProfilePoints:
        return ProfilePoints(
            profile_id=row["id"],
            points=row.get("points") or 0,
            dom_points=row.get("dom_points") or 0,
        )

    def _store(self, balance: ProfilePoints) -> ProfilePoints:
        self.ctx.cache.set_query_data(self.query_key(balance.profile_id), balance)
        try:
            self.ctx.mirror.set_item(self.mirror_key(balance.profile_id), balance.model_dump())
        except MirrorWriteException as e:
            self.ctx.notifier.warning(
                "Local save error", f"Points updated on server, but failed to save locally: {e.details}"
            )
        return balance

    def get_points(self, profile_id: str) -> ProfilePoints:
        """Balance from cache, remote store, or mirror in that order"""
        key = self.query_key(profile_id)

        def fetch():
            balance = self._to_points(self.remote.get_profile(profile_id))
            try:
                self.ctx.mirror.set_item(self.mirror_key(profile_id), balance.model_dump())
            except MirrorWriteException as e:
                logger.warning(f"Could not mirror points for {profile_id}: {e}")
            return balance

        try:
            return self.ctx.cache.fetch_query(key, fetch)
        except KingdomException as e:
            stored = self.ctx.mirror.get_item(self.mirror_key(profile_id))
            if stored is None:
                raise
            logger.warning(f"Serving mirrored points for {profile_id}: {e}")
            return ProfilePoints.model_validate(stored)

    def add(self, profile_id: str, delta: int, dom: bool = False) -> ProfilePoints:
        """Add (or with a negative delta, remove) points; balances stop at zero"""
        if delta == 0:
            return self.get_points(profile_id)
        row = self.remote.add_points(profile_id, delta, dom)
        logger.info(f"{'dom_points' if dom else 'points'} {delta:+d} for {profile_id}")
        return self._store(self._to_points(row))

    def spend(self, profile_id: str, amount: int, dom: bool = False) -> ProfilePoints:
        """
        Spend points if the balance covers the amount.

        Raises:
            InsufficientPointsException: balance too low, nothing changed
        """
        row = self.remote.spend_points(profile_id, amount, dom)
        if row is None:
            current = self._to_points(self.remote.get_profile(profile_id))
            available = current.dom_points if dom else current.points
            self._store(current)
            raise InsufficientPointsException(profile_id, amount, available)
        return self._store(self._to_points(row))
