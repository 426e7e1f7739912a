"""
Reward service.
Reward list, CRUD and buying: the buyer's points and the reward's supply
both go down, or neither does.
"""
import logging
from typing import Optional, Tuple

from kingdom.constants import (
    TABLE_REWARDS, REWARDS_QUERY_KEY, MIRROR_REWARDS_KEY, LIST_FETCH_RETRIES,
)
from kingdom.exceptions import OutOfStockException
from kingdom.remote_store import RemoteStore
from kingdom.schemas import ProfilePoints, RewardRecord
from kingdom.services.card_service import CardService
from kingdom.services.optimistic import MutationContext, OptimisticMutation, merge_record
from kingdom.services.points_service import PointsService

logger = logging.getLogger("kingdom.rewards")


class RewardService(CardService[RewardRecord]):
    """Service for rewards"""

    table = TABLE_REWARDS
    query_key = REWARDS_QUERY_KEY
    mirror_key = MIRROR_REWARDS_KEY
    record_type = RewardRecord
    entity_name = "Reward"
    fetch_retries = LIST_FETCH_RETRIES

    def __init__(self, ctx: MutationContext, remote: RemoteStore, points: Optional[PointsService] = None):
        super().__init__(ctx, remote)
        self.points = points or PointsService(ctx, remote)

    def buy(self, reward_id: str, profile_id: str) -> Tuple[RewardRecord, ProfilePoints]:
        """
        Buy one unit of a reward.

        The cached supply drops immediately. Points are spent first (dom
        rewards spend dom_points); if the supply cannot be taken afterwards
        the points are refunded.

        Raises:
            OutOfStockException: supply is zero
            InsufficientPointsException: the profile cannot afford it
        """
        reward = self.get(reward_id)
        if reward.supply <= 0:
            raise OutOfStockException(reward_id, reward.title)

        mutation = OptimisticMutation(self.ctx, self.entity_name)
        mutation.apply(
            self.query_key,
            lambda old: [
                merge_record(item, {"supply": max(0, item.supply - 1)}) if item.id == reward_id else item
                for item in old
            ],
        )

        try:
            try:
                balance = self.points.spend(profile_id, reward.cost, dom=reward.is_dom_reward)
                if not self.remote.increment(self.table, reward_id, "supply", -1, minimum=0):
                    self.points.add(profile_id, reward.cost, dom=reward.is_dom_reward)
                    raise OutOfStockException(reward_id, reward.title)
                updated = self.get(reward_id)
            except Exception as e:
                mutation.fail(e, "buying")
                raise

            self.ctx.cache.set_query_data(
                self.query_key,
                lambda old: [updated if item.id == reward_id else item for item in (old or [])],
            )
            mutation.succeed(f"{reward.title} purchased!")
            mutation.persist(self.query_key, self.mirror_key)
            logger.info(f"Profile {profile_id} bought reward {reward_id} for {reward.cost}")
            return updated, balance
        finally:
            mutation.settle()
