"""
Tests for RewardService.

Tests cover:
1. Create defaults
2. Buying: points and supply both drop
3. Refusals leave points and supply untouched
"""
import pytest

from kingdom.constants import REWARDS_QUERY_KEY
from kingdom.exceptions import InsufficientPointsException, OutOfStockException
from kingdom.schemas import RewardCreate


class TestRewards:
    """Tests for reward CRUD"""

    def test_defaults(self, services):
        reward = services.rewards.create(RewardCreate(title="Movie night"))

        assert reward.cost == 10
        assert reward.supply == 0
        assert reward.is_dom_reward is False
        assert reward.icon_color == "#9b87f5"


class TestBuy:
    """Tests for buy"""

    def test_buy_spends_points_and_supply(self, services, couple):
        sub_id, _ = couple
        reward = services.rewards.create(RewardCreate(title="Movie night", cost=20, supply=2))

        bought, balance = services.rewards.buy(reward.id, sub_id)

        assert bought.supply == 1
        assert balance.points == 30
        cached = services.ctx.cache.get_query_data(REWARDS_QUERY_KEY)
        assert cached[0].supply == 1
        assert services.ctx.notifier.recent()[0].title == "Movie night purchased!"

    def test_dom_reward_uses_dom_points(self, services, couple):
        _, dom_id = couple
        reward = services.rewards.create(RewardCreate(title="Massage", cost=5, supply=1, is_dom_reward=True))

        _, balance = services.rewards.buy(reward.id, dom_id)

        assert balance.dom_points == 0
        assert balance.points == 0

    def test_out_of_stock(self, services, couple):
        sub_id, _ = couple
        reward = services.rewards.create(RewardCreate(title="Movie night", supply=0))

        with pytest.raises(OutOfStockException):
            services.rewards.buy(reward.id, sub_id)
        assert services.points.get_points(sub_id).points == 50

    def test_insufficient_points_rolls_back_supply(self, services, couple):
        sub_id, _ = couple
        reward = services.rewards.create(RewardCreate(title="Weekend trip", cost=500, supply=1))

        with pytest.raises(InsufficientPointsException):
            services.rewards.buy(reward.id, sub_id)

        assert services.ctx.cache.get_query_data(REWARDS_QUERY_KEY)[0].supply == 1
        assert services.rewards.get(reward.id).supply == 1
        assert services.ctx.notifier.recent("error")[0].title == "Error buying Reward"

    def test_last_unit(self, services, couple):
        sub_id, _ = couple
        reward = services.rewards.create(RewardCreate(title="Movie night", cost=10, supply=1))
        services.rewards.buy(reward.id, sub_id)

        with pytest.raises(OutOfStockException):
            services.rewards.buy(reward.id, sub_id)
        assert services.points.get_points(sub_id).points == 40
