"""
Service registry.
Builds the shared cache, mirror and notifier once and wires every data
service to them.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from kingdom.cache import QueryCache
from kingdom.mirror import LocalMirror
from kingdom.notifications import Notifier
from kingdom.remote_store import RemoteStore
from kingdom.services.date_service import DateService
from kingdom.services.optimistic import MutationContext
from kingdom.services.points_service import PointsService
from kingdom.services.punishment_service import PunishmentService
from kingdom.services.reward_service import RewardService
from kingdom.services.rule_service import RuleService
from kingdom.services.task_service import TaskService


@dataclass
class DataServices:
    ctx: MutationContext
    remote: RemoteStore
    points: PointsService
    tasks: TaskService
    rules: RuleService
    rewards: RewardService
    punishments: PunishmentService

    def shutdown(self) -> None:
        self.ctx.cache.shutdown()


def build_services(
    session_factory: sessionmaker,
    mirror: LocalMirror,
    cache: Optional[QueryCache] = None,
    notifier: Optional[Notifier] = None,
    date_service: Optional[DateService] = None,
) -> DataServices:
    ctx = MutationContext(cache=cache or QueryCache(), mirror=mirror, notifier=notifier or Notifier())
    remote = RemoteStore(session_factory)
    date_service = date_service or DateService()
    points = PointsService(ctx, remote)
    return DataServices(
        ctx=ctx,
        remote=remote,
        points=points,
        tasks=TaskService(ctx, remote, points, date_service),
        rules=RuleService(ctx, remote, date_service),
        rewards=RewardService(ctx, remote, points),
        punishments=PunishmentService(ctx, remote, points, date_service),
    )
