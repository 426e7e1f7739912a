"""
Punishment service.
Punishment list, CRUD, this week's punishment history and applying a
punishment: the submissive loses points, the linked dominant partner gains
dom_points.
"""
import logging
import random
from datetime import datetime
from typing import Any, Dict, List, Optional

from kingdom.constants import (
    TABLE_PUNISHMENTS, TABLE_PUNISHMENT_HISTORY, PUNISHMENTS_QUERY_KEY,
    PUNISHMENT_HISTORY_QUERY_KEY, MIRROR_PUNISHMENTS_KEY, MIRROR_PUNISHMENT_HISTORY_KEY,
    PUNISHMENTS_FETCH_TIMEOUT_SECONDS,
)
from kingdom.remote_store import RemoteStore
from kingdom.schemas import (
    Pending, PunishmentCreate, PunishmentHistoryItem, PunishmentRecord, punishment_dom_points,
)
from kingdom.services.card_service import CardService
from kingdom.services.date_service import DateService
from kingdom.services.optimistic import MutationContext, RelatedList, create_optimistic
from kingdom.services.points_service import PointsService
from kingdom.services.queries import fetch_list

logger = logging.getLogger("kingdom.punishments")


class PunishmentService(CardService[PunishmentRecord]):
    """Service for punishments and their history"""

    table = TABLE_PUNISHMENTS
    query_key = PUNISHMENTS_QUERY_KEY
    mirror_key = MIRROR_PUNISHMENTS_KEY
    record_type = PunishmentRecord
    entity_name = "Punishment"
    fetch_timeout = PUNISHMENTS_FETCH_TIMEOUT_SECONDS
    cascade = {TABLE_PUNISHMENT_HISTORY: "punishment_id"}
    related = RelatedList(PUNISHMENT_HISTORY_QUERY_KEY, "punishment_id", MIRROR_PUNISHMENT_HISTORY_KEY)

    def __init__(
        self,
        ctx: MutationContext,
        remote: RemoteStore,
        points: Optional[PointsService] = None,
        date_service: Optional[DateService] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(ctx, remote)
        self.points = points or PointsService(ctx, remote)
        self.date_service = date_service or DateService()
        self.rng = rng or random.Random()

    def insert_values(self, payload: PunishmentCreate) -> Dict[str, Any]:
        values = payload.model_dump()
        if values.get("dom_points") is None:
            values["dom_points"] = punishment_dom_points(values["points"])
        return values

    def random_punishment(self) -> Optional[PunishmentRecord]:
        """A random punishment from the list, None when there are none"""
        punishments = self.list()
        if not punishments:
            return None
        return self.rng.choice(punishments)

    # ===== HISTORY =====

    def _fetch_history(self) -> List[PunishmentHistoryItem]:
        week_start, _ = self.date_service.get_day_range(self.date_service.start_of_week())
        rows = self.remote.select(
            TABLE_PUNISHMENT_HISTORY,
            order_by="applied_date",
            descending=True,
            since={"applied_date": week_start},
        )
        return [PunishmentHistoryItem.model_validate(row) for row in rows]

    def history(self) -> List[PunishmentHistoryItem]:
        """Punishments applied since the start of this week, newest first"""
        return fetch_list(
            self.ctx,
            PUNISHMENT_HISTORY_QUERY_KEY,
            self._fetch_history,
            MIRROR_PUNISHMENT_HISTORY_KEY,
            PunishmentHistoryItem,
            timeout=self.fetch_timeout,
        )

    def apply(self, punishment_id: str, user_id: Optional[str] = None) -> PunishmentHistoryItem:
        """
        Apply a punishment.

        Adds a history entry (shown immediately), deducts the punishment's
        points from the punished profile and credits its dom_points to that
        profile's linked partner.

        The steps are separate remote writes. The punished profile and its
        partner are looked up first, so an unknown profile fails before any
        history row is written.

        Raises:
            RecordNotFoundException: unknown punishment or profile
        """
        punishment = self.get(punishment_id)
        target = user_id or punishment.user_id
        partner_id = self.remote.get_partner_id(target) if target else None
        payload = {
            "punishment_id": punishment_id,
            "user_id": target,
            "points_deducted": punishment.points,
            "day_of_week": self.date_service.day_index(),
        }

        def remote_insert(values: Dict[str, Any]) -> PunishmentHistoryItem:
            return PunishmentHistoryItem.model_validate(
                self.remote.insert(TABLE_PUNISHMENT_HISTORY, values)
            )

        def build_optimistic(values: Dict[str, Any], temp_id: str) -> PunishmentHistoryItem:
            return PunishmentHistoryItem(
                id=temp_id, state=Pending(temp_id=temp_id), applied_date=datetime.now(), **values
            )

        entry = create_optimistic(
            self.ctx,
            PUNISHMENT_HISTORY_QUERY_KEY,
            payload,
            remote_insert,
            build_optimistic,
            "Punishment history",
            MIRROR_PUNISHMENT_HISTORY_KEY,
            success_message=f"{punishment.title} applied",
        )

        if target:
            if punishment.points:
                self.points.add(target, -punishment.points)
            if partner_id and punishment.dom_points:
                self.points.add(partner_id, punishment.dom_points, dom=True)
        logger.info(f"Punishment {punishment_id} applied to {target or 'nobody'}")
        return entry
