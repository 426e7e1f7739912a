"""
Rule service.
Rule list, CRUD and violation tracking.
"""
import logging
from typing import Any, Dict, List, Optional

from kingdom.constants import (
    TABLE_RULES, TABLE_RULE_VIOLATIONS, RULES_QUERY_KEY, MIRROR_RULES_KEY,
    LIST_FETCH_RETRIES,
)
from kingdom.remote_store import RemoteStore
from kingdom.schemas import RuleCreate, RuleRecord, RuleViolationResponse, normalize_usage
from kingdom.services.card_service import CardService
from kingdom.services.date_service import DateService
from kingdom.services.optimistic import MutationContext

logger = logging.getLogger("kingdom.rules")


class RuleService(CardService[RuleRecord]):
    """Service for rules and their violations"""

    table = TABLE_RULES
    query_key = RULES_QUERY_KEY
    mirror_key = MIRROR_RULES_KEY
    record_type = RuleRecord
    entity_name = "Rule"
    fetch_retries = LIST_FETCH_RETRIES
    cascade = {TABLE_RULE_VIOLATIONS: "rule_id"}

    def __init__(
        self,
        ctx: MutationContext,
        remote: RemoteStore,
        date_service: Optional[DateService] = None,
    ):
        super().__init__(ctx, remote)
        self.date_service = date_service or DateService()

    def insert_values(self, payload: RuleCreate) -> Dict[str, Any]:
        values = payload.model_dump()
        values["usage_data"] = normalize_usage(values.get("usage_data"))
        return values

    def record_violation(self, rule_id: str, user_id: Optional[str] = None) -> RuleViolationResponse:
        """
        Log a violation of a rule for today.

        Appends a rule_violations row and bumps today's slot in the rule's
        usage array.
        """
        rule = self.get(rule_id)
        today = self.date_service.today()
        row = self.remote.insert(TABLE_RULE_VIOLATIONS, {
            "rule_id": rule_id,
            "user_id": user_id or rule.user_id,
            "day_of_week": self.date_service.day_index(today),
            "week_number": self.date_service.week_identifier(today),
        })
        self.update(rule_id, {"usage_data": self.date_service.add_usage(rule.usage_data, 1, today)})
        logger.info(f"Violation recorded for rule {rule_id}")
        return RuleViolationResponse.model_validate(row)

    def violations(self, rule_id: Optional[str] = None) -> List[RuleViolationResponse]:
        """Violations of this week, optionally for one rule"""
        filters = {"rule_id": rule_id} if rule_id else None
        rows = self.remote.select(
            TABLE_RULE_VIOLATIONS,
            filters,
            order_by="violation_date",
            descending=True,
            since={"violation_date": self._week_start()},
        )
        return [RuleViolationResponse.model_validate(row) for row in rows]

    def _week_start(self):
        day_start, _ = self.date_service.get_day_range(self.date_service.start_of_week())
        return day_start

    def reset_usage(self) -> int:
        """Zero the weekly usage arrays of all rules"""
        rows = self.remote.select(self.table)
        for row in rows:
            self.remote.update(self.table, row["id"], {"usage_data": normalize_usage(None)})
        self.ctx.cache.invalidate_queries(self.query_key)
        return len(rows)
