"""
Task service.
Task list, CRUD and the completion side effects: per-weekday usage,
completion history and points for the completing profile.
"""
import logging
from typing import Any, Dict, List, Optional

from kingdom.constants import (
    TABLE_TASKS, TABLE_TASK_COMPLETION_HISTORY, TASKS_QUERY_KEY, MIRROR_TASKS_KEY,
    TASKS_FETCH_TIMEOUT_SECONDS, FREQUENCIES,
)
from kingdom.exceptions import CompletionLimitReachedException, ValidationException
from kingdom.remote_store import RemoteStore
from kingdom.schemas import TaskCreate, TaskRecord, TaskCompletionResponse, normalize_usage
from kingdom.services.card_service import CardService
from kingdom.services.date_service import DateService
from kingdom.services.optimistic import MutationContext
from kingdom.services.points_service import PointsService

logger = logging.getLogger("kingdom.tasks")


class TaskService(CardService[TaskRecord]):
    """Service for task management"""

    table = TABLE_TASKS
    query_key = TASKS_QUERY_KEY
    mirror_key = MIRROR_TASKS_KEY
    record_type = TaskRecord
    entity_name = "Task"
    fetch_timeout = TASKS_FETCH_TIMEOUT_SECONDS
    cascade = {TABLE_TASK_COMPLETION_HISTORY: "task_id"}

    def __init__(
        self,
        ctx: MutationContext,
        remote: RemoteStore,
        points: Optional[PointsService] = None,
        date_service: Optional[DateService] = None,
    ):
        super().__init__(ctx, remote)
        self.points = points or PointsService(ctx, remote)
        self.date_service = date_service or DateService()

    def insert_values(self, payload: TaskCreate) -> Dict[str, Any]:
        values = payload.model_dump()
        values["usage_data"] = normalize_usage(values.get("usage_data"))
        values["completed"] = False
        return values

    def due_today(self) -> List[TaskRecord]:
        """Tasks scheduled for today by their frequency"""
        return [
            task for task in self.list()
            if self.date_service.is_due(task.frequency, task.frequency_count)
        ]

    def complete(self, task_id: str, user_id: Optional[str] = None) -> TaskRecord:
        """
        Record one completion of a task for today.

        Bumps today's usage slot, marks the task completed once the slot
        reaches frequency_count, appends a completion history row and awards
        the task's points to the completing profile.

        The three writes are separate remote calls. Every check, including
        the completing profile's existence, runs before the first of them.

        Raises:
            CompletionLimitReachedException: today's completions are used up
            RecordNotFoundException: unknown task or profile
        """
        task = self.get(task_id)
        done_today = self.date_service.usage_for(task.usage_data)
        if done_today >= task.frequency_count:
            raise CompletionLimitReachedException(task_id, task.frequency_count)
        completer = user_id or task.user_id
        if completer:
            self.remote.get_profile(completer)

        usage = self.date_service.add_usage(task.usage_data, 1)
        today = self.date_service.today()
        updated = self.update(task_id, {
            "usage_data": usage,
            "completed": usage[self.date_service.day_index(today)] >= task.frequency_count,
            "last_completed_date": today,
            "week_identifier": self.date_service.week_identifier(today),
        })

        self.remote.insert(
            TABLE_TASK_COMPLETION_HISTORY, {"task_id": task_id, "user_id": completer}
        )
        logger.info(f"Task {task_id} completed ({done_today + 1}/{task.frequency_count} today)")

        if completer and task.points:
            self.points.add(completer, task.points)
        return updated

    def uncomplete(self, task_id: str, user_id: Optional[str] = None) -> TaskRecord:
        """Take back one of today's completions and the points it earned"""
        task = self.get(task_id)
        if self.date_service.usage_for(task.usage_data) == 0 and not task.completed:
            return task
        completer = user_id or task.user_id
        if completer:
            self.remote.get_profile(completer)

        usage = self.date_service.add_usage(task.usage_data, -1)
        updated = self.update(task_id, {"usage_data": usage, "completed": False})

        if completer and task.points:
            self.points.add(completer, -task.points)
        logger.info(f"Task {task_id} uncompleted")
        return updated

    def completions(self, task_id: str) -> List[TaskCompletionResponse]:
        """Completion history of a task, newest first"""
        rows = self.remote.select(
            TABLE_TASK_COMPLETION_HISTORY, {"task_id": task_id}, order_by="completed_at", descending=True
        )
        return [TaskCompletionResponse.model_validate(row) for row in rows]

    # ===== PERIODIC RESETS =====

    def reset_completions(self, frequency: str) -> int:
        """Clear the completed flag on every task of a frequency"""
        if frequency not in FREQUENCIES:
            raise ValidationException("frequency", f"unknown frequency {frequency}")
        rows = self.remote.select(self.table, {"frequency": frequency, "completed": True})
        for row in rows:
            self.remote.update(self.table, row["id"], {"completed": False})
        self.ctx.cache.invalidate_queries(self.query_key)
        logger.info(f"Reset {len(rows)} {frequency} tasks")
        return len(rows)

    def reset_usage(self) -> int:
        """Zero the weekly usage arrays of all tasks"""
        rows = self.remote.select(self.table)
        for row in rows:
            self.remote.update(self.table, row["id"], {"usage_data": normalize_usage(None)})
        self.ctx.cache.invalidate_queries(self.query_key)
        return len(rows)
