"""
Tests for TaskService.

Tests cover:
1. Create defaults and persistence
2. Completion limits, usage slots, history and points
3. Uncompletion
4. Delete cascading to completion history
5. Periodic resets
"""
import pytest

from kingdom.constants import TASKS_QUERY_KEY, MIRROR_TASKS_KEY, TABLE_TASK_COMPLETION_HISTORY
from kingdom.exceptions import CompletionLimitReachedException, RecordNotFoundException
from kingdom.schemas import TaskCreate, TaskUpdate
from kingdom.services.points_service import PointsService


class TestCreateTask:
    """Tests for create and list"""

    def test_defaults(self, services):
        task = services.tasks.create(TaskCreate(title="Clean room"))

        assert task.points == 10
        assert task.priority == "medium"
        assert task.frequency == "daily"
        assert task.frequency_count == 1
        assert task.usage_data == [0] * 7
        assert task.completed is False
        assert task.title_color == "#FFFFFF"
        assert not task.is_pending
        assert task.created_at is not None

    def test_cached_and_mirrored(self, services):
        services.tasks.list()
        task = services.tasks.create(TaskCreate(title="Clean room"))

        assert [item.id for item in services.ctx.cache.get_query_data(TASKS_QUERY_KEY)] == [task.id]
        assert services.ctx.mirror.load_records(MIRROR_TASKS_KEY)[0]["id"] == task.id

    def test_list_reads_remote(self, services):
        services.tasks.create(TaskCreate(title="First"))
        services.tasks.create(TaskCreate(title="Second"))
        services.ctx.cache.clear()

        titles = {task.title for task in services.tasks.list()}

        assert titles == {"First", "Second"}


class TestUpdateTask:
    """Tests for update"""

    def test_partial_update(self, services):
        task = services.tasks.create(TaskCreate(title="Clean room", points=5))

        updated = services.tasks.update(task.id, TaskUpdate(points=20))

        assert updated.points == 20
        assert updated.title == "Clean room"

    def test_unknown_task_rolls_back(self, services):
        services.tasks.create(TaskCreate(title="Clean room"))

        with pytest.raises(RecordNotFoundException):
            services.tasks.update("missing", TaskUpdate(points=20))
        assert services.ctx.notifier.recent()[0].title == "Error updating Task"


class TestCompleteTask:
    """Tests for complete / uncomplete"""

    def test_complete_updates_usage_history_and_points(self, services, couple, date_service, db_session):
        sub_id, _ = couple
        task = services.tasks.create(TaskCreate(title="Clean room", points=15, user_id=sub_id))

        completed = services.tasks.complete(task.id)

        slot = date_service.day_index()
        assert completed.usage_data[slot] == 1
        assert completed.completed is True
        assert completed.last_completed_date == date_service.today()
        assert completed.week_identifier == date_service.week_identifier()
        assert services.points.get_points(sub_id).points == 65
        assert len(services.tasks.completions(task.id)) == 1

    def test_limit_reached(self, services):
        task = services.tasks.create(TaskCreate(title="Clean room"))
        services.tasks.complete(task.id)

        with pytest.raises(CompletionLimitReachedException):
            services.tasks.complete(task.id)

    def test_multiple_completions_per_day(self, services):
        task = services.tasks.create(TaskCreate(title="Drink water", frequency_count=2))

        first = services.tasks.complete(task.id)
        second = services.tasks.complete(task.id)

        assert first.completed is False
        assert second.completed is True

    def test_points_to_explicit_user(self, services, couple):
        _, dom_id = couple
        task = services.tasks.create(TaskCreate(title="Plan date", points=4))

        services.tasks.complete(task.id, dom_id)

        assert services.points.get_points(dom_id).points == 4

    def test_unknown_completer_changes_nothing(self, services, date_service):
        task = services.tasks.create(TaskCreate(title="Clean room"))

        with pytest.raises(RecordNotFoundException):
            services.tasks.complete(task.id, "ghost")

        stored = services.tasks.get(task.id)
        assert stored.usage_data[date_service.day_index()] == 0
        assert stored.completed is False
        assert services.tasks.completions(task.id) == []

    def test_uncomplete_reverses(self, services, couple, date_service):
        sub_id, _ = couple
        task = services.tasks.create(TaskCreate(title="Clean room", points=15, user_id=sub_id))
        services.tasks.complete(task.id)

        reverted = services.tasks.uncomplete(task.id)

        assert reverted.completed is False
        assert reverted.usage_data[date_service.day_index()] == 0
        assert services.ctx.cache.get_query_data(PointsService.query_key(sub_id)).points == 50

    def test_uncomplete_untouched_task_is_noop(self, services):
        task = services.tasks.create(TaskCreate(title="Clean room"))

        assert services.tasks.uncomplete(task.id).usage_data == [0] * 7


class TestDeleteTask:
    """Tests for delete"""

    def test_delete_removes_completion_history(self, services, remote):
        task = services.tasks.create(TaskCreate(title="Clean room"))
        services.tasks.complete(task.id)

        services.tasks.delete(task.id)

        assert services.ctx.cache.get_query_data(TASKS_QUERY_KEY) == []
        assert remote.select(TABLE_TASK_COMPLETION_HISTORY, {"task_id": task.id}) == []

    def test_delete_unknown_restores(self, services):
        task = services.tasks.create(TaskCreate(title="Clean room"))

        with pytest.raises(RecordNotFoundException):
            services.tasks.delete("missing")
        assert [item.id for item in services.ctx.cache.get_query_data(TASKS_QUERY_KEY)] == [task.id]


class TestResets:
    """Tests for due_today and the periodic resets"""

    def test_daily_tasks_always_due(self, services):
        services.tasks.create(TaskCreate(title="Clean room"))

        assert [task.title for task in services.tasks.due_today()] == ["Clean room"]

    def test_reset_daily_completions(self, services):
        daily = services.tasks.create(TaskCreate(title="Clean room"))
        weekly = services.tasks.create(TaskCreate(title="Laundry", frequency="weekly"))
        services.tasks.complete(daily.id)
        services.tasks.complete(weekly.id)

        assert services.tasks.reset_completions("daily") == 1

        by_title = {task.title: task for task in services.tasks.list()}
        assert by_title["Clean room"].completed is False
        assert by_title["Laundry"].completed is True

    def test_reset_usage(self, services):
        task = services.tasks.create(TaskCreate(title="Clean room"))
        services.tasks.complete(task.id)

        services.tasks.reset_usage()

        assert services.tasks.get(task.id).usage_data == [0] * 7
