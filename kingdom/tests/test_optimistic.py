"""
Tests for the optimistic create/update/delete helpers.

Tests cover:
1. Placeholders visible while the remote call runs
2. Placeholder swap and de-duplication on success
3. Exact rollback and error notices on failure
4. Mirror writes, mirror-failure warnings and lists not loaded yet
5. Related-list trimming on delete
"""
import pytest
from datetime import datetime

from kingdom.constants import (
    TASKS_QUERY_KEY, RULES_QUERY_KEY, PUNISHMENTS_QUERY_KEY, PUNISHMENT_HISTORY_QUERY_KEY,
    MIRROR_TASKS_KEY, MIRROR_RULES_KEY, MIRROR_PUNISHMENTS_KEY, MIRROR_PUNISHMENT_HISTORY_KEY,
)
from kingdom.exceptions import RemoteStoreException
from kingdom.schemas import (
    Pending, Persisted, TaskCreate, TaskRecord, RuleRecord, PunishmentRecord, PunishmentHistoryItem,
)
from kingdom.services.optimistic import (
    MutationContext, MutationStatus, OptimisticMutation, RelatedList,
    create_optimistic, update_optimistic, delete_optimistic,
)


def build_task(payload, temp_id):
    return TaskRecord(id=temp_id, state=Pending(temp_id=temp_id), **payload.model_dump())


def ids(records):
    return [record.id for record in records]


class TestCreateOptimistic:
    """Tests for create_optimistic"""

    def test_placeholder_visible_during_remote_call(self, ctx):
        """The cache shows exactly one pending record before the insert returns"""
        existing = TaskRecord(id="a", title="Existing")
        ctx.cache.set_query_data(TASKS_QUERY_KEY, [existing])
        seen = {}

        def remote_insert(payload):
            seen["during"] = ctx.cache.get_query_data(TASKS_QUERY_KEY)
            return TaskRecord(id="server-1", title=payload.title, created_at=datetime.now())

        create_optimistic(
            ctx, TASKS_QUERY_KEY, TaskCreate(title="Clean room"), remote_insert, build_task, "Task",
        )

        during = seen["during"]
        assert len(during) == 2
        placeholder = during[0]
        assert placeholder.is_pending
        assert placeholder.title == "Clean room"
        assert placeholder.points == 10
        assert placeholder.priority == "medium"
        assert placeholder.frequency == "daily"
        assert placeholder.usage_data == [0] * 7
        assert placeholder.icon_color == "#9b87f5"
        assert during[1].id == "a"

    def test_success_replaces_placeholder(self, ctx):
        """After success the server record sits where the placeholder was"""
        ctx.cache.set_query_data(TASKS_QUERY_KEY, [TaskRecord(id="a", title="Existing")])

        record = create_optimistic(
            ctx,
            TASKS_QUERY_KEY,
            TaskCreate(title="Clean room"),
            lambda payload: TaskRecord(id="server-1", title=payload.title),
            build_task,
            "Task",
            MIRROR_TASKS_KEY,
        )

        cached = ctx.cache.get_query_data(TASKS_QUERY_KEY)
        assert record.id == "server-1"
        assert ids(cached) == ["server-1", "a"]
        assert not any(item.is_pending for item in cached)
        assert isinstance(cached[0].state, Persisted)

    def test_success_writes_mirror_and_notice(self, ctx):
        """The mirror holds the full post-mutation list and a success notice is raised"""
        ctx.cache.set_query_data(TASKS_QUERY_KEY, [TaskRecord(id="a", title="Existing")])

        create_optimistic(
            ctx,
            TASKS_QUERY_KEY,
            TaskCreate(title="Clean room"),
            lambda payload: TaskRecord(id="server-1", title=payload.title),
            build_task,
            "Task",
            MIRROR_TASKS_KEY,
        )

        mirrored = ctx.mirror.load_records(MIRROR_TASKS_KEY)
        assert [row["id"] for row in mirrored] == ["server-1", "a"]
        assert ctx.mirror.get_last_sync(MIRROR_TASKS_KEY) is not None
        notice = ctx.notifier.recent()[0]
        assert notice.level == "success"
        assert notice.title == "Task created successfully!"

    def test_server_copy_already_cached_is_not_duplicated(self, ctx):
        """A refetch that delivered the server copy mid-call leaves one record"""
        server = TaskRecord(id="server-1", title="Clean room")

        def remote_insert(payload):
            ctx.cache.set_query_data(TASKS_QUERY_KEY, lambda old: list(old) + [server])
            return server

        create_optimistic(ctx, TASKS_QUERY_KEY, TaskCreate(title="Clean room"), remote_insert, build_task, "Task")

        cached = ctx.cache.get_query_data(TASKS_QUERY_KEY)
        assert ids(cached) == ["server-1"]

    def test_failure_restores_snapshot(self, ctx):
        """A failed insert leaves the list exactly as it was"""
        before = [TaskRecord(id="a", title="One"), TaskRecord(id="b", title="Two")]
        ctx.cache.set_query_data(TASKS_QUERY_KEY, before)

        def remote_insert(payload):
            raise RemoteStoreException("insert", "connection reset")

        with pytest.raises(RemoteStoreException):
            create_optimistic(
                ctx, TASKS_QUERY_KEY, TaskCreate(title="Clean room"), remote_insert, build_task, "Task",
                MIRROR_TASKS_KEY,
            )

        assert ids(ctx.cache.get_query_data(TASKS_QUERY_KEY)) == ["a", "b"]
        assert ctx.mirror.load_records(MIRROR_TASKS_KEY) is None
        notice = ctx.notifier.recent()[0]
        assert notice.level == "error"
        assert notice.title == "Error creating Task"
        assert "connection reset" in notice.description

    def test_failure_on_empty_cache_restores_empty_list(self, ctx):
        def remote_insert(payload):
            raise RemoteStoreException("insert", "down")

        with pytest.raises(RemoteStoreException):
            create_optimistic(ctx, TASKS_QUERY_KEY, TaskCreate(title="X"), remote_insert, build_task, "Task")

        assert ctx.cache.get_query_data(TASKS_QUERY_KEY) == []

    def test_mirror_failure_only_warns(self, cache, failing_mirror, notifier):
        """A local save error after a remote success keeps the new record"""
        ctx = MutationContext(cache=cache, mirror=failing_mirror, notifier=notifier)
        cache.set_query_data(TASKS_QUERY_KEY, [])

        record = create_optimistic(
            ctx,
            TASKS_QUERY_KEY,
            TaskCreate(title="Clean room"),
            lambda payload: TaskRecord(id="server-1", title=payload.title),
            build_task,
            "Task",
            MIRROR_TASKS_KEY,
        )

        assert record.id == "server-1"
        assert ids(cache.get_query_data(TASKS_QUERY_KEY)) == ["server-1"]
        warnings = notifier.recent("warning")
        assert len(warnings) == 1
        assert warnings[0].title == "Local save error"

    def test_cold_cache_leaves_mirror_untouched(self, ctx):
        """A create before the list was ever loaded does not shrink the mirrored list"""
        ctx.mirror.save_records(MIRROR_TASKS_KEY, [TaskRecord(id="a", title="One"), TaskRecord(id="b", title="Two")])

        record = create_optimistic(
            ctx,
            TASKS_QUERY_KEY,
            TaskCreate(title="Clean room"),
            lambda payload: TaskRecord(id="server-1", title=payload.title),
            build_task,
            "Task",
            MIRROR_TASKS_KEY,
        )

        assert record.id == "server-1"
        assert [row["id"] for row in ctx.mirror.load_records(MIRROR_TASKS_KEY)] == ["a", "b"]
        assert ctx.cache.get_query_state(TASKS_QUERY_KEY).is_partial
        assert ctx.cache.is_stale(TASKS_QUERY_KEY)

    def test_second_create_on_unloaded_list_leaves_mirror_untouched(self, ctx):
        """The one-record list left by the first create is not mistaken for a loaded list"""
        ctx.mirror.save_records(MIRROR_TASKS_KEY, [TaskRecord(id="a", title="One"), TaskRecord(id="b", title="Two")])

        for server_id in ("server-1", "server-2"):
            create_optimistic(
                ctx,
                TASKS_QUERY_KEY,
                TaskCreate(title="Clean room"),
                lambda payload, server_id=server_id: TaskRecord(id=server_id, title=payload.title),
                build_task,
                "Task",
                MIRROR_TASKS_KEY,
            )

        assert ids(ctx.cache.get_query_data(TASKS_QUERY_KEY)) == ["server-2", "server-1"]
        assert [row["id"] for row in ctx.mirror.load_records(MIRROR_TASKS_KEY)] == ["a", "b"]

    def test_list_invalidated_after_settle(self, ctx):
        create_optimistic(
            ctx,
            TASKS_QUERY_KEY,
            TaskCreate(title="Clean room"),
            lambda payload: TaskRecord(id="server-1", title=payload.title),
            build_task,
            "Task",
        )

        assert ctx.cache.is_stale(TASKS_QUERY_KEY)


class TestUpdateOptimistic:
    """Tests for update_optimistic"""

    def test_patch_visible_during_call_and_rolled_back(self, ctx):
        """Rule r1: frequency_count 1 -> 3 while pending, back to 1 on failure"""
        ctx.cache.set_query_data(RULES_QUERY_KEY, [RuleRecord(id="r1", title="No phones", frequency_count=1)])
        seen = {}

        def remote_update(record_id, patch):
            seen["during"] = ctx.cache.get_query_data(RULES_QUERY_KEY)[0].frequency_count
            raise RemoteStoreException("update", "timeout")

        with pytest.raises(RemoteStoreException):
            update_optimistic(ctx, RULES_QUERY_KEY, "r1", {"frequency_count": 3}, remote_update, "Rule")

        assert seen["during"] == 3
        restored = ctx.cache.get_query_data(RULES_QUERY_KEY)
        assert restored[0].frequency_count == 1
        assert ctx.notifier.recent()[0].title == "Error updating Rule"

    def test_success_uses_server_record(self, ctx):
        """The authoritative response replaces the merged local copy"""
        ctx.cache.set_query_data(RULES_QUERY_KEY, [
            RuleRecord(id="r0", title="First"),
            RuleRecord(id="r1", title="No phones", frequency_count=1),
        ])

        def remote_update(record_id, patch):
            return RuleRecord(id=record_id, title="No phones (server)", frequency_count=patch["frequency_count"])

        record = update_optimistic(
            ctx, RULES_QUERY_KEY, "r1", {"frequency_count": 3}, remote_update, "Rule", MIRROR_RULES_KEY,
        )

        cached = ctx.cache.get_query_data(RULES_QUERY_KEY)
        assert record.title == "No phones (server)"
        assert ids(cached) == ["r0", "r1"]
        assert cached[1].title == "No phones (server)"
        assert cached[1].frequency_count == 3
        assert ctx.mirror.load_records(MIRROR_RULES_KEY)[1]["frequency_count"] == 3

    def test_merge_touches_updated_at(self, ctx):
        ctx.cache.set_query_data(RULES_QUERY_KEY, [RuleRecord(id="r1", title="No phones")])
        seen = {}

        def remote_update(record_id, patch):
            seen["updated_at"] = ctx.cache.get_query_data(RULES_QUERY_KEY)[0].updated_at
            return RuleRecord(id=record_id, title="No phones")

        update_optimistic(ctx, RULES_QUERY_KEY, "r1", {"title": "No phones"}, remote_update, "Rule")

        assert seen["updated_at"] is not None

    def test_unknown_id_is_local_noop(self, ctx):
        """The remote update still runs but nothing is inserted into the cache"""
        ctx.cache.set_query_data(RULES_QUERY_KEY, [RuleRecord(id="r0", title="First")])
        calls = []

        def remote_update(record_id, patch):
            calls.append(record_id)
            return RuleRecord(id=record_id, title="Elsewhere")

        update_optimistic(ctx, RULES_QUERY_KEY, "ghost", {"title": "Elsewhere"}, remote_update, "Rule")

        assert calls == ["ghost"]
        assert ids(ctx.cache.get_query_data(RULES_QUERY_KEY)) == ["r0"]

    def test_cold_cache_update_leaves_mirror_untouched(self, ctx):
        ctx.mirror.save_records(MIRROR_RULES_KEY, [RuleRecord(id="r1", title="Bedtime"), RuleRecord(id="r2", title="Chores")])

        update_optimistic(
            ctx,
            RULES_QUERY_KEY,
            "r1",
            {"title": "Lights out"},
            lambda record_id, patch: RuleRecord(id=record_id, **patch),
            "Rule",
            MIRROR_RULES_KEY,
        )

        assert [row["title"] for row in ctx.mirror.load_records(MIRROR_RULES_KEY)] == ["Bedtime", "Chores"]


class TestDeleteOptimistic:
    """Tests for delete_optimistic"""

    @pytest.fixture
    def seeded(self, ctx):
        ctx.cache.set_query_data(PUNISHMENTS_QUERY_KEY, [
            PunishmentRecord(id="p0", title="Lines"),
            PunishmentRecord(id="p1", title="Corner time"),
            PunishmentRecord(id="p2", title="Early bed"),
        ])
        ctx.cache.set_query_data(PUNISHMENT_HISTORY_QUERY_KEY, [
            PunishmentHistoryItem(id="h1", punishment_id="p1", points_deducted=10, day_of_week=0),
            PunishmentHistoryItem(id="h2", punishment_id="p2", points_deducted=5, day_of_week=1),
            PunishmentHistoryItem(id="h3", punishment_id="p1", points_deducted=10, day_of_week=2),
        ])
        return RelatedList(PUNISHMENT_HISTORY_QUERY_KEY, "punishment_id", MIRROR_PUNISHMENT_HISTORY_KEY)

    def test_removed_immediately_with_related_rows(self, ctx, seeded):
        """Punishment p1 and both of its history rows vanish before the remote call returns"""
        seen = {}

        def remote_delete(record_id):
            seen["punishments"] = ids(ctx.cache.get_query_data(PUNISHMENTS_QUERY_KEY))
            seen["history"] = ids(ctx.cache.get_query_data(PUNISHMENT_HISTORY_QUERY_KEY))

        delete_optimistic(
            ctx, PUNISHMENTS_QUERY_KEY, "p1", remote_delete, "Punishment", MIRROR_PUNISHMENTS_KEY,
            related=seeded,
        )

        assert seen["punishments"] == ["p0", "p2"]
        assert seen["history"] == ["h2"]
        assert [row["id"] for row in ctx.mirror.load_records(MIRROR_PUNISHMENTS_KEY)] == ["p0", "p2"]
        assert [row["id"] for row in ctx.mirror.load_records(MIRROR_PUNISHMENT_HISTORY_KEY)] == ["h2"]

    def test_failure_restores_original_positions(self, ctx, seeded):
        def remote_delete(record_id):
            raise RemoteStoreException("delete", "refused")

        with pytest.raises(RemoteStoreException):
            delete_optimistic(
                ctx, PUNISHMENTS_QUERY_KEY, "p1", remote_delete, "Punishment", MIRROR_PUNISHMENTS_KEY,
                related=seeded,
            )

        punishments = ctx.cache.get_query_data(PUNISHMENTS_QUERY_KEY)
        assert ids(punishments) == ["p0", "p1", "p2"]
        assert punishments[1].title == "Corner time"
        assert ids(ctx.cache.get_query_data(PUNISHMENT_HISTORY_QUERY_KEY)) == ["h1", "h2", "h3"]
        assert ctx.notifier.recent()[0].title == "Error deleting Punishment"

    def test_cold_related_list_keeps_its_mirror(self, ctx):
        """Deleting p1 before history was loaded keeps other punishments' history mirrored"""
        ctx.cache.set_query_data(PUNISHMENTS_QUERY_KEY, [
            PunishmentRecord(id="p1", title="Corner time"),
            PunishmentRecord(id="p2", title="Early bed"),
        ])
        ctx.mirror.save_records(MIRROR_PUNISHMENT_HISTORY_KEY, [
            PunishmentHistoryItem(id="h2", punishment_id="p2", points_deducted=5, day_of_week=1),
        ])
        related = RelatedList(PUNISHMENT_HISTORY_QUERY_KEY, "punishment_id", MIRROR_PUNISHMENT_HISTORY_KEY)

        delete_optimistic(
            ctx, PUNISHMENTS_QUERY_KEY, "p1", lambda record_id: None, "Punishment", MIRROR_PUNISHMENTS_KEY,
            related=related,
        )

        assert [row["id"] for row in ctx.mirror.load_records(MIRROR_PUNISHMENTS_KEY)] == ["p2"]
        assert [row["id"] for row in ctx.mirror.load_records(MIRROR_PUNISHMENT_HISTORY_KEY)] == ["h2"]

    def test_both_lists_invalidated(self, ctx, seeded):
        delete_optimistic(ctx, PUNISHMENTS_QUERY_KEY, "p1", lambda record_id: None, "Punishment", related=seeded)

        assert ctx.cache.is_stale(PUNISHMENTS_QUERY_KEY)
        assert ctx.cache.is_stale(PUNISHMENT_HISTORY_QUERY_KEY)


class TestOptimisticMutation:
    """Tests for the mutation state machine"""

    def test_status_transitions_on_success(self, ctx):
        mutation = OptimisticMutation(ctx, "Task")
        assert mutation.status == MutationStatus.IDLE

        mutation.apply(TASKS_QUERY_KEY, lambda old: old + [TaskRecord(id="a", title="A")])
        assert mutation.status == MutationStatus.OPTIMISTIC_APPLIED

        mutation.succeed()
        assert mutation.status == MutationStatus.SETTLED_SUCCESS

    def test_snapshot_taken_once_per_key(self, ctx):
        """A second apply on the same key still rolls back to the first snapshot"""
        ctx.cache.set_query_data(TASKS_QUERY_KEY, [TaskRecord(id="a", title="A")])
        mutation = OptimisticMutation(ctx, "Task")

        mutation.apply(TASKS_QUERY_KEY, lambda old: old + [TaskRecord(id="b", title="B")])
        mutation.apply(TASKS_QUERY_KEY, lambda old: old + [TaskRecord(id="c", title="C")])
        mutation.fail(RemoteStoreException("insert", "down"), "creating")

        assert mutation.status == MutationStatus.SETTLED_ERROR
        assert ids(ctx.cache.get_query_data(TASKS_QUERY_KEY)) == ["a"]
