import datetime
import pytest
import sqlalchemy.dialects.postgresql
import bookbuddy.errors
import bookbuddy.services.goal_service as goal_service
from tests.conftest import NOW, make_scalar_result, make_list_result

UTC = datetime.timezone.utc


def compiled(stmt):
    return str(stmt.compile(dialect=sqlalchemy.dialects.postgresql.dialect()))


class TestComputeDeadline:
    def test_end_of_local_day_converted_to_utc(self):
        deadline = goal_service.compute_deadline(NOW, "America/New_York", 30)
        assert deadline == datetime.datetime(2026, 4, 15, 3, 59, 59, 999999, tzinfo=UTC)

    def test_utc(self):
        deadline = goal_service.compute_deadline(NOW, "UTC", 1)
        assert deadline == datetime.datetime(2026, 3, 16, 23, 59, 59, 999999, tzinfo=UTC)

    def test_timezone_ahead_of_utc(self):
        deadline = goal_service.compute_deadline(NOW, "Asia/Tokyo", 1)
        assert deadline == datetime.datetime(2026, 3, 16, 14, 59, 59, 999999, tzinfo=UTC)

    def test_unknown_timezone(self):
        with pytest.raises(bookbuddy.errors.ValidationError, match="Invalid timezone"):
            goal_service.compute_deadline(NOW, "Mars/Olympus_Mons", 1)

    def test_blank_timezone(self):
        with pytest.raises(bookbuddy.errors.ValidationError, match="Timezone is required"):
            goal_service.compute_deadline(NOW, " ", 1)


class TestCreateGoal:
    @pytest.mark.asyncio
    async def test_create_success(self, mock_session, clock):
        row = await goal_service.create_goal(mock_session, 10, " Summer reading ", 5, 30, "Europe/Warsaw", clock)

        assert row.user_id == 10
        assert row.name == "Summer reading"
        assert row.target_count == 5
        assert row.progress_count == 0
        assert row.status == "active"
        assert row.deadline_timezone == "Europe/Warsaw"
        assert row.deadline_at_utc > NOW
        mock_session.add.assert_called_once_with(row)
        mock_session.commit.assert_called_once()
        mock_session.refresh.assert_called_once_with(row)

    @pytest.mark.asyncio
    async def test_collects_all_validation_errors(self, mock_session, clock):
        with pytest.raises(bookbuddy.errors.ValidationError) as exc_info:
            await goal_service.create_goal(mock_session, 10, "", 0, 0, "UTC", clock)

        assert exc_info.value.message == (
            "Validation failed: Goal name is required, Target count must be a positive integer, "
            "Days to complete must be at least 1"
        )
        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_target_upper_bound(self, mock_session, clock):
        with pytest.raises(bookbuddy.errors.ValidationError, match="Target count cannot exceed 9999"):
            await goal_service.create_goal(mock_session, 10, "Big", 10000, 30, "UTC", clock)

    @pytest.mark.asyncio
    async def test_name_too_long(self, mock_session, clock):
        with pytest.raises(bookbuddy.errors.ValidationError, match="255 characters or less"):
            await goal_service.create_goal(mock_session, 10, "x" * 256, 5, 30, "UTC", clock)

    @pytest.mark.asyncio
    async def test_timezone_required(self, mock_session, clock):
        with pytest.raises(bookbuddy.errors.ValidationError, match="Timezone is required"):
            await goal_service.create_goal(mock_session, 10, "Goal", 5, 30, "", clock)

    @pytest.mark.asyncio
    async def test_non_integer_target(self, mock_session, clock):
        with pytest.raises(bookbuddy.errors.ValidationError, match="positive integer"):
            await goal_service.create_goal(mock_session, 10, "Goal", 2.5, 30, "UTC", clock)


class TestGetGoal:
    @pytest.mark.asyncio
    async def test_get_success(self, mock_session, goal):
        mock_session.execute.return_value = make_scalar_result(goal)
        assert await goal_service.get_goal(mock_session, 10, 1) is goal

    @pytest.mark.asyncio
    async def test_not_found(self, mock_session):
        mock_session.execute.return_value = make_scalar_result(None)
        with pytest.raises(bookbuddy.errors.NotFoundError) as exc_info:
            await goal_service.get_goal(mock_session, 10, 999)
        assert exc_info.value.code == "not_found"

    @pytest.mark.asyncio
    async def test_other_users_goal(self, mock_session, goal):
        mock_session.execute.return_value = make_scalar_result(goal)
        with pytest.raises(bookbuddy.errors.ForbiddenError):
            await goal_service.get_goal(mock_session, 11, 1)


class TestListGoals:
    @pytest.mark.asyncio
    async def test_returns_items_and_count(self, mock_session, goal):
        count_result, items_result = make_list_result([goal], 1)
        mock_session.execute.side_effect = [count_result, items_result]
        rows, total = await goal_service.list_goals(mock_session, 10)

        assert total == 1
        assert rows == [goal]
        list_sql = compiled(mock_session.execute.call_args_list[1][0][0])
        assert "ORDER BY CASE WHEN" in list_sql
        assert "deadline_at_utc ASC" in list_sql

    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, mock_session):
        with pytest.raises(bookbuddy.errors.ValidationError):
            await goal_service.list_goals(mock_session, 10, status_filter="paused")


class TestUpdateGoal:
    @pytest.mark.asyncio
    async def test_update_target(self, mock_session, goal, clock):
        mock_session.execute.side_effect = [make_scalar_result(goal), make_scalar_result(goal)]
        result = await goal_service.update_goal(mock_session, 10, 1, target_count=3, clock=clock)

        assert result is goal
        update_sql = compiled(mock_session.execute.call_args_list[1][0][0])
        assert "target_count=" in update_sql
        assert "bonus_count=greatest(" in update_sql
        assert "status=CASE WHEN" in update_sql
        mock_session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_extend_deadline(self, mock_session, goal, clock):
        mock_session.execute.side_effect = [make_scalar_result(goal), make_scalar_result(goal)]
        await goal_service.update_goal(mock_session, 10, 1, days_to_add=7, clock=clock)

        stmt = mock_session.execute.call_args_list[1][0][0]
        assert "target_count=" not in compiled(stmt)
        assert stmt.compile().params["deadline_at_utc"] == datetime.datetime(
            2027, 1, 7, 23, 59, 59, 999999, tzinfo=UTC
        )

    @pytest.mark.asyncio
    async def test_extend_deadline_across_dst_change(self, mock_session, goal, clock):
        goal.deadline_timezone = "America/New_York"
        goal.deadline_at_utc = datetime.datetime(2026, 10, 31, 3, 59, 59, 999999, tzinfo=UTC)
        mock_session.execute.side_effect = [make_scalar_result(goal), make_scalar_result(goal)]
        await goal_service.update_goal(mock_session, 10, 1, days_to_add=7, clock=clock)

        stmt = mock_session.execute.call_args_list[1][0][0]
        assert stmt.compile().params["deadline_at_utc"] == datetime.datetime(
            2026, 11, 7, 4, 59, 59, 999999, tzinfo=UTC
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["completed", "expired"])
    async def test_only_active_goals_editable(self, mock_session, goal, clock, status):
        goal.status = status
        mock_session.execute.return_value = make_scalar_result(goal)
        with pytest.raises(bookbuddy.errors.InvalidStateError) as exc_info:
            await goal_service.update_goal(mock_session, 10, 1, target_count=20, clock=clock)
        assert exc_info.value.message == f"Cannot edit {status} goals. Only active goals can be modified."

    @pytest.mark.asyncio
    async def test_requires_a_field(self, mock_session, clock):
        with pytest.raises(bookbuddy.errors.ValidationError, match="No valid fields to update"):
            await goal_service.update_goal(mock_session, 10, 1, clock=clock)
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_days_to_add(self, mock_session, goal, clock):
        mock_session.execute.return_value = make_scalar_result(goal)
        with pytest.raises(bookbuddy.errors.ValidationError, match="Days to add must be at least 1"):
            await goal_service.update_goal(mock_session, 10, 1, days_to_add=0, clock=clock)

    @pytest.mark.asyncio
    async def test_goal_completed_concurrently(self, mock_session, goal, clock):
        mock_session.execute.side_effect = [make_scalar_result(goal), make_scalar_result(None)]
        with pytest.raises(bookbuddy.errors.InvalidStateError):
            await goal_service.update_goal(mock_session, 10, 1, target_count=3, clock=clock)
        mock_session.rollback.assert_called_once()
        mock_session.commit.assert_not_called()


class TestDeleteGoal:
    @pytest.mark.asyncio
    async def test_delete_success(self, mock_session, goal):
        mock_session.execute.side_effect = [make_scalar_result(goal), make_scalar_result(1)]
        await goal_service.delete_goal(mock_session, 10, 1)
        mock_session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_delete_other_users_goal(self, mock_session, goal):
        mock_session.execute.return_value = make_scalar_result(goal)
        with pytest.raises(bookbuddy.errors.ForbiddenError):
            await goal_service.delete_goal(mock_session, 11, 1)
        mock_session.commit.assert_not_called()


class TestExpireOverdueGoals:
    @pytest.mark.asyncio
    async def test_expires_and_counts(self, mock_session, clock):
        mock_session.execute.return_value = make_scalar_result([4, 5])
        assert await goal_service.expire_overdue_goals(mock_session, clock) == 2
        sql = compiled(mock_session.execute.call_args[0][0])
        assert "deadline_at_utc <= " in sql
        mock_session.commit.assert_called_once()
