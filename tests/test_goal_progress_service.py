import pytest
import sqlalchemy.dialects.postgresql
from unittest.mock import AsyncMock
import bookbuddy.services.goal_progress_service as goal_progress_service
from tests.conftest import NOW, make_scalar_result


def compiled(stmt):
    return str(stmt.compile(dialect=sqlalchemy.dialects.postgresql.dialect()))


class TestOnBookCompleted:
    @pytest.mark.asyncio
    async def test_counts_book_toward_every_goal(self, mock_session, mock_goal, clock):
        mock_session.execute.side_effect = [
            make_scalar_result([1, 2]),
            make_scalar_result(1),
            make_scalar_result(mock_goal),
            make_scalar_result(2),
            make_scalar_result(mock_goal),
        ]
        updated = await goal_progress_service.on_book_completed(
            mock_session, 10, 100, from_status="reading", clock=clock
        )

        assert updated == [mock_goal, mock_goal]
        assert mock_session.execute.call_count == 5
        mock_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_already_counted_goal_is_untouched(self, mock_session, mock_goal, clock):
        mock_session.execute.side_effect = [
            make_scalar_result([1, 2]),
            make_scalar_result(None),
            make_scalar_result(2),
            make_scalar_result(mock_goal),
        ]
        updated = await goal_progress_service.on_book_completed(mock_session, 10, 100, clock=clock)

        assert updated == [mock_goal]
        assert mock_session.execute.call_count == 4

    @pytest.mark.asyncio
    async def test_no_goals(self, mock_session, clock):
        mock_session.execute.return_value = make_scalar_result([])
        assert await goal_progress_service.on_book_completed(mock_session, 10, 100, clock=clock) == []
        assert mock_session.execute.call_count == 1

    @pytest.mark.asyncio
    async def test_statements_are_single_row_atomic_updates(self, mock_session, mock_goal, clock):
        mock_session.execute.side_effect = [
            make_scalar_result([1]),
            make_scalar_result(1),
            make_scalar_result(mock_goal),
        ]
        await goal_progress_service.on_book_completed(mock_session, 10, 100, clock=clock)

        select_sql = compiled(mock_session.execute.call_args_list[0][0][0])
        link_sql = compiled(mock_session.execute.call_args_list[1][0][0])
        update_sql = compiled(mock_session.execute.call_args_list[2][0][0])

        assert "status IN" in select_sql
        assert "ON CONFLICT (goal_id, book_id) DO NOTHING" in link_sql
        assert "progress_count + " in update_sql
        assert "greatest(" in update_sql
        assert "CASE WHEN" in update_sql
        assert "RETURNING" in update_sql


class TestOnBookUncompleted:
    @pytest.mark.asyncio
    async def test_reverts_each_linked_goal(self, mock_session, mock_goal, clock):
        mock_session.execute.side_effect = [
            make_scalar_result([2, 1]),
            make_scalar_result(mock_goal),
            make_scalar_result(mock_goal),
        ]
        updated = await goal_progress_service.on_book_uncompleted(mock_session, 10, 100, clock=clock)

        assert len(updated) == 2
        delete_sql = compiled(mock_session.execute.call_args_list[0][0][0])
        update_sql = compiled(mock_session.execute.call_args_list[1][0][0])
        assert delete_sql.startswith("DELETE FROM bookbuddy.goal_progress")
        assert "greatest(" in update_sql
        assert "progress_count - " in update_sql
        assert "deadline_at_utc > " in update_sql
        assert NOW in mock_session.execute.call_args_list[1][0][0].compile().params.values()

    @pytest.mark.asyncio
    async def test_book_never_counted(self, mock_session, clock):
        mock_session.execute.return_value = make_scalar_result([])
        assert await goal_progress_service.on_book_uncompleted(mock_session, 10, 100, clock=clock) == []
        assert mock_session.execute.call_count == 1


class TestReconcileStatusChange:
    @pytest.fixture
    def handlers(self, mocker):
        completed = mocker.patch.object(
            goal_progress_service, "on_book_completed", new=AsyncMock(return_value=["completed"])
        )
        uncompleted = mocker.patch.object(
            goal_progress_service, "on_book_uncompleted", new=AsyncMock(return_value=["uncompleted"])
        )
        return completed, uncompleted

    @pytest.mark.asyncio
    async def test_into_read(self, mock_session, clock, handlers):
        completed, uncompleted = handlers
        result = await goal_progress_service.reconcile_status_change(
            mock_session, 10, 100, "reading", "read", clock=clock
        )
        assert result == ["completed"]
        completed.assert_awaited_once_with(mock_session, 10, 100, from_status="reading", clock=clock)
        uncompleted.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_new_book_added_as_read(self, mock_session, clock, handlers):
        completed, _ = handlers
        await goal_progress_service.reconcile_status_change(mock_session, 10, 100, None, "read", clock=clock)
        completed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_out_of_read(self, mock_session, clock, handlers):
        completed, uncompleted = handlers
        result = await goal_progress_service.reconcile_status_change(
            mock_session, 10, 100, "read", "want-to-read", clock=clock
        )
        assert result == ["uncompleted"]
        uncompleted.assert_awaited_once_with(mock_session, 10, 100, clock=clock)
        completed.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("old_status,new_status", [
        ("want-to-read", "reading"),
        ("reading", "want-to-read"),
        ("read", "read"),
    ])
    async def test_other_transitions_do_nothing(self, mock_session, clock, handlers, old_status, new_status):
        completed, uncompleted = handlers
        result = await goal_progress_service.reconcile_status_change(
            mock_session, 10, 100, old_status, new_status, clock=clock
        )
        assert result == []
        completed.assert_not_awaited()
        uncompleted.assert_not_awaited()
