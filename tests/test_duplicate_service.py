import pytest
from unittest.mock import MagicMock
import bookbuddy.services.duplicate_service as duplicate_service
from tests.conftest import make_scalar_result


@pytest.fixture
def existing_book():
    row = MagicMock()
    row.book_id = 100
    row.title = "Dune"
    return row


class TestFindDuplicate:
    @pytest.mark.asyncio
    async def test_isbn_match_short_circuits(self, mock_session, existing_book):
        mock_session.execute.return_value = make_scalar_result(existing_book)
        match = await duplicate_service.find_duplicate(
            mock_session, 10, "Dune", "Frank Herbert", isbn="0441013597", isbn13="9780441013593"
        )
        assert match == (duplicate_service.MATCH_ISBN, existing_book)
        assert mock_session.execute.call_count == 1

    @pytest.mark.asyncio
    async def test_falls_through_to_isbn13(self, mock_session, existing_book):
        mock_session.execute.side_effect = [make_scalar_result(None), make_scalar_result(existing_book)]
        match = await duplicate_service.find_duplicate(
            mock_session, 10, "Dune", "Frank Herbert", isbn="0441013597", isbn13="9780441013593"
        )
        assert match[0] == duplicate_service.MATCH_ISBN13

    @pytest.mark.asyncio
    async def test_title_author_match_without_isbns(self, mock_session, existing_book):
        mock_session.execute.return_value = make_scalar_result(existing_book)
        match = await duplicate_service.find_duplicate(mock_session, 10, "  DUNE ", "frank   herbert")
        assert match[0] == duplicate_service.MATCH_TITLE_AUTHOR
        assert mock_session.execute.call_count == 1

    @pytest.mark.asyncio
    async def test_external_id_is_last_resort(self, mock_session, existing_book):
        mock_session.execute.side_effect = [
            make_scalar_result(None),
            make_scalar_result(None),
            make_scalar_result(None),
            make_scalar_result(existing_book),
        ]
        match = await duplicate_service.find_duplicate(
            mock_session, 10, "Dune", "Frank Herbert",
            isbn="0441013597", isbn13="9780441013593", external_id="external-1"
        )
        assert match[0] == duplicate_service.MATCH_EXTERNAL_ID
        assert mock_session.execute.call_count == 4

    @pytest.mark.asyncio
    async def test_no_match(self, mock_session):
        mock_session.execute.return_value = make_scalar_result(None)
        assert await duplicate_service.find_duplicate(mock_session, 10, "Dune", "Frank Herbert") is None

    @pytest.mark.asyncio
    async def test_blank_title_skips_title_lookup(self, mock_session):
        match = await duplicate_service.find_duplicate(mock_session, 10, "  ", "Frank Herbert")
        assert match is None
        mock_session.execute.assert_not_called()


class TestIsDuplicate:
    @pytest.mark.asyncio
    async def test_true_when_matched(self, mock_session, existing_book):
        mock_session.execute.return_value = make_scalar_result(existing_book)
        assert await duplicate_service.is_duplicate(mock_session, 10, "Dune", "Frank Herbert") is True

    @pytest.mark.asyncio
    async def test_false_when_unmatched(self, mock_session):
        mock_session.execute.return_value = make_scalar_result(None)
        assert await duplicate_service.is_duplicate(mock_session, 10, "Dune", "Frank Herbert") is False


class TestTitleAuthorQuery:
    @pytest.mark.asyncio
    async def test_compares_normalized_values(self, mock_session):
        mock_session.execute.return_value = make_scalar_result(None)
        await duplicate_service.find_by_title_and_author(mock_session, 10, "  The  Hobbit ", "J.R.R. TOLKIEN")

        stmt = mock_session.execute.call_args[0][0]
        params = stmt.compile().params
        assert "the hobbit" in params.values()
        assert "j.r.r. tolkien" in params.values()


class TestIsbnQuery:
    @pytest.mark.asyncio
    async def test_isbn13_checks_both_columns(self, mock_session, existing_book):
        mock_session.execute.return_value = make_scalar_result(existing_book)
        match = await duplicate_service.find_duplicate(
            mock_session, 10, "Another Title", "Someone Else", isbn=None, isbn13="9780441013593"
        )

        assert match == (duplicate_service.MATCH_ISBN13, existing_book)
        sql = str(mock_session.execute.call_args[0][0].compile())
        assert "books.isbn = " in sql
        assert "books.isbn13 = " in sql
        assert " OR " in sql

    @pytest.mark.asyncio
    async def test_hyphenated_isbn_is_normalized(self, mock_session):
        mock_session.execute.return_value = make_scalar_result(None)
        await duplicate_service.find_by_isbn(mock_session, 10, "978-0-441-01359-3")

        params = mock_session.execute.call_args[0][0].compile().params
        assert "9780441013593" in params.values()
        assert "978-0-441-01359-3" not in params.values()

    @pytest.mark.asyncio
    async def test_separator_only_isbn_skips_lookup(self, mock_session):
        assert await duplicate_service.find_by_isbn(mock_session, 10, " - ") is None
        mock_session.execute.assert_not_called()
