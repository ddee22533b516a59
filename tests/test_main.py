import pytest
import bookbuddy.main


class TestBuildParser:
    def test_import_goodreads(self):
        args = bookbuddy.main.build_parser().parse_args(["import-goodreads", "10", "library.csv"])
        assert args.command == "import-goodreads"
        assert args.user_id == 10
        assert args.csv_path == "library.csv"

    def test_end_session_options(self):
        args = bookbuddy.main.build_parser().parse_args(
            ["end-session", "10", "7", "--pages", "25", "--notes", "Finished part one"]
        )
        assert (args.user_id, args.session_id, args.pages, args.notes) == (10, 7, 25, "Finished part one")

    def test_non_integer_user_id_is_a_usage_error(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            bookbuddy.main.build_parser().parse_args(["streak", "alice"])
        assert exc_info.value.code == 2
        assert "invalid int value: 'alice'" in capsys.readouterr().err

    def test_command_required(self):
        with pytest.raises(SystemExit) as exc_info:
            bookbuddy.main.build_parser().parse_args([])
        assert exc_info.value.code == 2
