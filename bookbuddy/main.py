import argparse
import asyncio
import logging
import sys
import typing

import bookbuddy.clock
import bookbuddy.config
import bookbuddy.database
import bookbuddy.errors
import bookbuddy.services.activity_service
import bookbuddy.services.goal_service
import bookbuddy.services.import_service
import bookbuddy.services.session_service

logging.basicConfig(
    level=getattr(logging, bookbuddy.config.settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookbuddy",
        description="BookBuddy reading tracker maintenance commands"
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")

    subparsers.add_parser("init-db", help="Create the bookbuddy schema and tables")

    import_parser = subparsers.add_parser("import-goodreads", help="Import a Goodreads library export for a user")
    import_parser.add_argument("user_id", type=int, help="Owner of the imported books")
    import_parser.add_argument("csv_path", help="Path to the Goodreads CSV export")

    subparsers.add_parser("expire-goals", help="Mark active goals past their deadline as expired")

    streak_parser = subparsers.add_parser("streak", help="Print the user's reading streak")
    streak_parser.add_argument("user_id", type=int)

    start_parser = subparsers.add_parser("start-session", help="Start a reading session")
    start_parser.add_argument("user_id", type=int)
    start_parser.add_argument("--book-id", type=int, help="Book being read")

    end_parser = subparsers.add_parser("end-session", help="End a reading session")
    end_parser.add_argument("user_id", type=int)
    end_parser.add_argument("session_id", type=int)
    end_parser.add_argument("--pages", type=int, help="Pages read during the session")
    end_parser.add_argument("--notes", help="Notes about the session")

    sessions_parser = subparsers.add_parser("sessions", help="Print the user's reading sessions and totals")
    sessions_parser.add_argument("user_id", type=int)
    sessions_parser.add_argument("--limit", type=int, default=20)

    return parser


async def import_goodreads_file(user_id: int, csv_path: str) -> bool:
    with open(csv_path, encoding="utf-8-sig") as f:
        content = f.read()

    async with bookbuddy.database.async_session_maker() as session:
        result = await bookbuddy.services.import_service.import_goodreads(
            session, user_id, content, clock=bookbuddy.clock.system_clock
        )

    logger.info(result.message)
    for error in result.errors:
        logger.warning(error.reason)
    return result.success


async def expire_goals() -> None:
    async with bookbuddy.database.async_session_maker() as session:
        await bookbuddy.services.goal_service.expire_overdue_goals(session)


async def print_streak(user_id: int) -> None:
    async with bookbuddy.database.async_session_maker() as session:
        stats = await bookbuddy.services.activity_service.get_user_streak(session, user_id)
    print(stats.model_dump_json(indent=2))


async def start_session(user_id: int, book_id: typing.Optional[int]) -> None:
    async with bookbuddy.database.async_session_maker() as session:
        row = await bookbuddy.services.session_service.start_session(session, user_id, book_id)
    print(f"Started session {row.session_id} at {row.started_at.isoformat()}")


async def end_session(
    user_id: int,
    session_id: int,
    pages: typing.Optional[int],
    notes: typing.Optional[str]
) -> None:
    async with bookbuddy.database.async_session_maker() as session:
        row = await bookbuddy.services.session_service.end_session(
            session, user_id, session_id, pages_read=pages, notes=notes
        )
    print(f"Ended session {row.session_id} after {row.duration_minutes} minutes")


async def print_sessions(user_id: int, limit: int) -> None:
    async with bookbuddy.database.async_session_maker() as session:
        summary = await bookbuddy.services.session_service.get_user_sessions(session, user_id, limit=limit)

    for row in summary.sessions:
        state = "open" if row.is_active else f"{row.duration_minutes} min"
        print(f"{row.session_id}\t{row.started_at.isoformat()}\t{state}")
    print(f"today: {summary.today_minutes} min, this week: {summary.week_minutes} min")
    print(summary.statistics.model_dump_json(indent=2))


async def run(args: argparse.Namespace) -> int:
    try:
        await bookbuddy.database.init_db()

        if args.command == "init-db":
            await bookbuddy.database.create_schema()
        elif args.command == "import-goodreads":
            if not await import_goodreads_file(args.user_id, args.csv_path):
                return 1
        elif args.command == "expire-goals":
            await expire_goals()
        elif args.command == "streak":
            await print_streak(args.user_id)
        elif args.command == "start-session":
            await start_session(args.user_id, args.book_id)
        elif args.command == "end-session":
            await end_session(args.user_id, args.session_id, args.pages, args.notes)
        elif args.command == "sessions":
            await print_sessions(args.user_id, args.limit)
    except bookbuddy.errors.DomainError as e:
        logger.error(f"{e.code}: {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {str(e)}", exc_info=True)
        return 1
    finally:
        await bookbuddy.database.close_db()

    return 0


def main(argv: typing.Optional[typing.List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
