import logging
import typing
import sqlalchemy.exc
import sqlalchemy.ext.asyncio
import bookbuddy.clock
import bookbuddy.config
import bookbuddy.errors
import bookbuddy.goodreads.csv_parser
import bookbuddy.goodreads.mapper
import bookbuddy.goodreads.schemas
import bookbuddy.goodreads.validation
import bookbuddy.models.book
import bookbuddy.services.duplicate_service

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2


def _validate_request(user_id: int, csv_content: str) -> None:
    if not user_id:
        raise bookbuddy.errors.ValidationError("User ID is required")

    if not csv_content or not csv_content.strip():
        raise bookbuddy.errors.ImportFileError("CSV content cannot be empty")

    lines = [line for line in csv_content.strip().splitlines() if line.strip()]
    if len(lines) < 2:
        raise bookbuddy.errors.ImportFileError(
            "CSV file must contain a header row and at least one data row"
        )

    max_bytes = bookbuddy.config.settings.import_max_bytes
    if len(csv_content.encode("utf-8")) > max_bytes:
        raise bookbuddy.errors.ImportFileError(
            f"CSV file is too large. Maximum size is {max_bytes // (1024 * 1024)}MB"
        )


def _row_error(
    row_number: int,
    raw_row: typing.Dict[str, str],
    reason: str
) -> bookbuddy.goodreads.schemas.ImportRowError:
    return bookbuddy.goodreads.schemas.ImportRowError(
        row=row_number,
        book={
            "book_id": (raw_row.get("Book Id") or "").strip(),
            "title": (raw_row.get("Title") or "").strip(),
            "author": (raw_row.get("Author") or "").strip(),
        },
        reason=f"Row {row_number}: {reason}"
    )


def build_message(imported: int, skipped: int, failed: int) -> str:
    if imported == 0 and skipped == 0 and failed == 0:
        return "No books found in the CSV file. Please ensure your Goodreads export contains book data."

    if imported == 0 and skipped > 0 and failed == 0:
        return "All books from the CSV were already in your library (duplicates)."

    if imported == 0 and skipped == 0 and failed > 0:
        return (
            "Import failed. No books were imported due to validation errors. "
            "Please review the error details and fix your CSV file."
        )

    parts = []
    if imported > 0:
        parts.append(f"Successfully imported {imported} book{'s' if imported != 1 else ''}.")
    if skipped > 0:
        parts.append(f"Skipped {skipped} duplicate{'s' if skipped != 1 else ''}.")
    if failed > 0:
        parts.append(f"{failed} book{'s' if failed != 1 else ''} failed to import (see error details).")
    return " ".join(parts)


async def import_goodreads(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    csv_content: str,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.goodreads.schemas.ImportResult:
    _validate_request(user_id, csv_content)

    headers, rows = bookbuddy.goodreads.csv_parser.parse_csv(csv_content)

    header_check = bookbuddy.goodreads.validation.validate_csv_headers(headers)
    if not header_check.is_valid:
        raise bookbuddy.errors.ImportFileError(
            f"Invalid Goodreads CSV format. Missing required columns: {', '.join(header_check.value)}. "
            "Please ensure you're using a valid Goodreads library export CSV file."
        )

    now = clock.now()
    result = bookbuddy.goodreads.schemas.ImportResult()
    logger.info(f"Importing {len(rows)} Goodreads rows for user {user_id}")

    for index, raw_row in enumerate(rows):
        row_number = index + FIRST_DATA_ROW

        try:
            row = bookbuddy.goodreads.schemas.GoodreadsRow.model_validate(raw_row)
            goodreads_book = bookbuddy.goodreads.mapper.transform_row(row, now)
            values = bookbuddy.goodreads.mapper.map_to_book(goodreads_book, user_id)
        except bookbuddy.errors.RowValidationError as e:
            result.errors.append(_row_error(row_number, raw_row, e.message))
            continue

        duplicate = await bookbuddy.services.duplicate_service.is_duplicate(
            session,
            user_id,
            title=values["title"],
            author=values["author"],
            isbn=values["isbn"],
            isbn13=values["isbn13"],
            external_id=values["external_id"]
        )
        if duplicate:
            result.skipped += 1
            continue

        session.add(bookbuddy.models.book.Book(**values))
        try:
            await session.commit()
        except sqlalchemy.exc.SQLAlchemyError as e:
            await session.rollback()
            logger.warning(f"Failed to save imported row {row_number} for user {user_id}: {e}")
            result.errors.append(_row_error(row_number, raw_row, "Failed to save book to the library"))
            continue

        result.imported += 1

    failed = len(result.errors)
    result.success = result.imported > 0 or (result.skipped > 0 and failed == 0)
    result.message = build_message(result.imported, result.skipped, failed)

    logger.info(
        f"Goodreads import for user {user_id} finished: "
        f"{result.imported} imported, {result.skipped} skipped, {failed} failed"
    )
    return result
