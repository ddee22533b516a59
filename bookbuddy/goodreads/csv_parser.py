import csv
import io
import logging
import typing
import bookbuddy.errors

logger = logging.getLogger(__name__)

_BOM = "\ufeff"


def parse_csv(content: str) -> typing.Tuple[typing.List[str], typing.List[typing.Dict[str, str]]]:
    """Split CSV text into trimmed headers and header-keyed rows.

    Blank lines are skipped. Structural problems raise ImportFileError since
    a malformed file cannot be imported partially.
    """
    if not content or not content.strip():
        raise bookbuddy.errors.ImportFileError("CSV file is empty")

    if content.startswith(_BOM):
        content = content[len(_BOM):]

    reader = csv.reader(io.StringIO(content, newline=""), strict=True)
    headers: typing.List[str] = []
    rows: typing.List[typing.Dict[str, str]] = []

    try:
        for values in reader:
            if not values or all(not value.strip() for value in values):
                continue

            if not headers:
                headers = [value.strip() for value in values]
                if not any(headers):
                    raise bookbuddy.errors.ImportFileError("CSV file has no valid headers")
                continue

            if len(values) > len(headers):
                raise bookbuddy.errors.ImportFileError(
                    f"Failed to parse CSV: Row {reader.line_num}: Too many fields: "
                    f"expected {len(headers)} fields but parsed {len(values)}"
                )
            if len(values) < len(headers):
                raise bookbuddy.errors.ImportFileError(
                    f"Failed to parse CSV: Row {reader.line_num}: Too few fields: "
                    f"expected {len(headers)} fields but parsed {len(values)}"
                )

            rows.append(dict(zip(headers, values)))
    except csv.Error as e:
        raise bookbuddy.errors.ImportFileError(f"Failed to parse CSV: {e}") from e

    if not headers:
        raise bookbuddy.errors.ImportFileError("CSV file has no valid headers")

    if not rows:
        raise bookbuddy.errors.ImportFileError("CSV file contains no data rows (only headers or empty file)")

    logger.debug(f"Parsed CSV with {len(headers)} columns and {len(rows)} rows")
    return headers, rows
