"""Turn an uploaded roster spreadsheet into a list of student ids.

Accepts .xlsx (first worksheet) and .csv.  The first row is the header;
the id column is found by a case-insensitive match on the requested
column name, then "studentid", then "student id".
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from lms.core.errors import ValidationError
from lms.services.chunking import unique

logger = logging.getLogger(__name__)

DEFAULT_COLUMN = "studentid"
_FALLBACK_COLUMNS = ("studentid", "student id")


def _rows_from_xlsx(content: bytes) -> list[list[object]]:
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ValidationError(f"could not read spreadsheet: {e}") from None
    try:
        ws = wb.worksheets[0]
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def _rows_from_csv(content: bytes) -> list[list[object]]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded") from None
    return [list(row) for row in csv.reader(io.StringIO(text))]


def _find_column(header: list[object], preferred: str) -> int | None:
    names = [str(h).strip().lower() if h is not None else "" for h in header]
    for wanted in (preferred, *_FALLBACK_COLUMNS):
        if wanted in names:
            return names.index(wanted)
    return None


def parse_student_ids(
    filename: str, content: bytes, column: str = DEFAULT_COLUMN
) -> list[str]:
    """Return the distinct, trimmed, non-empty ids in upload order.

    Raises ValidationError for an unsupported or unreadable file, a
    missing id column, or a file with no ids.
    """
    name = (filename or "").lower()
    if name.endswith((".xlsx", ".xlsm")):
        rows = _rows_from_xlsx(content)
    elif name.endswith(".csv"):
        rows = _rows_from_csv(content)
    else:
        raise ValidationError("upload must be an .xlsx or .csv file")

    if not rows:
        raise ValidationError("no rows found in file")

    preferred = (column or DEFAULT_COLUMN).strip().lower()
    index = _find_column(rows[0], preferred)
    if index is None:
        raise ValidationError(
            f"could not find a student id column; add a header named {column!r}"
        )

    ids = unique(
        str(row[index]).strip() if row[index] is not None else ""
        for row in rows[1:]
        if index < len(row)
    )
    if not ids:
        raise ValidationError("no student ids found in file")
    logger.debug("Parsed %d student ids from %s", len(ids), filename)
    return ids
