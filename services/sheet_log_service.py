"""
Header reconciliation and row append for the submission log sheet.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Sequence

from services.sheets_service import Sheet

logger = logging.getLogger("backend.sheets")

DATE_COLUMN_TITLE = "Date"
# Upper bound for clearing a stale, wider header
MAX_HEADER_CLEAR_COLUMNS = 30

# English month names, independent of the process locale
_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def capitalize_first(value: str) -> str:
    s = str(value)
    return s[:1].upper() + s[1:]


def format_timestamp(moment: datetime) -> str:
    """Render e.g. ``October 18, 2026 3:04:05 PM``."""
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return (
        f"{_MONTHS[moment.month - 1]} {moment.day}, {moment.year} "
        f"{hour}:{moment.minute:02d}:{moment.second:02d} {suffix}"
    )


def header_matches(first_row: Sequence[Any], fields: Sequence[str]) -> bool:
    """
    Loose compatibility check: only the first cell and the cell before the
    trailing Date column are compared (case-insensitive). Extra or differing
    middle columns are accepted.
    """
    if len(first_row) < 2 or not fields:
        return False
    first = str(first_row[0]).lower()
    last = str(first_row[len(first_row) - 2]).lower()
    return first == fields[0].lower() and last == fields[-1].lower()


def build_header(fields: Sequence[str]) -> List[str]:
    return [capitalize_first(f) for f in fields] + [DATE_COLUMN_TITLE]


def reconcile_header(sheet: Sheet, fields: Sequence[str]) -> bool:
    """
    Make the header row describe ``fields`` followed by Date.

    Returns True when the header was (re)written, False when it already matched.
    Not atomic across concurrent requests.
    """
    first_row = sheet.read_header()
    if first_row:
        if header_matches(first_row, fields):
            return False
        if len(first_row) > len(fields) + 1:
            sheet.clear_header(MAX_HEADER_CLEAR_COLUMNS)
    header = build_header(fields)
    sheet.write_header(header)
    logger.info("Header rewritten sheet=%s columns=%s", sheet.title, header)
    return True


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


def build_row(fields: Sequence[str], payload: Dict[str, Any], timestamp: datetime) -> List[Any]:
    return [_cell_value(payload.get(f)) for f in fields] + [format_timestamp(timestamp)]


def append_submission_row(sheet: Sheet, fields: Sequence[str], payload: Dict[str, Any], timestamp: datetime) -> List[Any]:
    """Insert the submission directly under the header (newest first) in a single write."""
    row = build_row(fields, payload, timestamp)
    sheet.insert_row_after_header(row)
    return row
