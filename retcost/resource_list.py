"""
Resource list processing: load the retirement list, parse it into
ResourceRecords, drop what is out of the date window and sort the rest.
"""
import csv
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .constants import (
    COLUMN_ACTION,
    COLUMN_RESOURCE_NAME,
    COLUMN_RETIREMENT_DATE,
    COLUMN_RETIRING_FEATURE,
    COLUMN_TYPE,
    DEFAULT_DELIMITER,
    REQUIRED_COLUMNS,
)
from .errors import (
    InputFileEmpty,
    InputFileMissing,
    InvalidEndDate,
    InvalidInputFile,
    InvalidRetirementDate,
    NoMatchingResources,
)
from .models import ResourceRecord, parse_resource_id

logger = logging.getLogger(__name__)


def load_resource_rows(path: str, delimiter: str = DEFAULT_DELIMITER) -> List[Dict[str, str]]:
    """
    Read the retirement list into a list of row dicts.

    Raises:
        InputFileMissing: If the file does not exist
        InputFileEmpty: If the file has no data rows
        InvalidInputFile: If a required column is missing from the header
    """
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise InputFileMissing(path)

    # utf-8-sig: portal exports start with a BOM
    with open(file_path, newline='', encoding='utf-8-sig') as f:
        reader = csv.DictReader(f, delimiter=delimiter)
        header = [h.strip() for h in (reader.fieldnames or [])]
        if not header:
            raise InputFileEmpty(path)

        missing = [col for col in REQUIRED_COLUMNS if col not in header]
        if missing:
            raise InvalidInputFile(
                f"Input file {path} is missing column(s): {', '.join(missing)} "
                f"(delimiter '{delimiter}')"
            )

        rows = []
        for raw in reader:
            row = {
                (k or '').strip(): (v or '').strip()
                for k, v in raw.items()
                if isinstance(v, str) or v is None
            }
            if not any(row.values()):
                continue
            rows.append(row)

    if not rows:
        raise InputFileEmpty(path)

    logger.info(f"Loaded {len(rows)} resource rows from {path}")
    return rows


def parse_retirement_date(value: str, date_format: Optional[str] = None, line: Optional[int] = None) -> date:
    """Parse a retirement date cell (ISO-8601 unless ``date_format`` is given)."""
    text = (value or '').strip()
    try:
        if date_format:
            return datetime.strptime(text, date_format).date()
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        raise InvalidRetirementDate(text, line) from None


def parse_end_date(value: Optional[str]) -> Optional[date]:
    """Parse the optional YYYY-MM-DD cutoff."""
    if value is None or value == '':
        return None
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        raise InvalidEndDate(value) from None


def parse_resource_rows(rows: Iterable[Dict[str, str]], date_format: Optional[str] = None) -> List[ResourceRecord]:
    """
    Convert input rows into ResourceRecords.

    Any malformed date or resource id aborts the whole run; there is no
    partial recovery.
    """
    records = []
    for index, row in enumerate(rows):
        # +2: header is line 1, rows start at line 2
        retirement_date = parse_retirement_date(
            row.get(COLUMN_RETIREMENT_DATE, ''), date_format, line=index + 2
        )
        resource_id = row.get(COLUMN_RESOURCE_NAME, '')
        parse_resource_id(resource_id)

        records.append(ResourceRecord(
            resource_id=resource_id,
            resource_type=row.get(COLUMN_TYPE, '').lower(),
            retiring_feature=row.get(COLUMN_RETIRING_FEATURE, ''),
            retirement_date=retirement_date,
            action=row.get(COLUMN_ACTION, ''),
            source_index=index,
        ))
    return records


def filter_and_sort(
    records: List[ResourceRecord],
    now: Optional[datetime] = None,
    end_date: Optional[date] = None,
) -> List[ResourceRecord]:
    """
    Keep records retiring between ``now`` and ``end_date`` (inclusive),
    ordered by (retirement date, retiring feature).

    The sort is stable, so rows with equal keys keep their file order.

    Raises:
        NoMatchingResources: If no record survives the filter
    """
    today = (now or datetime.now(timezone.utc)).date()

    kept = [
        r for r in records
        if r.retirement_date >= today
        and (end_date is None or r.retirement_date <= end_date)
    ]

    dropped = len(records) - len(kept)
    if dropped:
        logger.info(f"Filtered out {dropped} resource(s) outside the retirement window")

    if not kept:
        raise NoMatchingResources(end_date)

    return sorted(kept, key=lambda r: (r.retirement_date, r.retiring_feature))


def load_resources(
    path: str,
    delimiter: str = DEFAULT_DELIMITER,
    now: Optional[datetime] = None,
    end_date: Optional[date] = None,
    date_format: Optional[str] = None,
) -> List[ResourceRecord]:
    """Load, parse, filter and sort the retirement list in one step."""
    rows = load_resource_rows(path, delimiter)
    records = parse_resource_rows(rows, date_format)
    return filter_and_sort(records, now=now, end_date=end_date)
