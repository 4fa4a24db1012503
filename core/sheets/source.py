"""
Metric rows source backed by a Google Sheets spreadsheet.

The sheet layout is one header row followed by rows of
``timestamp, category, name, value, unit, additional info``.
"""

import math
import re
from typing import Any, Dict, List, Optional, Sequence
from datetime import datetime, timezone

from dateutil.parser import parse as parse_datetime

from core.metrics.types import SheetRow, SOURCE_GOOGLE_SHEETS
from core.sources.base import BaseSource, Page
from utils.logger import get_logger
from .client import GoogleSheetsClient

logger = get_logger(__name__)

_COLUMN_RANGE = re.compile(r"^([A-Z]+)\d*:([A-Z]+)\d*$")


def parse_sheet_timestamp(value: str) -> Optional[datetime]:
    """Parse a sheet date such as ``1/15/2024 10:00:00`` or ``2024-01-15T10:00:00Z``.

    Naive values are taken as UTC.
    """
    text = value.strip()
    if not text:
        return None
    try:
        parsed = parse_datetime(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_row(row: Sequence[Any], row_number: int) -> Optional[SheetRow]:
    """Parse one sheet row, or return None when it cannot be used"""
    if len(row) < 4:
        logger.warning(f"Skipping row {row_number} with insufficient data: {list(row)}")
        return None

    timestamp_raw, category, name, value_raw = (str(cell).strip() for cell in row[:4])
    unit = str(row[4]).strip() if len(row) > 4 else ""
    additional_info = str(row[5]).strip() if len(row) > 5 else ""

    if not timestamp_raw or not category or not name or not value_raw:
        logger.warning(f"Skipping row {row_number} with missing essential data: {list(row)}")
        return None

    timestamp = parse_sheet_timestamp(timestamp_raw)
    if timestamp is None:
        logger.warning(f"Skipping row {row_number} with invalid timestamp: {timestamp_raw!r}")
        return None

    try:
        value = float(value_raw.replace(",", ""))
    except ValueError:
        value = math.nan
    if not math.isfinite(value):
        logger.warning(f"Skipping row {row_number} with non-numeric value: {value_raw!r}")
        return None

    return SheetRow(
        row_number=row_number,
        timestamp=timestamp,
        category=category,
        name=name,
        value=value,
        unit=unit,
        additional_info=additional_info,
    )


class GoogleSheetsSource(BaseSource):
    """Fetch metric rows block by block.

    The cursor is the 1-based sheet row where the next block starts.
    """

    name = SOURCE_GOOGLE_SHEETS
    record_label = "rows"

    def __init__(self, client: GoogleSheetsClient, spreadsheet_id: str,
                 columns: str = "A:F", page_size: int = 500, **kwargs):
        super().__init__(**kwargs)
        match = _COLUMN_RANGE.match(columns.upper())
        if not match:
            raise ValueError(f"Invalid column range: {columns}")

        self.client = client
        self.spreadsheet_id = spreadsheet_id
        self.first_column, self.last_column = match.groups()
        self.page_size = max(1, page_size)

    @property
    def cache_key_prefix(self) -> str:
        return f"googlesheets:{self.spreadsheet_id}!{self.first_column}:{self.last_column}"

    def log_context(self) -> Dict[str, Any]:
        return {"spreadsheet_id": self.spreadsheet_id}

    async def fetch_page(self, cursor: Optional[int]) -> Page:
        start = cursor or 1
        end = start + self.page_size - 1
        values = await self.client.get_values(
            self.spreadsheet_id, f"{self.first_column}{start}:{self.last_column}{end}"
        )

        records: List[SheetRow] = []
        for offset, row in enumerate(values):
            row_number = start + offset
            if row_number == 1:
                # header
                continue
            if not row:
                continue
            parsed = parse_row(row, row_number)
            if parsed is not None:
                records.append(parsed)

        has_more = len(values) >= self.page_size
        return Page(records=records, cursor=end + 1, has_more=has_more)
