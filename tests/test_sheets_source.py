from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.errors import SourceFetchError
from core.sheets import GoogleSheetsSource
from core.sheets.source import parse_row
from conftest import NOW

HEADER = ["Timestamp", "Category", "Metric", "Value", "Unit", "Info"]


def test_parse_row_full():
    row = parse_row(["2024-05-30", "Team", "Morale", "4.5", "score", "weekly survey"], 2)

    assert row.category == "Team"
    assert row.value == 4.5
    assert row.unit == "score"
    assert row.additional_info == "weekly survey"
    assert row.timestamp.tzinfo is not None


def test_parse_row_locale_formatted_timestamp():
    """Test that dates rendered by the Sheets API as M/D/YYYY are accepted."""
    row = parse_row(["1/15/2024 10:00:00", "Efficiency", "Velocity", "8"], 2)

    assert row is not None
    assert row.timestamp == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
    assert row.value == 8


def test_parse_row_keeps_explicit_offset():
    row = parse_row(["2024-01-15T10:00:00+02:00", "Efficiency", "Velocity", "8"], 2)
    assert row.timestamp == datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("cells", [
    ["2024-05-30", "Team", "Morale"],
    ["2024-05-30", "", "Morale", "4"],
    ["not a date", "Team", "Morale", "4"],
    ["2024-05-30", "Team", "Morale", "high"],
    ["2024-05-30", "Team", "Morale", "inf"],
])
def test_parse_row_skips_unusable_rows(cells):
    """Test that short, incomplete or non-numeric rows are skipped."""
    assert parse_row(cells, 5) is None


class TestGoogleSheetsSource:
    """Tests for paging rows from a spreadsheet."""

    @pytest.mark.asyncio
    async def test_skips_header_and_pages_by_block(self):
        client = MagicMock()
        # a full first block asks for the next one
        client.get_values = AsyncMock(side_effect=[
            [HEADER, ["2024-05-30", "Team", "Morale", "4"]],
            [["2024-05-29", "Team", "Velocity", "21"]],
        ])
        source = GoogleSheetsSource(client, "sheet-1", page_size=2, now=lambda: NOW)

        result = await source.fetch(30)

        ranges = [call.args[1] for call in client.get_values.await_args_list]
        assert ranges == ["A1:F2", "A3:F4"]
        assert [row.name for row in result.records] == ["Morale", "Velocity"]
        assert [row.row_number for row in result.records] == [2, 3]

    @pytest.mark.asyncio
    async def test_rows_outside_window_are_filtered(self):
        client = MagicMock()
        client.get_values = AsyncMock(return_value=[
            HEADER,
            ["2024-05-30", "Team", "Morale", "4"],
            ["2023-01-01", "Team", "Morale", "2"],
        ])
        source = GoogleSheetsSource(client, "sheet-1", now=lambda: NOW)

        result = await source.fetch(7)

        assert len(result.records) == 1
        assert result.fetched_count == 2

    @pytest.mark.asyncio
    async def test_api_failure(self):
        client = MagicMock()
        client.get_values = AsyncMock(side_effect=RuntimeError("API Error"))
        source = GoogleSheetsSource(client, "sheet-1", now=lambda: NOW)

        with pytest.raises(SourceFetchError) as exc_info:
            await source.fetch(7)
        assert exc_info.value.source == "Google Sheets"
        assert exc_info.value.message == "API Error"

    def test_invalid_column_range(self):
        with pytest.raises(ValueError):
            GoogleSheetsSource(MagicMock(), "sheet-1", columns="1:2")

    def test_cache_key_prefix(self):
        assert GoogleSheetsSource(MagicMock(), "sheet-1").cache_key_prefix == "googlesheets:sheet-1!A:F"

    def test_cache_key_prefix_includes_column_range(self):
        """Test that sources reading different columns of one sheet do not share cache entries."""
        narrow = GoogleSheetsSource(MagicMock(), "sheet-1", columns="A:D")
        wide = GoogleSheetsSource(MagicMock(), "sheet-1", columns="A:F")
        assert narrow.cache_key_prefix != wide.cache_key_prefix
