"""
Google Sheets v4 REST client
"""

import aiohttp
from typing import Dict, Any, List
from urllib.parse import quote

from utils.logger import get_logger

logger = get_logger(__name__)


class GoogleSheetsAPIError(Exception):
    """Google Sheets rejected a request"""

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


class GoogleSheetsClient:
    """Read cell values from a spreadsheet"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.api_key = config.get('api_key', '')
        self.access_token = config.get('access_token', '')
        self.api_url = config.get('api_url', 'https://sheets.googleapis.com/v4/spreadsheets')
        self.timeout = config.get('timeout', 30)

        if not self.api_key and not self.access_token:
            logger.warning("Google Sheets credentials not provided. Only public sheets can be read.")

        self._session = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            headers = {'Accept': 'application/json'}
            if self.access_token:
                headers['Authorization'] = f'Bearer {self.access_token}'

            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(headers=headers, timeout=timeout)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_values(self, spreadsheet_id: str, cell_range: str) -> List[List[str]]:
        """
        Read a range of cells

        Args:
            spreadsheet_id: Spreadsheet identifier
            cell_range: A1 notation range, e.g. ``A1:F500``

        Returns:
            Rows of formatted cell values; trailing empty rows are omitted by the API
        """
        await self._ensure_session()

        url = f"{self.api_url.rstrip('/')}/{quote(spreadsheet_id, safe='')}/values/{quote(cell_range, safe='')}"
        params = {'majorDimension': 'ROWS'}
        if self.api_key:
            params['key'] = self.api_key

        async with self._session.get(url, params=params) as response:
            if response.status >= 400:
                body = await response.text()
                raise GoogleSheetsAPIError(
                    f"Google Sheets API returned {response.status}: {body[:200]}", response.status
                )
            data = await response.json()

        return data.get('values', [])
