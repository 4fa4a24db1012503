"""
GitHub GraphQL API client
"""

import asyncio
import aiohttp
from typing import Dict, Any, Optional
from datetime import datetime

from utils.logger import get_logger

logger = get_logger(__name__)


class GitHubAPIError(Exception):
    """GitHub rejected a request or returned GraphQL errors"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class GitHubClient:
    """GitHub GraphQL client with rate limit handling"""

    def __init__(self, config: Dict[str, Any]):
        """Initialize GitHub client with configuration"""
        self.config = config
        self.token = config.get('github_token', '')
        self.api_url = config.get('api_url', 'https://api.github.com/graphql')
        self.timeout = config.get('timeout', 30)
        self.max_rate_limit_wait = config.get('max_rate_limit_wait', 120)

        if not self.token:
            logger.warning("GitHub token not provided. GraphQL requests will be rejected.")

        self._session = None

    async def __aenter__(self):
        """Async context manager entry"""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def _ensure_session(self):
        """Ensure aiohttp session is created"""
        if self._session is None or self._session.closed:
            headers = {
                'Accept': 'application/vnd.github.v4+json',
                'User-Agent': 'TeamHealth-Dashboard/1.0'
            }

            if self.token:
                headers['Authorization'] = f'bearer {self.token}'

            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=timeout
            )

    async def close(self):
        """Close aiohttp session"""
        if self._session and not self._session.closed:
            await self._session.close()

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None,
                      token: Optional[str] = None) -> Dict[str, Any]:
        """
        Execute a GraphQL query

        Args:
            query: GraphQL document
            variables: Query variables
            token: Token to use instead of the configured one for this request

        Returns:
            The ``data`` member of the GraphQL response
        """
        await self._ensure_session()

        payload = {"query": query, "variables": variables or {}}
        headers = {"Authorization": f"bearer {token}"} if token else None

        while True:
            async with self._session.post(self.api_url, json=payload, headers=headers) as response:
                # Handle rate limiting
                if response.status == 403:
                    rate_limit_remaining = response.headers.get('X-RateLimit-Remaining', '')
                    if rate_limit_remaining == '0':
                        reset_time = int(response.headers.get('X-RateLimit-Reset', 0))
                        current_time = int(datetime.now().timestamp())
                        sleep_time = max(reset_time - current_time, 1)
                        if sleep_time > self.max_rate_limit_wait:
                            raise GitHubAPIError(
                                f"GitHub rate limit exceeded, resets in {sleep_time} seconds", 403
                            )
                        logger.info(f"Rate limit reached. Waiting {sleep_time} seconds...")
                        await asyncio.sleep(sleep_time)
                        continue

                if response.status >= 400:
                    body = await response.text()
                    raise GitHubAPIError(
                        f"GitHub API returned {response.status}: {body[:200]}", response.status
                    )

                data = await response.json()

            errors = data.get('errors')
            if errors:
                messages = "; ".join(error.get('message', 'unknown error') for error in errors)
                raise GitHubAPIError(f"GraphQL errors: {messages}")

            return data.get('data') or {}
