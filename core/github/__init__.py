"""
GitHub integration for pull request metrics
"""

from .client import GitHubClient, GitHubAPIError
from .metadata import RepositoryMetadata, fetch_repository_metadata
from .source import GitHubSource

__all__ = [
    'GitHubClient',
    'GitHubAPIError',
    'GitHubSource',
    'RepositoryMetadata',
    'fetch_repository_metadata'
]
