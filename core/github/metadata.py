"""
Repository metadata lookup used to validate tracked repositories
"""

from dataclasses import dataclass, field
from typing import List, Optional

from utils.logger import get_logger
from .client import GitHubClient

logger = get_logger(__name__)

REPOSITORY_METADATA_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    isPrivate
    description
    defaultBranchRef {
      name
    }
    repositoryTopics(first: 20) {
      nodes {
        topic {
          name
        }
      }
    }
    primaryLanguage {
      name
    }
  }
}
"""


@dataclass
class RepositoryMetadata:
    """Descriptive fields of a GitHub repository"""
    is_private: bool
    description: Optional[str] = None
    default_branch: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    language: Optional[str] = None


async def fetch_repository_metadata(client: GitHubClient, owner: str, name: str,
                                    token: Optional[str] = None) -> Optional[RepositoryMetadata]:
    """Return the repository's metadata, or None when it cannot be read."""
    data = await client.graphql(REPOSITORY_METADATA_QUERY, {"owner": owner, "name": name}, token=token)

    repository = data.get("repository")
    if repository is None:
        logger.warning(f"Repository {owner}/{name} not found or not accessible")
        return None

    topics = [
        node["topic"]["name"]
        for node in (repository.get("repositoryTopics") or {}).get("nodes", [])
        if node and node.get("topic")
    ]
    return RepositoryMetadata(
        is_private=bool(repository.get("isPrivate")),
        description=repository.get("description"),
        default_branch=(repository.get("defaultBranchRef") or {}).get("name"),
        topics=topics,
        language=(repository.get("primaryLanguage") or {}).get("name"),
    )
