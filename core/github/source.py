"""
Pull request source backed by the GitHub GraphQL API
"""

from typing import Any, Dict, Optional
from datetime import datetime

from core.metrics.types import PullRequest, SOURCE_GITHUB
from core.sources.base import BaseSource, Page
from .client import GitHubClient

PULL_REQUESTS_QUERY = """
query($owner: String!, $repo: String!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    pullRequests(first: 100, after: $cursor, orderBy: {field: CREATED_AT, direction: DESC}) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        number
        title
        state
        author {
          login
        }
        createdAt
        updatedAt
        closedAt
        mergedAt
        commits {
          totalCount
        }
        additions
        deletions
        changedFiles
        baseRefName
        headRefName
      }
    }
  }
}
"""

_STATES = {"open": "open", "closed": "closed", "merged": "merged"}


def parse_github_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp such as ``2024-05-01T10:00:00Z``."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def map_pull_request(node: Dict[str, Any]) -> PullRequest:
    """Map a GraphQL pull request node into a PullRequest record"""
    author = node.get("author") or {}
    return PullRequest(
        number=node["number"],
        title=node.get("title", ""),
        # Unknown states are treated as closed
        state=_STATES.get((node.get("state") or "").lower(), "closed"),
        author=author.get("login") or "unknown",
        created_at=parse_github_datetime(node["createdAt"]),
        updated_at=parse_github_datetime(node.get("updatedAt")),
        closed_at=parse_github_datetime(node.get("closedAt")),
        merged_at=parse_github_datetime(node.get("mergedAt")),
        commits=(node.get("commits") or {}).get("totalCount", 0),
        additions=node.get("additions") or 0,
        deletions=node.get("deletions") or 0,
        changed_files=node.get("changedFiles") or 0,
        base_ref_name=node.get("baseRefName") or "",
        head_ref_name=node.get("headRefName") or "",
    )


class GitHubSource(BaseSource):
    """Fetch pull requests for one repository, newest first"""

    name = SOURCE_GITHUB
    record_label = "pull requests"
    newest_first = True

    def __init__(self, client: GitHubClient, owner: str, repo: str, **kwargs):
        super().__init__(**kwargs)
        self.client = client
        self.owner = owner
        self.repo = repo

    @property
    def cache_key_prefix(self) -> str:
        return f"github-prs:{self.owner}/{self.repo}"

    def log_context(self) -> Dict[str, Any]:
        return {"owner": self.owner, "repo": self.repo}

    async def fetch_page(self, cursor: Optional[str]) -> Page:
        data = await self.client.graphql(
            PULL_REQUESTS_QUERY,
            {"owner": self.owner, "repo": self.repo, "cursor": cursor},
        )

        repository = data.get("repository")
        if repository is None:
            raise ValueError(f"Repository {self.owner}/{self.repo} not found")

        connection = repository["pullRequests"]
        page_info = connection["pageInfo"]
        return Page(
            records=[map_pull_request(node) for node in connection["nodes"]],
            cursor=page_info.get("endCursor"),
            has_more=bool(page_info.get("hasNextPage")),
        )
