"""Repository metadata fetched with a single GraphQL query."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import requests

from scorecard.clients import (
    BranchProtectionRule,
    BranchRef,
    Commit,
    InternalError,
    Label,
    PullRequest,
    Release,
    ReleaseAsset,
    Review,
    User,
)

DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"

PULL_REQUESTS_TO_ANALYZE = 30
REVIEWS_TO_ANALYZE = 30
LABELS_TO_ANALYZE = 30
COMMITS_TO_ANALYZE = 30
RELEASES_TO_ANALYZE = 30
RELEASE_ASSETS_TO_ANALYZE = 30

QUERY = """
query($owner: String!, $name: String!, $pullRequestsToAnalyze: Int!,
      $reviewsToAnalyze: Int!, $labelsToAnalyze: Int!, $commitsToAnalyze: Int!,
      $releasesToAnalyze: Int!, $releaseAssetsToAnalyze: Int!) {
  repository(owner: $owner, name: $name) {
    isArchived
    defaultBranchRef {
      name
      branchProtectionRule { requiredApprovingReviewCount }
      target {
        ... on Commit {
          history(first: $commitsToAnalyze) {
            nodes {
              committedDate
              message
              oid
              committer { user { login } }
            }
          }
        }
      }
    }
    pullRequests(last: $pullRequestsToAnalyze, states: MERGED) {
      nodes {
        number
        headRefOid
        mergeCommit { authoredByCommitter }
        mergedAt
        labels(last: $labelsToAnalyze) { nodes { name } }
        latestReviews(last: $reviewsToAnalyze) { nodes { state } }
      }
    }
    releases(first: $releasesToAnalyze, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes {
        tagName
        releaseAssets(last: $releaseAssetsToAnalyze) { nodes { name url } }
      }
    }
  }
}
"""


def _dig(obj: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _nodes(obj: Any, *keys: str) -> list[Any]:
    return _dig(obj, *keys, "nodes") or []


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


class GraphqlHandler:
    """Fetches and holds pull requests, commits, releases and branch data."""

    def __init__(self, session: requests.Session | None = None, url: str = DEFAULT_GRAPHQL_URL) -> None:
        self.session = session if session is not None else requests.Session()
        self.url = url
        self.data: dict[str, Any] = {}
        self._prs: list[PullRequest] = []
        self._commits: list[Commit] = []
        self._releases: list[Release] = []
        self._default_branch_ref = BranchRef()
        self._archived = False

    def setup(self, owner: str, repo: str) -> None:
        """Run the query for ``owner/repo`` and keep its results."""
        variables = {
            "owner": owner,
            "name": repo,
            "pullRequestsToAnalyze": PULL_REQUESTS_TO_ANALYZE,
            "reviewsToAnalyze": REVIEWS_TO_ANALYZE,
            "labelsToAnalyze": LABELS_TO_ANALYZE,
            "commitsToAnalyze": COMMITS_TO_ANALYZE,
            "releasesToAnalyze": RELEASES_TO_ANALYZE,
            "releaseAssetsToAnalyze": RELEASE_ASSETS_TO_ANALYZE,
        }
        try:
            resp = self.session.post(self.url, json={"query": QUERY, "variables": variables})
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as err:
            raise InternalError(f"graphql query: {err}") from err
        if payload.get("errors"):
            messages = "; ".join(str(e.get("message", e)) for e in payload["errors"])
            raise InternalError(f"graphql query: {messages}")

        self.data = payload.get("data") or {}
        self._archived = bool(_dig(self.data, "repository", "isArchived"))
        self._prs = pull_requests_from(self.data)
        self._releases = releases_from(self.data)
        self._default_branch_ref = default_branch_ref_from(self.data)
        self._commits = commits_from(self.data)

    def get_merged_prs(self) -> list[PullRequest]:
        return self._prs

    def get_default_branch(self) -> BranchRef:
        return self._default_branch_ref

    def get_commits(self) -> list[Commit]:
        return self._commits

    def get_releases(self) -> list[Release]:
        return self._releases

    def is_archived(self) -> bool:
        return self._archived


def pull_requests_from(data: dict[str, Any]) -> list[PullRequest]:
    """Build merged pull requests from the query's ``data`` section."""
    return [
        PullRequest(
            number=pr.get("number") or 0,
            head_sha=pr.get("headRefOid") or "",
            merged_at=_parse_datetime(pr.get("mergedAt")),
            merge_commit=Commit(authored_by_committer=bool(_dig(pr, "mergeCommit", "authoredByCommitter"))),
            labels=[Label(name=label.get("name") or "") for label in _nodes(pr, "labels")],
            reviews=[Review(state=review.get("state") or "") for review in _nodes(pr, "latestReviews")],
        )
        for pr in _nodes(data, "repository", "pullRequests")
    ]


def releases_from(data: dict[str, Any]) -> list[Release]:
    """Build releases from the query's ``data`` section."""
    return [
        Release(
            tag_name=release.get("tagName") or "",
            assets=[
                ReleaseAsset(name=asset.get("name") or "", url=asset.get("url") or "")
                for asset in _nodes(release, "releaseAssets")
            ],
        )
        for release in _nodes(data, "repository", "releases")
    ]


def default_branch_ref_from(data: dict[str, Any]) -> BranchRef:
    """Build the default branch from the query's ``data`` section."""
    ref = _dig(data, "repository", "defaultBranchRef") or {}
    count = _dig(ref, "branchProtectionRule", "requiredApprovingReviewCount") or 0
    return BranchRef(
        name=ref.get("name") or "",
        branch_protection_rule=BranchProtectionRule(required_approving_review_count=count),
    )


def commits_from(data: dict[str, Any]) -> list[Commit]:
    """Build default-branch commits from the query's ``data`` section."""
    history = _nodes(data, "repository", "defaultBranchRef", "target", "history")
    return [
        Commit(
            committed_date=_parse_datetime(commit.get("committedDate")),
            message=commit.get("message") or "",
            sha=commit.get("oid") or "",
            committer=User(login=_dig(commit, "committer", "user", "login") or ""),
        )
        for commit in history
    ]