"""Repository client backed by the GitHub REST and GraphQL APIs."""

from __future__ import annotations

from typing import Any, Callable

import requests

from scorecard.clients import (
    BranchRef,
    Commit,
    Contributor,
    PullRequest,
    Release,
    RepoClient,
    RepoUnavailableError,
    SearchRequest,
    SearchResponse,
)
from scorecard.githubrepo.contributors import ContributorsHandler
from scorecard.githubrepo.graphql import DEFAULT_GRAPHQL_URL, GraphqlHandler
from scorecard.githubrepo.search import DEFAULT_API_URL, SearchHandler
from scorecard.githubrepo.tarball import TarballHandler


class Client(RepoClient):
    """A RepoClient for repositories hosted on GitHub."""

    def __init__(
        self,
        session: requests.Session | None = None,
        api_url: str = DEFAULT_API_URL,
        graphql_url: str = DEFAULT_GRAPHQL_URL,
    ) -> None:
        self.session = session if session is not None else requests.Session()
        self.api_url = api_url.rstrip("/")
        self.owner = ""
        self.repo_name = ""
        self.repo: dict[str, Any] = {}
        self.tarball = TarballHandler(self.session)
        self.graph = GraphqlHandler(self.session, graphql_url)
        self.contributors = ContributorsHandler(self.session, self.api_url)
        self.searcher = SearchHandler(self.session, self.api_url)

    def init_repo(self, owner: str, repo: str) -> None:
        """Fetch ``owner/repo`` and load its files and metadata."""
        try:
            resp = self.session.get(f"{self.api_url}/repos/{owner}/{repo}")
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as err:
            raise RepoUnavailableError(err) from err
        self.repo = data or {}
        self.owner = (self.repo.get("owner") or {}).get("login") or ""
        self.repo_name = self.repo.get("name") or ""

        self.tarball.setup(self.repo.get("archive_url") or "")
        self.graph.setup(self.owner, self.repo_name)
        self.contributors.setup(self.owner, self.repo_name)
        self.searcher.setup(self.owner, self.repo_name)

    def url(self) -> str:
        return f"github.com/{self.owner}/{self.repo_name}"

    def is_archived(self) -> bool:
        return self.graph.is_archived()

    def list_files(self, predicate: Callable[[str], bool]) -> list[str]:
        return self.tarball.list_files(predicate)

    def get_file_content(self, filename: str) -> bytes:
        return self.tarball.get_file_content(filename)

    def list_merged_prs(self) -> list[PullRequest]:
        return self.graph.get_merged_prs()

    def get_default_branch(self) -> BranchRef:
        return self.graph.get_default_branch()

    def list_commits(self) -> list[Commit]:
        return self.graph.get_commits()

    def list_releases(self) -> list[Release]:
        return self.graph.get_releases()

    def list_contributors(self) -> list[Contributor]:
        return self.contributors.get_contributors()

    def search(self, request: SearchRequest) -> SearchResponse:
        return self.searcher.search(request)

    def close(self) -> None:
        self.tarball.cleanup()


def create_github_repo_client(session: requests.Session | None = None) -> Client:
    """Return a GitHub client that sends its requests through ``session``."""
    return Client(session=session)