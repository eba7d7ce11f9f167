"""Data types shared by repository clients and the interface they implement."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable


class InternalError(RuntimeError):
    """An unexpected failure while gathering or evaluating repository data."""


class RepoUnavailableError(Exception):
    """Raised when a repository client cannot reach the repository."""

    def __init__(self, inner: BaseException) -> None:
        super().__init__(f"repo cannot be accessed: {inner}")
        self.inner = inner
        self.__cause__ = inner


@dataclass
class BranchProtectionRule:
    """Rules that protect a Git branch."""

    required_approving_review_count: int = 0


@dataclass
class BranchRef:
    """A Git branch and its protection rule."""

    name: str = ""
    branch_protection_rule: BranchProtectionRule = field(default_factory=BranchProtectionRule)


@dataclass
class User:
    """A Git hosting user or organisation."""

    login: str = ""


@dataclass
class Commit:
    """A Git commit."""

    committed_date: datetime | None = None
    message: str = ""
    sha: str = ""
    committer: User = field(default_factory=User)
    authored_by_committer: bool = False


@dataclass
class Contributor:
    """A contributor to a repository."""

    company: str = ""
    user: User = field(default_factory=User)
    organizations: list[User] = field(default_factory=list)
    num_contributions: int = 0


@dataclass
class Label:
    """A pull request label."""

    name: str = ""


@dataclass
class Review:
    """A pull request review."""

    state: str = ""


@dataclass
class PullRequest:
    """A merged pull request."""

    merged_at: datetime | None = None
    merge_commit: Commit = field(default_factory=Commit)
    number: int = 0
    head_sha: str = ""
    labels: list[Label] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)


@dataclass
class ReleaseAsset:
    """A file attached to a release."""

    name: str = ""
    url: str = ""


@dataclass
class Release:
    """A release of a repository."""

    tag_name: str = ""
    assets: list[ReleaseAsset] = field(default_factory=list)


@dataclass
class SearchRequest:
    """A code search for ``query``, optionally limited by file name and path."""

    query: str = ""
    filename: str = ""
    path: str = ""


@dataclass
class SearchResult:
    """One file matching a search."""

    path: str = ""


@dataclass
class SearchResponse:
    """The results of a code search."""

    results: list[SearchResult] = field(default_factory=list)
    hits: int = 0


class RepoClient(abc.ABC):
    """Access to a repository's metadata and files."""

    @abc.abstractmethod
    def init_repo(self, owner: str, repo: str) -> None:
        """Load the repository ``owner/repo``."""

    @abc.abstractmethod
    def url(self) -> str:
        """Return the repository location."""

    @abc.abstractmethod
    def is_archived(self) -> bool:
        """Return whether the repository is archived."""

    @abc.abstractmethod
    def list_files(self, predicate: Callable[[str], bool]) -> list[str]:
        """Return the repository files for which ``predicate`` is true."""

    @abc.abstractmethod
    def get_file_content(self, filename: str) -> bytes:
        """Return the content of a repository file."""

    @abc.abstractmethod
    def list_merged_prs(self) -> list[PullRequest]:
        """Return recently merged pull requests."""

    @abc.abstractmethod
    def get_default_branch(self) -> BranchRef:
        """Return the default branch."""

    @abc.abstractmethod
    def list_commits(self) -> list[Commit]:
        """Return recent commits on the default branch."""

    @abc.abstractmethod
    def list_releases(self) -> list[Release]:
        """Return recent releases."""

    @abc.abstractmethod
    def list_contributors(self) -> list[Contributor]:
        """Return the repository's contributors."""

    @abc.abstractmethod
    def search(self, request: SearchRequest) -> SearchResponse:
        """Run a code search in the repository."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release any resources held by the client."""

    def __enter__(self) -> RepoClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()