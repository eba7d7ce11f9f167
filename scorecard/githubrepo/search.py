"""Code search within a single repository through the hosting API."""

from __future__ import annotations

from typing import Any

import requests

from scorecard.clients import InternalError, SearchRequest, SearchResponse, SearchResult

DEFAULT_API_URL = "https://api.github.com"


class EmptyQueryError(ValueError):
    """Raised when a search request has no query."""

    def __init__(self) -> None:
        super().__init__("search query is empty")


class SearchHandler:
    """Runs code searches scoped to one repository."""

    def __init__(self, session: requests.Session | None = None, api_url: str = DEFAULT_API_URL) -> None:
        self.session = session if session is not None else requests.Session()
        self.api_url = api_url.rstrip("/")
        self.owner = ""
        self.repo = ""

    def setup(self, owner: str, repo: str) -> None:
        """Scope later searches to ``owner/repo``."""
        self.owner = owner
        self.repo = repo

    def build_query(self, request: SearchRequest) -> str:
        """Return the search query string for ``request``."""
        if not request.query:
            raise EmptyQueryError()
        query = f"{request.query} repo:{self.owner}/{self.repo}"
        if request.filename:
            query += f" in:file filename:{request.filename}"
        if request.path:
            query += f" path:{request.path}"
        return query

    def search(self, request: SearchRequest) -> SearchResponse:
        """Run the code search described by ``request``."""
        query = self.build_query(request)
        try:
            resp = self.session.get(f"{self.api_url}/search/code", params={"q": query})
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as err:
            raise InternalError(f"Search.Code: {err}") from err
        return search_response_from(data)


def search_response_from(data: dict[str, Any]) -> SearchResponse:
    """Build a SearchResponse from a code search API payload."""
    results = [SearchResult(path=item.get("path") or "") for item in data.get("items") or []]
    return SearchResponse(results=results, hits=data.get("total_count") or 0)