"""HTTP transport that authenticates with rotating access tokens and tracks rate limits."""

from __future__ import annotations

import threading
from typing import Any, Iterable

import requests
from requests.adapters import HTTPAdapter


class TokenUsage:
    """Last reported count of remaining API calls, per token and resource type."""

    def __init__(self) -> None:
        self._values: dict[tuple[int, str], int] = {}
        self._lock = threading.Lock()

    def record(self, token_index: int, resource_type: str, remaining: int) -> None:
        """Store the latest remaining count for a token and resource type."""
        with self._lock:
            self._values[(token_index, resource_type)] = remaining

    def remaining(self, token_index: int, resource_type: str) -> int | None:
        """Return the last remaining count recorded, or None if there is none."""
        with self._lock:
            return self._values.get((token_index, resource_type))


class RoundRobinAccessor:
    """Hands out access tokens in turn."""

    def __init__(self, access_tokens: Iterable[str]) -> None:
        self.access_tokens = list(access_tokens)
        if not self.access_tokens:
            raise ValueError("at least one access token is required")
        self._counter = 0
        self._lock = threading.Lock()

    def next(self) -> tuple[int, str]:
        """Return the index and value of the next token."""
        with self._lock:
            self._counter += 1
            count = self._counter
        index = count % len(self.access_tokens)
        return index, self.access_tokens[index]


class GitHubTransport(HTTPAdapter):
    """An HTTP adapter adding bearer authorization and recording rate-limit headers."""

    def __init__(self, access_tokens: Iterable[str], usage: TokenUsage | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.tokens = RoundRobinAccessor(access_tokens)
        self.usage = usage

    def send(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        index, token = self.tokens.next()
        request.headers["Authorization"] = f"Bearer {token}"
        response = super().send(request, **kwargs)
        if self.usage is not None:
            resource_type = response.headers.get("X-RateLimit-Resource", "")
            try:
                remaining = int(response.headers.get("X-RateLimit-Remaining", ""))
            except ValueError:
                pass
            else:
                self.usage.record(index, resource_type, remaining)
        return response


def make_github_transport(access_tokens: Iterable[str], usage: TokenUsage | None = None) -> GitHubTransport:
    """Return an adapter that authorizes requests with ``access_tokens`` in turn."""
    return GitHubTransport(access_tokens, usage)