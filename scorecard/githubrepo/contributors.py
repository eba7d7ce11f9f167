"""Contributors of a repository, with their organisations and companies."""

from __future__ import annotations

from typing import Any

import requests

from scorecard.clients import Contributor, InternalError, User
from scorecard.githubrepo.search import DEFAULT_API_URL


class ContributorsHandler:
    """Fetches and holds a repository's contributors."""

    def __init__(self, session: requests.Session | None = None, api_url: str = DEFAULT_API_URL) -> None:
        self.session = session if session is not None else requests.Session()
        self.api_url = api_url.rstrip("/")
        self._contributors: list[Contributor] = []

    def _get_json(self, path: str) -> Any:
        resp = self.session.get(f"{self.api_url}{path}")
        resp.raise_for_status()
        return resp.json()

    def setup(self, owner: str, repo: str) -> None:
        """Fetch the contributors of ``owner/repo``."""
        try:
            contribs = self._get_json(f"/repos/{owner}/{repo}/contributors")
        except (requests.RequestException, ValueError) as err:
            raise InternalError(f"error during ListContributors: {err}") from err

        for contrib in contribs or []:
            login = contrib.get("login") or ""
            if not login:
                continue
            contributor = Contributor(
                num_contributions=contrib.get("contributions") or 0,
                user=User(login=login),
            )
            # Listing organisations can fail because of token scopes; that is not fatal.
            try:
                orgs = self._get_json(f"/users/{login}/orgs")
            except (requests.RequestException, ValueError):
                pass
            else:
                contributor.organizations = [User(login=org.get("login") or "") for org in orgs or []]
            try:
                user = self._get_json(f"/users/{login}")
            except (requests.RequestException, ValueError) as err:
                raise InternalError(f"error during Users.Get: {err}") from err
            contributor.company = (user or {}).get("company") or ""
            self._contributors.append(contributor)

    def get_contributors(self) -> list[Contributor]:
        """Return the contributors fetched so far."""
        return self._contributors