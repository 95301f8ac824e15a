"""Minimal GitHub REST client used to create and protect repositories."""

from __future__ import annotations

from typing import Any

import requests

from .errors import ConfigurationError, RepositoryError
from .logging import get_logger
from .util import env_first

logger = get_logger("github")

GITHUB_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 30


class GitHubError(RepositoryError):
    """Raised when a GitHub API interaction fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """Talk to the GitHub REST API with a personal access token."""

    def __init__(
        self,
        token: str,
        api_url: str = GITHUB_API_URL,
        *,
        session: requests.Session | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )

    @classmethod
    def from_env(cls, api_url: str = GITHUB_API_URL) -> "GitHubClient":
        """Build a client from GITHUB_TOKEN or GH_TOKEN."""
        token = env_first("GITHUB_TOKEN", "GH_TOKEN")
        if not token:
            raise ConfigurationError("GITHUB_TOKEN is not set. Create a token and export it before continuing.")
        return cls(token=token, api_url=api_url)

    def _request(self, method: str, path: str, *, payload: dict[str, Any] | None = None) -> requests.Response:
        url = f"{self.api_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise GitHubError(f"GitHub request failed: {exc}") from exc
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    def _call(self, method: str, path: str, *, payload: dict[str, Any] | None = None) -> Any:
        response = self._request(method, path, payload=payload)
        if response.status_code >= 400:
            try:
                detail = response.json().get("message", "")
            except ValueError:
                detail = response.text
            raise GitHubError(
                f"GitHub {method} {path} failed with {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _exists(self, path: str) -> bool:
        response = self._request("GET", path)
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise GitHubError(f"GitHub GET {path} failed with {response.status_code}", response.status_code)
        return True

    # Queries -----------------------------------------------------------------------

    def current_user(self) -> str:
        """Return the login of the authenticated user."""
        data = self._call("GET", "/user")
        login = (data or {}).get("login")
        if not login:
            raise GitHubError("GitHub user response did not include a login.")
        return str(login)

    def repository_exists(self, owner: str, repo: str) -> bool:
        return self._exists(f"/repos/{owner}/{repo}")

    def commit_exists(self, owner: str, repo: str, sha: str) -> bool:
        return self._exists(f"/repos/{owner}/{repo}/commits/{sha}")

    def branch_exists(self, owner: str, repo: str, branch: str) -> bool:
        return self._exists(f"/repos/{owner}/{repo}/branches/{branch}")

    def get_branch_protection(self, owner: str, repo: str, branch: str) -> dict[str, Any] | None:
        """Return the protection settings for branch, or None when unprotected."""
        response = self._request("GET", f"/repos/{owner}/{repo}/branches/{branch}/protection")
        if response.status_code >= 400:
            return None
        return response.json()

    # Mutations ---------------------------------------------------------------------

    def create_repository(self, name: str, *, private: bool) -> dict[str, Any]:
        """Create a repository owned by the authenticated user."""
        return self._call("POST", "/user/repos", payload={"name": name, "private": private})

    def protect_branch(
        self,
        owner: str,
        repo: str,
        branch: str,
        *,
        review_count: int = 1,
        enforce_admins: bool = False,
    ) -> None:
        """Require pull request reviews before merging into branch."""
        payload = {
            "required_status_checks": None,
            "enforce_admins": enforce_admins,
            "required_pull_request_reviews": {"required_approving_review_count": review_count},
            "restrictions": None,
        }
        self._call("PUT", f"/repos/{owner}/{repo}/branches/{branch}/protection", payload=payload)

    def require_signatures(self, owner: str, repo: str, branch: str) -> None:
        """Require signed commits on a protected branch."""
        self._call("POST", f"/repos/{owner}/{repo}/branches/{branch}/protection/required_signatures")
