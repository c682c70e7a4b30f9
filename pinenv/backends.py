"""Hosting backends that store environment repositories."""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import urljoin

import requests

from .auth import AuthContext, DeviceFlow, Presenter
from .config import Settings
from .exceptions import AuthError, BackendError, ConfigError
from .references import RepoReference

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "pinenv"
REQUEST_TIMEOUT = 30


class Backend(Protocol):
    """Protocol for hosting backend implementations."""

    def exists(self, org: str, name: str) -> bool:
        """Return whether repository ``name`` exists under ``org``.

        A "not found" answer is ``False``, not an error.
        """
        ...

    def create(self, org: str, name: str) -> None:
        """Create a private repository ``name`` under ``org``.

        Raises:
            BackendError: If the backend rejects the request
        """
        ...

    def login(self) -> None:
        """Authenticate interactively and persist the resulting token."""
        ...

    def reference(self, org: str, name: str) -> RepoReference:
        """Describe where ``org/name`` lives on this backend."""
        ...


class GitHubBackend:
    """Backend for the GitHub REST API."""

    host = "github.com"

    def __init__(
        self,
        auth: AuthContext,
        *,
        api_url: str = "https://api.github.com/",
        session: requests.Session | None = None,
        device_flow: DeviceFlow | None = None,
        presenter: Presenter | None = None,
    ):
        self.auth = auth
        self.api_url = api_url
        self.session = session or requests.Session()
        self.device_flow = device_flow or DeviceFlow(auth.store, session=self.session, presenter=presenter)

    def exists(self, org: str, name: str) -> bool:
        response = self._request("GET", f"repos/{org}/{name}")
        if response.status_code == 404:
            return False
        self._raise_for_status(response, f"Unable to look up {org}/{name}")
        data = _json(response)
        return isinstance(data, dict) and "name" in data

    def create(self, org: str, name: str) -> None:
        response = self._request("POST", f"orgs/{org}/repos", json={"name": name, "private": True})
        self._raise_for_status(response, f"Unable to create repository {org}/{name}")
        logger.debug("Created repository %s/%s", org, name)

    def login(self) -> None:
        self.device_flow.run()

    def reference(self, org: str, name: str) -> RepoReference:
        return RepoReference(name=name, org=org, host=self.host)

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "Authorization": f"Bearer {self.auth.require_token()}",
            "User-Agent": USER_AGENT,
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = self._headers()
        url = urljoin(self.api_url, path)
        logger.debug("%s %s", method, url)
        try:
            return self.session.request(method, url, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise BackendError(f"Request to {url} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: requests.Response, context: str) -> None:
        if response.status_code == 401:
            raise AuthError(
                "The cached token was rejected. Please run `pinenv auth login` again."
            )
        if not response.ok:
            raise BackendError(
                f"{context}: {response.text or response.reason}",
                status=response.status_code,
                body=response.text,
            )


def get_backend(settings: Settings, auth: AuthContext, presenter: Presenter | None = None) -> Backend:
    """Return the backend selected by configuration."""

    if settings.backend == "github":
        return GitHubBackend(auth, api_url=settings.api_url, presenter=presenter)
    raise ConfigError(f"Unsupported backend: {settings.backend}")


def _json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise BackendError(
            "Malformed response from backend",
            status=response.status_code,
            body=response.text,
        ) from exc
