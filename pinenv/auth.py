"""Token cache and OAuth device authorization flow.

The flow follows GitHub's device flow for CLI apps: request a device code,
show the verification URL and user code, then poll the token endpoint until
the user approves, denies, or the code expires. The resulting bearer token is
cached in a single file whose presence is the only authentication state.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urljoin

import requests

from .exceptions import AuthError, BackendError

logger = logging.getLogger(__name__)

CLIENT_ID = "Ov23liFxqmYL2jVV2QZ0"
SCOPES = ("repo", "admin:org")
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
DEFAULT_OAUTH_URL = "https://github.com/"
SLOW_DOWN_INCREMENT = 5.0
REQUEST_TIMEOUT = 30

PENDING = "authorization_pending"
SLOW_DOWN = "slow_down"
EXPIRED = "expired_token"
DENIED = "access_denied"


class TokenStore:
    """Single-line token file under the private directory."""

    def __init__(self, path: Path):
        self.path = path

    def read(self) -> str | None:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise AuthError(f"Unable to read token from {self.path}: {exc.strerror or exc}") from exc
        return token or None

    def write(self, token: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with open(fd, "w", encoding="utf-8") as handle:
                handle.write(f"{token}\n")
        except OSError as exc:
            raise AuthError(f"Unable to save token to {self.path}: {exc.strerror or exc}") from exc

    def clear(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise AuthError(f"Unable to remove token at {self.path}: {exc.strerror or exc}") from exc
        return True


@dataclass(frozen=True)
class AuthContext:
    """Credentials read once at start-up and passed to whoever needs them."""

    store: TokenStore
    token: str | None = None

    @classmethod
    def load(cls, store: TokenStore) -> AuthContext:
        return cls(store=store, token=store.read())

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def require_token(self) -> str:
        if self.token is None:
            raise AuthError("Please authenticate with `pinenv auth login` before continuing.")
        return self.token


@dataclass(frozen=True)
class DeviceCode:
    device_code: str
    user_code: str
    verification_uri: str
    interval: float
    expires_in: float | None = None


@dataclass(frozen=True)
class PollPolicy:
    """Backoff rule for the token poll loop.

    ``slow_down`` adds the increment on top of the original interval for that
    one wait only; the base interval never grows.
    """

    interval: float
    slow_down_increment: float = SLOW_DOWN_INCREMENT
    max_wait: float | None = None

    @classmethod
    def for_code(cls, code: DeviceCode) -> PollPolicy:
        return cls(interval=code.interval, max_wait=code.expires_in)

    def delay_for(self, error: str) -> float:
        if error == SLOW_DOWN:
            return self.interval + self.slow_down_increment
        return self.interval

    def allows(self, waited: float) -> bool:
        return self.max_wait is None or waited <= self.max_wait


Presenter = Callable[[DeviceCode], None]


class DeviceFlow:
    """Runs the device authorization grant end to end."""

    def __init__(
        self,
        store: TokenStore,
        *,
        session: requests.Session | None = None,
        client_id: str = CLIENT_ID,
        scopes: tuple[str, ...] = SCOPES,
        oauth_url: str = DEFAULT_OAUTH_URL,
        sleep: Callable[[float], None] = time.sleep,
        presenter: Presenter | None = None,
    ):
        self.store = store
        self.session = session or requests.Session()
        self.client_id = client_id
        self.scopes = scopes
        self.oauth_url = oauth_url
        self.sleep = sleep
        self.presenter = presenter

    def run(self) -> str:
        code = self.request_code()
        if self.presenter is not None:
            self.presenter(code)
        return self.poll(code, PollPolicy.for_code(code))

    def request_code(self) -> DeviceCode:
        data = self._post(
            "login/device/code",
            {"client_id": self.client_id, "scope": " ".join(self.scopes)},
            require_ok=True,
        )
        try:
            return DeviceCode(
                device_code=str(data["device_code"]),
                user_code=str(data["user_code"]),
                verification_uri=str(data["verification_uri"]),
                interval=float(data["interval"]),
                expires_in=float(data["expires_in"]) if data.get("expires_in") is not None else None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise BackendError(f"Malformed device code response: {data}") from exc

    def request_token(self, device_code: str) -> dict[str, Any]:
        return self._post(
            "login/oauth/access_token",
            {
                "client_id": self.client_id,
                "device_code": device_code,
                "grant_type": DEVICE_GRANT_TYPE,
            },
        )

    def poll(self, code: DeviceCode, policy: PollPolicy) -> str:
        """Poll until a terminal state; persist and return the token on success."""

        waited = 0.0
        while True:
            response = self.request_token(code.device_code)
            error = response.get("error")
            if error is None:
                token = response.get("access_token")
                if not isinstance(token, str) or not token:
                    raise BackendError("Unexpected response while getting a user access token.")
                self.store.write(token)
                logger.debug("Stored access token at %s", self.store.path)
                return token
            if error in (PENDING, SLOW_DOWN):
                delay = policy.delay_for(error)
                if not policy.allows(waited + delay):
                    raise AuthError("The device code has expired. Please run `pinenv auth login` again.")
                logger.debug("Token poll returned %s; sleeping %.1fs", error, delay)
                self.sleep(delay)
                waited += delay
                continue
            if error == EXPIRED:
                raise AuthError("The device code has expired. Please run `pinenv auth login` again.")
            if error == DENIED:
                raise AuthError("Login cancelled by user.")
            raise AuthError(f"Error getting pinenv github app token: {error}")

    def _post(self, path: str, params: dict[str, str], *, require_ok: bool = False) -> dict[str, Any]:
        url = urljoin(self.oauth_url, path)
        try:
            response = self.session.post(
                url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise BackendError(f"Request to {url} failed: {exc}") from exc
        if require_ok and not response.ok:
            raise BackendError(
                f"Request to {url} failed with status {response.status_code}",
                status=response.status_code,
                body=response.text,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise BackendError(f"Invalid JSON from {url}", status=response.status_code, body=response.text) from exc
        if not isinstance(data, dict):
            raise BackendError(f"Unexpected response from {url}: {data}", status=response.status_code)
        return data
