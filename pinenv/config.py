"""Load runtime settings from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .exceptions import ConfigError

DEFAULT_HOME = "~/.pinenv"
DEFAULT_ORG = "nos-environments"
DEFAULT_BACKEND = "github"
DEFAULT_API_URL = "https://api.github.com/"
DEFAULT_INSTALLER = "pixi"

TOKEN_FILENAME = "pinenv-token"
ENVS_DIRNAME = "envs"

SUPPORTED_BACKENDS = ("github",)


@dataclass(frozen=True)
class Settings:
    """Concrete settings derived from env vars."""

    home: Path
    default_org: str = DEFAULT_ORG
    backend: str = DEFAULT_BACKEND
    api_url: str = DEFAULT_API_URL
    installer: str = DEFAULT_INSTALLER

    @property
    def token_path(self) -> Path:
        return self.home / TOKEN_FILENAME

    @property
    def catalog_root(self) -> Path:
        return self.home / ENVS_DIRNAME


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    home = Path(env.get("PINENV_HOME") or DEFAULT_HOME).expanduser()
    org = _optional(env, "PINENV_DEFAULT_ORG", DEFAULT_ORG)
    backend = _optional(env, "PINENV_BACKEND", DEFAULT_BACKEND).lower()
    if backend not in SUPPORTED_BACKENDS:
        raise ConfigError(
            f"Unsupported backend '{backend}' in PINENV_BACKEND. "
            f"Supported: {', '.join(SUPPORTED_BACKENDS)}"
        )
    api_url = _optional(env, "PINENV_API_URL", DEFAULT_API_URL)
    if not api_url.endswith("/"):
        api_url = f"{api_url}/"
    return Settings(
        home=home,
        default_org=org,
        backend=backend,
        api_url=api_url,
        installer=_optional(env, "PINENV_INSTALLER", DEFAULT_INSTALLER),
    )


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _optional(env: Mapping[str, str], var: str, default: str) -> str:
    raw = env.get(var)
    if raw is None:
        return default
    value = raw.strip()
    if not value:
        raise ConfigError(f"Environment variable {var} is set but empty. Unset it or provide a value.")
    return value
