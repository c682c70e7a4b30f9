"""Parse user-supplied environment references into remote repository descriptors."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from .exceptions import ParseError

DEFAULT_HOST = "github.com"
DEFAULT_SCHEME = "https://"

_NAME_PATTERN = r"[-A-Za-z0-9_.]{1,100}"
_NAME_RE = re.compile(_NAME_PATTERN)
_REFERENCE_RE = re.compile(
    r"(?:(?P<scheme>(?:git\+)?https?://)?(?P<host>github\.com)/)?"
    rf"(?:(?P<org>{_NAME_PATTERN})/)?"
    rf"(?P<name>{_NAME_PATTERN})"
    r"(?(host)/?)"  # URLs may end in a slash, bare names may not
)


@dataclass(frozen=True)
class RepoReference:
    """A remote repository holding one environment."""

    name: str
    org: str | None = None
    host: str = DEFAULT_HOST
    scheme: str = DEFAULT_SCHEME

    def __post_init__(self) -> None:
        _check_component("name", self.name)
        if self.org is not None:
            _check_component("org", self.org)

    def owner(self, default_org: str) -> str:
        return self.org or default_org

    def with_org(self, default_org: str) -> RepoReference:
        if self.org:
            return self
        return replace(self, org=default_org)

    def web_url(self, default_org: str) -> str:
        return f"{self.scheme}{self.host}/{self.owner(default_org)}/{self.name}"

    def ssh_url(self, default_org: str) -> str:
        return f"git@{self.host}:{self.owner(default_org)}/{self.name}.git"


def parse_reference(raw: str) -> RepoReference:
    """Parse ``name``, ``org/name`` or a github URL into a :class:`RepoReference`.

    The organization is left empty when the input does not carry one; callers
    supply their configured fallback when rendering URLs.
    """

    candidate = raw.strip()
    match = _REFERENCE_RE.fullmatch(candidate)
    if match is None:
        raise ParseError(f"Unrecognized format for repo name or URL: {raw!r}.")
    name = match.group("name")
    # only URLs carry a clone suffix; bare names may legitimately end in .git
    if match.group("host") and name.endswith(".git") and len(name) > len(".git"):
        name = name[: -len(".git")]
    host = match.group("host") or DEFAULT_HOST
    scheme = match.group("scheme") or DEFAULT_SCHEME
    return RepoReference(
        name=name,
        org=match.group("org"),
        host=host,
        scheme=scheme,
    )


def is_valid_name(value: str) -> bool:
    return bool(_NAME_RE.fullmatch(value)) and value not in {".", ".."}


def _check_component(label: str, value: str) -> None:
    if not is_valid_name(value):
        raise ParseError(
            f"Invalid {label} {value!r}: use 1-100 letters, digits, '-', '_' or '.'."
        )
