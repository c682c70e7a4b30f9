"""Prompts shown when a command is run without some of its input."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable

from InquirerPy import inquirer
from InquirerPy.base.control import Choice

from .exceptions import NotFoundError, ValidationError


def is_interactive() -> bool:
    return sys.stdin.isatty()


def choose_environment(names: Iterable[str], catalog_root: Path) -> str:
    """Let the user fuzzy-pick one of the cataloged environments."""

    choices = [Choice(value=name, name=name) for name in dict.fromkeys(n for n in names if n)]
    if not choices:
        raise NotFoundError(f"No local environments in {catalog_root}. Pass a repository reference.")
    if not is_interactive():
        raise ValidationError("Selecting an environment requires a TTY. Pass a repository reference instead.")
    return str(inquirer.fuzzy(message="Select environment", choices=choices).execute())


def confirm_relogin() -> bool:
    # callers only ask when a terminal is attached
    return bool(
        inquirer.confirm(message="A cached token already exists. Log in again?", default=False).execute()
    )
