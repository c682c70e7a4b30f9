"""Thin wrappers around git CLI commands."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Iterable, Mapping

from .exceptions import AuthError, GitCommandError

logger = logging.getLogger(__name__)

# BatchMode stops ssh from prompting, so the agent gets exactly one chance.
SSH_COMMAND = (
    "ssh -o BatchMode=yes -o NumberOfPasswordPrompts=0 "
    "-o PasswordAuthentication=no -o KbdInteractiveAuthentication=no"
)


def run_git(
    args: Iterable[str],
    *,
    cwd: Path,
    raise_on_error: bool = True,
    env: Mapping[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Execute a git command and optionally raise on failure."""

    cmd = ["git", *args]
    logger.debug("Running command: %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
            env=dict(env) if env is not None else None,
        )
    except OSError as exc:
        raise GitCommandError(cmd, -1, str(exc)) from exc
    if raise_on_error and proc.returncode != 0:
        raise GitCommandError(cmd, proc.returncode, proc.stderr)
    return proc


def ssh_agent_environment(base: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return an environment restricting git transport auth to ssh-agent."""

    env = dict(os.environ if base is None else base)
    if not env.get("SSH_AUTH_SOCK"):
        raise AuthError(
            "Unable to authenticate via ssh. Is ssh-agent running, and have you "
            "added the ssh key you use for git?"
        )
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_SSH_COMMAND"] = SSH_COMMAND
    return env


def clone(url: str, target: Path, env: Mapping[str, str] | None = None) -> None:
    if not url.startswith("git@"):
        raise AuthError(f"Only ssh remotes are supported for cloning, got {url}.")
    target.parent.mkdir(parents=True, exist_ok=True)
    run_git(["clone", url, str(target)], cwd=target.parent, env=ssh_agent_environment(env))


def init_repository(path: Path) -> None:
    run_git(["init", "--initial-branch", "main"], cwd=path)


def commit_all(path: Path, message: str) -> None:
    run_git(["add", "--all"], cwd=path)
    run_git(["commit", "--message", message], cwd=path)


def add_remote(path: Path, url: str, name: str = "origin") -> None:
    run_git(["remote", "add", name, url], cwd=path)


def tag(path: Path, name: str) -> None:
    run_git(["tag", name], cwd=path)


def push(path: Path, refspecs: Iterable[str], remote: str = "origin", env: Mapping[str, str] | None = None) -> None:
    run_git(["push", remote, *refspecs], cwd=path, env=ssh_agent_environment(env))
