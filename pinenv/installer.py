"""Installer adapter - shells out to the `pixi` command."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .exceptions import InstallerError

logger = logging.getLogger(__name__)

INSTALL_FLAGS = ("--frozen", "--locked", "--color", "always")


class Installer:
    """Runs the external installer with inherited stdio.

    Only the exit status matters: zero is success, anything else (including a
    failure to spawn) raises :class:`InstallerError`.
    """

    def __init__(self, executable: str = "pixi"):
        self.executable = executable

    def install(self, cwd: Path, *, frozen: bool = True) -> None:
        args = ["install", *INSTALL_FLAGS] if frozen else ["install"]
        self._run(args, cwd)

    def init(self, cwd: Path) -> None:
        self._run(["init"], cwd)

    def _run(self, args: list[str], cwd: Path) -> None:
        cmd = [self.executable, *args]
        logger.debug("Running command: %s (cwd=%s)", " ".join(cmd), cwd)
        try:
            proc = subprocess.run(cmd, cwd=str(cwd), check=False)
        except OSError as exc:
            raise InstallerError(cmd, None, str(exc)) from exc
        if proc.returncode != 0:
            raise InstallerError(cmd, proc.returncode)
