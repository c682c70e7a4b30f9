"""Filesystem helpers for the local environment catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .lockspec import LockSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Catalog:
    """One subdirectory per environment name, each holding a lockspec."""

    root: Path

    def ensure(self) -> Path:
        if not self.root.exists():
            logger.info("Environment catalog does not exist. Creating it at %s", self.root)
        ensure_directory(self.root)
        return self.root

    def path_for(self, name: str) -> Path:
        return self.root / name

    def contains(self, name: str) -> bool:
        return self.path_for(name).is_dir()

    def names(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(child.name for child in self.root.iterdir() if child.is_dir())

    def lockspec(self, name: str) -> LockSpec:
        return LockSpec.from_environment_name(name, self)


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
