"""The pinned state of an environment: a spec file and its lock file."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .exceptions import LockSpecError, NotFoundError

if TYPE_CHECKING:  # pragma: no cover
    from .catalog import Catalog

logger = logging.getLogger(__name__)

SPEC_FILENAME = "pixi.toml"
LOCK_FILENAME = "pixi.lock"
METADATA_TABLE = "pinenv"
METADATA_NAME_KEY = "lockspec_name"


@dataclass(frozen=True)
class LockSpec:
    """A directory holding both tracked files.

    Instances are only handed out by the ``from_*`` constructors, which check
    that both files exist. The files can still disappear afterwards, so every
    consumer re-validates with :meth:`files_exist` before acting.
    """

    root: Path

    def __str__(self) -> str:
        return f"lockspec: {self.root}"

    @property
    def spec_file(self) -> Path:
        return self.root / SPEC_FILENAME

    @property
    def lock_file(self) -> Path:
        return self.root / LOCK_FILENAME

    @classmethod
    def from_directory(cls, path: Path) -> LockSpec:
        lockspec = cls(Path(path))
        if not lockspec.files_exist():
            raise NotFoundError(
                f"No lockspec files found in {lockspec.root}. "
                f"Expected both {SPEC_FILENAME} and {LOCK_FILENAME}."
            )
        return lockspec

    @classmethod
    def from_environment_name(cls, name: str, catalog: Catalog) -> LockSpec:
        env_dir = catalog.path_for(name)
        try:
            return cls.from_directory(env_dir)
        except NotFoundError as exc:
            raise NotFoundError(f"No environment named '{name}' exists in {catalog.root}.") from exc

    def files_exist(self) -> bool:
        return self.spec_file.is_file() and self.lock_file.is_file()

    def any_file_exists(self) -> bool:
        return self.spec_file.exists() or self.lock_file.exists()

    def hardlink_to(self, target_dir: Path) -> LockSpec:
        """Hard-link both files into ``target_dir``.

        Either both links exist afterwards or neither does. Existing files at
        the destination are never replaced; the ``FileExistsError`` surfaces.
        """

        target = LockSpec(Path(target_dir))
        os.link(self.lock_file, target.lock_file)
        try:
            os.link(self.spec_file, target.spec_file)
        except OSError:
            try:
                target.lock_file.unlink(missing_ok=True)
            except OSError as cleanup_exc:
                logger.error("Failed to clean up %s: %s", target.lock_file, cleanup_exc)
            raise
        return target

    def ensure_metadata(self, name: str) -> bool:
        """Stamp ``[pinenv] lockspec_name`` into the spec file if it is absent.

        Returns True when the file was rewritten. An existing table is left
        alone whatever name it carries.
        """

        document = self._read_spec()
        if METADATA_TABLE in document:
            return False
        table = tomlkit.table()
        table.add(METADATA_NAME_KEY, name)
        document.add(METADATA_TABLE, table)
        try:
            self.spec_file.write_text(tomlkit.dumps(document), encoding="utf-8")
        except OSError as exc:
            raise LockSpecError(f"Unable to write metadata to {self.spec_file}: {exc}") from exc
        logger.debug("Stamped %s with lockspec name %s", self.spec_file, name)
        return True

    def metadata_name(self) -> str | None:
        table = self._read_spec().get(METADATA_TABLE)
        if not isinstance(table, Mapping):
            return None
        value = table.get(METADATA_NAME_KEY)
        return str(value) if value is not None else None

    def remove_files(self) -> None:
        for path in (self.spec_file, self.lock_file):
            path.unlink(missing_ok=True)

    def remove_and_parent(self) -> None:
        """Delete the whole directory; only for directories created to hold this lockspec."""

        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass

    def _read_spec(self) -> tomlkit.TOMLDocument:
        try:
            text = self.spec_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise LockSpecError(f"Unable to read {self.spec_file}: {exc}") from exc
        try:
            return tomlkit.parse(text)
        except TOMLKitError as exc:
            raise LockSpecError(f"Unable to parse {self.spec_file} as valid toml.\nReason: {exc}") from exc
