"""High-level orchestration for provisioning environments.

Each operation runs as an ordered list of stages. A stage that creates
something pushes a compensating action onto a :class:`Rollback`; when a later
stage fails, the compensations run newest-first and the original error is
re-raised as a :class:`ProvisionError` naming the failed stage.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TypeVar

from . import git
from .backends import Backend
from .catalog import Catalog
from .config import Settings
from .exceptions import LockSpecError, PinenvError, ProvisionError
from .installer import Installer
from .lockspec import LOCK_FILENAME, SPEC_FILENAME, LockSpec
from .references import RepoReference, parse_reference
from .rollback import Rollback

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHECK = "check"
RESOLVE = "resolve"
FETCH = "fetch"
VALIDATE = "validate"
LINK = "link"
INSTALL = "install"
CREATE = "create"
INITIALIZE = "initialize"
COMMIT = "commit"
PUBLISH = "publish"


@dataclass(frozen=True)
class ProvisionResult:
    reference: RepoReference
    lockspec: LockSpec
    cloned: bool


@dataclass
class Provisioner:
    settings: Settings
    catalog: Catalog
    installer: Installer
    backend: Backend | None = None
    clone_repo: Callable[[str, Path], None] = field(default=git.clone)

    def get(self, raw_reference: str, workdir: Path) -> ProvisionResult:
        """Fetch an environment into the catalog and link it into ``workdir``.

        Resolve -> Fetch -> Validate -> Link -> Install. The working directory
        is never removed; only the two linked files are taken back out of it.
        """

        workdir = Path(workdir)
        rollback = Rollback()
        _run(CHECK, rollback, lambda: _refuse_existing_lockspec(workdir))
        reference = _run(RESOLVE, rollback, lambda: parse_reference(raw_reference))
        name = reference.name
        org = reference.owner(self.settings.default_org)

        cloned = _run(FETCH, rollback, lambda: self._fetch(reference, rollback))
        source = _run(VALIDATE, rollback, lambda: self._validate(name, org))
        linked = _run(LINK, rollback, lambda: source.hardlink_to(workdir))
        rollback.push(f"remove linked lockspec files from {workdir}", linked.remove_files)
        _run(INSTALL, rollback, lambda: self.installer.install(workdir))

        rollback.discard()
        return ProvisionResult(reference=reference.with_org(org), lockspec=linked, cloned=cloned)

    def clone(self, raw_reference: str, workdir: Path, path: Path | None = None) -> ProvisionResult:
        """Clone an environment repository directly to ``path`` and install it there."""

        rollback = Rollback()
        reference = _run(RESOLVE, rollback, lambda: parse_reference(raw_reference))
        org = reference.owner(self.settings.default_org)
        target = Path(path) if path is not None else Path(workdir) / reference.name
        _run(CHECK, rollback, lambda: _refuse_existing_lockspec(target))

        def fetch() -> None:
            if target.exists():
                if any(target.iterdir()):
                    raise LockSpecError(f"{target} exists and is not empty. Aborting.")
                rollback.push(f"empty {target}", lambda: _clear_directory(target))
            else:
                rollback.push(f"remove {target}", LockSpec(target).remove_and_parent)
            self.clone_repo(reference.ssh_url(org), target)

        _run(FETCH, rollback, fetch)
        lockspec = _run(VALIDATE, rollback, lambda: self._validate_directory(target, reference.name, org))
        _run(INSTALL, rollback, lambda: self.installer.install(target))

        rollback.discard()
        return ProvisionResult(reference=reference.with_org(org), lockspec=lockspec, cloned=True)

    def init(self, name: str, org: str | None = None) -> ProvisionResult:
        """Create a new environment in the catalog backed by a new private repository."""

        backend = self._require_backend()
        rollback = Rollback()
        org = org or self.settings.default_org
        reference = _run(RESOLVE, rollback, lambda: backend.reference(org, name))
        env_dir = self.catalog.path_for(name)

        def check() -> None:
            if self.catalog.contains(name):
                raise LockSpecError(f"Environment '{name}' already exists at {env_dir}.")
            if backend.exists(org, name):
                raise LockSpecError(f"Environment '{name}' already exists at {reference.web_url(org)}.")

        def create() -> None:
            self.catalog.ensure()
            env_dir.mkdir()
            rollback.push(f"remove {env_dir}", LockSpec(env_dir).remove_and_parent)

        def initialize() -> LockSpec:
            self.installer.init(env_dir)
            LockSpec(env_dir).ensure_metadata(name)
            self.installer.install(env_dir, frozen=False)
            return LockSpec.from_directory(env_dir)

        def commit() -> None:
            git.init_repository(env_dir)
            git.commit_all(env_dir, "Initial commit")
            git.add_remote(env_dir, reference.ssh_url(org))

        _run(CHECK, rollback, check)
        _run(CREATE, rollback, create)
        lockspec = _run(INITIALIZE, rollback, initialize)
        _run(COMMIT, rollback, commit)
        _run(PUBLISH, rollback, lambda: backend.create(org, name))

        rollback.discard()
        return ProvisionResult(reference=reference, lockspec=lockspec, cloned=False)

    def push(self, name: str, tag: str | None = None) -> LockSpec:
        """Push the catalog copy of ``name`` (and optionally a new tag) to its remote."""

        lockspec = self.catalog.lockspec(name)
        refspecs = ["refs/heads/main"]
        if tag:
            git.tag(lockspec.root, tag)
            refspecs.append(f"refs/tags/{tag}")
        git.push(lockspec.root, refspecs)
        return lockspec

    def _fetch(self, reference: RepoReference, rollback: Rollback) -> bool:
        name = reference.name
        if self.catalog.contains(name):
            logger.info("Environment %s already present in %s", name, self.catalog.root)
            return False
        self.catalog.ensure()
        env_dir = self.catalog.path_for(name)
        rollback.push(f"remove cloned environment {env_dir}", LockSpec(env_dir).remove_and_parent)
        self.clone_repo(reference.ssh_url(self.settings.default_org), env_dir)
        return True

    def _validate(self, name: str, org: str) -> LockSpec:
        try:
            return self.catalog.lockspec(name)
        except PinenvError as exc:
            raise LockSpecError(
                f"{exc} Is {SPEC_FILENAME} or {LOCK_FILENAME} missing from {org}/{name}?"
            ) from exc

    def _validate_directory(self, path: Path, name: str, org: str) -> LockSpec:
        try:
            return LockSpec.from_directory(path)
        except PinenvError as exc:
            raise LockSpecError(
                f"The cloned lockspec repo is not valid. Is {SPEC_FILENAME} or {LOCK_FILENAME} missing from {org}/{name}?"
            ) from exc

    def _require_backend(self) -> Backend:
        if self.backend is None:
            raise PinenvError("No backend configured.")
        return self.backend


def _run(stage: str, rollback: Rollback, action: Callable[[], T]) -> T:
    try:
        return action()
    except (PinenvError, OSError) as exc:
        failures = rollback.unwind()
        raise ProvisionError(stage, str(exc), failures) from exc


def _refuse_existing_lockspec(directory: Path) -> None:
    existing = LockSpec(directory)
    if existing.any_file_exists():
        raise LockSpecError(f"A lockspec already exists at {directory}. Aborting.")


def _clear_directory(directory: Path) -> None:
    for child in directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink(missing_ok=True)
