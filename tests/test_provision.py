"""Tests for the provisioning workflows and their rollback."""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pinenv.catalog import Catalog
from pinenv.config import Settings
from pinenv.exceptions import BackendError, GitCommandError, InstallerError, ParseError, ProvisionError
from pinenv.lockspec import LockSpec
from pinenv.provision import Provisioner
from pinenv.references import RepoReference

from .fakes import FakeInstaller
from .helpers import SPEC_TEXT, write_lockspec


class FakeBackend:
    def __init__(self, existing: bool = False, create_error: Exception | None = None):
        self.existing = existing
        self.create_error = create_error
        self.created: list[tuple[str, str]] = []

    def exists(self, org: str, name: str) -> bool:
        return self.existing

    def create(self, org: str, name: str) -> None:
        if self.create_error is not None:
            raise self.create_error
        self.created.append((org, name))

    def login(self) -> None:  # pragma: no cover
        raise AssertionError("not used")

    def reference(self, org: str, name: str) -> RepoReference:
        return RepoReference(name=name, org=org)


class ScaffoldingInstaller(FakeInstaller):
    """Creates the files `pixi init` and an unfrozen `pixi install` would."""

    def init(self, cwd: Path) -> None:
        super().init(cwd)
        (cwd / "pixi.toml").write_text(SPEC_TEXT, encoding="utf-8")

    def install(self, cwd: Path, *, frozen: bool = True) -> None:
        super().install(cwd, frozen=frozen)
        (cwd / "pixi.lock").write_text("version: 6\n", encoding="utf-8")


class ProvisionTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        root = Path(self._tmp.name)
        self.settings = Settings(home=root / "home", default_org="fallback")
        self.catalog = Catalog(self.settings.catalog_root)
        self.workdir = root / "work"
        self.workdir.mkdir()
        self.clones: list[tuple[str, Path]] = []

    def fake_clone(self, url: str, target: Path) -> None:
        self.clones.append((url, target))
        write_lockspec(target)

    def provisioner(self, installer: FakeInstaller | None = None, clone=None, backend=None) -> Provisioner:
        return Provisioner(
            settings=self.settings,
            catalog=self.catalog,
            installer=installer or FakeInstaller(),
            backend=backend,
            clone_repo=clone or self.fake_clone,
        )

    def assert_workdir_clean(self) -> None:
        self.assertFalse((self.workdir / "pixi.toml").exists())
        self.assertFalse((self.workdir / "pixi.lock").exists())


class GetTests(ProvisionTestCase):
    def test_fresh_clone_links_and_installs(self) -> None:
        installer = FakeInstaller()

        result = self.provisioner(installer).get("acme/env1", self.workdir)

        self.assertTrue(result.cloned)
        self.assertEqual(result.reference.org, "acme")
        self.assertEqual(self.clones, [("git@github.com:acme/env1.git", self.catalog.path_for("env1"))])
        self.assertEqual(installer.calls, [("install", self.workdir)])
        source = LockSpec.from_directory(self.catalog.path_for("env1"))
        linked = LockSpec.from_directory(self.workdir)
        self.assertEqual(os.stat(linked.spec_file).st_ino, os.stat(source.spec_file).st_ino)

    def test_bare_name_uses_configured_org(self) -> None:
        self.provisioner().get("env1", self.workdir)

        self.assertEqual(self.clones[0][0], "git@github.com:fallback/env1.git")

    def test_install_failure_after_clone_removes_everything_created(self) -> None:
        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner(FakeInstaller(fail=True)).get("acme/env1", self.workdir)

        self.assertEqual(ctx.exception.stage, "install")
        self.assertIsInstance(ctx.exception.__cause__, InstallerError)
        self.assertEqual(ctx.exception.rollback_failures, [])
        self.assertFalse(self.catalog.contains("env1"))
        self.assert_workdir_clean()
        self.assertTrue(self.workdir.is_dir())

    def test_install_failure_keeps_preexisting_catalog_entry(self) -> None:
        write_lockspec(self.catalog.path_for("env1"))

        with self.assertRaises(ProvisionError):
            self.provisioner(FakeInstaller(fail=True)).get("acme/env1", self.workdir)

        self.assertEqual(self.clones, [])
        self.assertTrue(LockSpec.from_directory(self.catalog.path_for("env1")).files_exist())
        self.assert_workdir_clean()

    def test_invalid_clone_is_removed(self) -> None:
        def clone_without_lock(url: str, target: Path) -> None:
            target.mkdir(parents=True)
            (target / "pixi.toml").write_text(SPEC_TEXT, encoding="utf-8")

        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner(clone=clone_without_lock).get("acme/env1", self.workdir)

        self.assertEqual(ctx.exception.stage, "validate")
        self.assertIn("acme/env1", str(ctx.exception))
        self.assertFalse(self.catalog.path_for("env1").exists())

    def test_link_failure_removes_fresh_clone(self) -> None:
        missing = self.workdir / "does-not-exist"

        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner().get("acme/env1", missing)

        self.assertEqual(ctx.exception.stage, "link")
        self.assertFalse(self.catalog.contains("env1"))

    def test_failed_clone_leaves_no_partial_directory(self) -> None:
        def broken_clone(url: str, target: Path) -> None:
            target.mkdir(parents=True)
            (target / ".git").mkdir()
            raise GitCommandError(["git", "clone", url], 128, "Permission denied (publickey).")

        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner(clone=broken_clone).get("acme/env1", self.workdir)

        self.assertEqual(ctx.exception.stage, "fetch")
        self.assertIn("publickey", str(ctx.exception))
        self.assertFalse(self.catalog.path_for("env1").exists())

    def test_existing_lockspec_in_workdir_aborts_before_fetch(self) -> None:
        (self.workdir / "pixi.lock").write_text("mine", encoding="utf-8")

        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner().get("acme/env1", self.workdir)

        self.assertEqual(ctx.exception.stage, "check")
        self.assertEqual(self.clones, [])
        self.assertEqual((self.workdir / "pixi.lock").read_text(encoding="utf-8"), "mine")

    def test_unparseable_reference(self) -> None:
        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner().get("not a repo!", self.workdir)

        self.assertEqual(ctx.exception.stage, "resolve")
        self.assertIsInstance(ctx.exception.__cause__, ParseError)

    def test_cleanup_failure_does_not_mask_original_error(self) -> None:
        with mock.patch.object(LockSpec, "remove_and_parent", side_effect=PermissionError("locked")):
            with self.assertRaises(ProvisionError) as ctx:
                self.provisioner(FakeInstaller(fail=True)).get("acme/env1", self.workdir)

        self.assertEqual(ctx.exception.stage, "install")
        self.assertIsInstance(ctx.exception.__cause__, InstallerError)
        self.assertEqual(len(ctx.exception.rollback_failures), 1)
        self.assertIn("locked", str(ctx.exception.rollback_failures[0]))
        self.assert_workdir_clean()


class CloneTests(ProvisionTestCase):
    def test_clone_into_default_path(self) -> None:
        installer = FakeInstaller()

        result = self.provisioner(installer).clone("acme/env1", self.workdir)

        target = self.workdir / "env1"
        self.assertEqual(result.lockspec.root, target)
        self.assertEqual(installer.calls, [("install", target)])

    def test_install_failure_removes_created_directory(self) -> None:
        target = self.workdir / "custom"

        with self.assertRaises(ProvisionError):
            self.provisioner(FakeInstaller(fail=True)).clone("acme/env1", self.workdir, target)

        self.assertFalse(target.exists())

    def test_install_failure_empties_preexisting_directory(self) -> None:
        target = self.workdir / "custom"
        target.mkdir()

        with self.assertRaises(ProvisionError):
            self.provisioner(FakeInstaller(fail=True)).clone("acme/env1", self.workdir, target)

        self.assertTrue(target.is_dir())
        self.assertEqual(list(target.iterdir()), [])

    def test_non_empty_target_is_refused(self) -> None:
        target = self.workdir / "custom"
        target.mkdir()
        (target / "notes.txt").write_text("keep", encoding="utf-8")

        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner().clone("acme/env1", self.workdir, target)

        self.assertEqual(ctx.exception.stage, "fetch")
        self.assertTrue((target / "notes.txt").exists())


@mock.patch("pinenv.provision.git")
class InitTests(ProvisionTestCase):
    def test_creates_environment_and_remote(self, git) -> None:
        backend = FakeBackend()
        installer = ScaffoldingInstaller()

        result = self.provisioner(installer, backend=backend).init("env2", "acme")

        env_dir = self.catalog.path_for("env2")
        self.assertEqual(result.lockspec.root, env_dir)
        self.assertEqual(LockSpec.from_directory(env_dir).metadata_name(), "env2")
        self.assertEqual(installer.calls, [("init", env_dir), ("install-unfrozen", env_dir)])
        self.assertEqual(backend.created, [("acme", "env2")])
        git.init_repository.assert_called_once_with(env_dir)
        git.add_remote.assert_called_once_with(env_dir, "git@github.com:acme/env2.git")

    def test_existing_remote_is_refused(self, git) -> None:
        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner(ScaffoldingInstaller(), backend=FakeBackend(existing=True)).init("env2")

        self.assertEqual(ctx.exception.stage, "check")
        self.assertIn("https://github.com/fallback/env2", str(ctx.exception))
        self.assertFalse(self.catalog.path_for("env2").exists())

    def test_remote_creation_failure_removes_local_environment(self, git) -> None:
        backend = FakeBackend(create_error=BackendError("name already exists on this account"))

        with self.assertRaises(ProvisionError) as ctx:
            self.provisioner(ScaffoldingInstaller(), backend=backend).init("env2", "acme")

        self.assertEqual(ctx.exception.stage, "publish")
        self.assertFalse(self.catalog.path_for("env2").exists())


@mock.patch("pinenv.provision.git")
class PushTests(ProvisionTestCase):
    def test_pushes_main_and_tag(self, git) -> None:
        env_dir = write_lockspec(self.catalog.path_for("env1"))

        self.provisioner().push("env1", "v1")

        git.tag.assert_called_once_with(env_dir, "v1")
        git.push.assert_called_once_with(env_dir, ["refs/heads/main", "refs/tags/v1"])

    def test_without_tag_pushes_main_only(self, git) -> None:
        env_dir = write_lockspec(self.catalog.path_for("env1"))

        self.provisioner().push("env1")

        git.tag.assert_not_called()
        git.push.assert_called_once_with(env_dir, ["refs/heads/main"])


if __name__ == "__main__":
    unittest.main()
