"""
Tests for the extension registry — listing, activation, deactivation, batches.
"""

import os
import shutil
from pathlib import Path

import pytest

from sindri.core.errors import (
    AlreadyActive,
    DirectoryNotFound,
    LockHeld,
    NotActive,
    NotConfirmed,
    NotFound,
    ProtectedExtension,
    SindriError,
    TemplateMissing,
)
from sindri.core.persistence.lock_file import LockFile
from sindri.core.services.extension_registry import LOCK_FILENAME, ExtensionRegistry

BACKUP_NAME = "10-rust.sh.backup-20250314_092653"


def _backups(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir() if ".backup-" in p.name)


# ── Listing ──────────────────────────────────────────────────────────


class TestList:
    """Directory scan and metadata."""

    def test_sorted_by_filename(self, registry: ExtensionRegistry):
        """Extensions come back in filename order."""
        ids = [e.id for e in registry.list()]
        assert ids == ["turbo-flow", "rust", "golang", "python", "post-cleanup", "pre-network"]

    def test_empty_directory(self, tmp_path: Path):
        """An empty directory lists nothing."""
        empty = tmp_path / "empty"
        empty.mkdir()
        assert ExtensionRegistry(empty).list() == []

    def test_missing_directory(self, tmp_path: Path):
        """A missing directory is an error, not an empty list."""
        with pytest.raises(DirectoryNotFound):
            ExtensionRegistry(tmp_path / "nope").list()

    def test_orphan_listed_as_unavailable(self, registry: ExtensionRegistry, ext_dir: Path):
        """An active script with no template is an orphan."""
        (ext_dir / "50-custom.sh").write_text("echo custom\n")
        orphan = registry.get("custom")
        assert orphan.active
        assert not orphan.available
        assert orphan.orphan

    def test_ignores_backups_and_unrelated_files(self, registry: ExtensionRegistry, ext_dir: Path):
        """Backups, docs and the lock file are not extensions."""
        (ext_dir / BACKUP_NAME).write_text("old\n")
        (ext_dir / "README.md").write_text("docs\n")
        (ext_dir / LOCK_FILENAME).write_text("{}")
        assert len(registry.list()) == 6

    def test_duplicate_id_keeps_first(self, registry: ExtensionRegistry, ext_dir: Path, make_template):
        """Two files mapping to one id: the first by filename wins."""
        make_template(ext_dir, "15-rust.sh.example")
        rust = [e for e in registry.list() if e.id == "rust"]
        assert len(rust) == 1
        assert rust[0].filename == "10-rust.sh"

    def test_phase_order_and_protection(self, registry: ExtensionRegistry):
        """Prefix decides phase, order and protection."""
        by_id = {e.id: e for e in registry.list()}
        assert by_id["turbo-flow"].protected
        assert by_id["turbo-flow"].order == 1
        assert not by_id["rust"].protected
        assert by_id["rust"].order == 10
        assert by_id["pre-network"].phase == "pre"
        assert by_id["pre-network"].order is None
        assert by_id["post-cleanup"].phase == "post"
        assert by_id["golang"].phase == "install"

    def test_custom_protected_prefixes(self, ext_dir: Path):
        """Protected prefixes are configurable."""
        registry = ExtensionRegistry(ext_dir, protected_prefixes=["10"])
        by_id = {e.id: e for e in registry.list()}
        assert by_id["rust"].protected
        assert not by_id["turbo-flow"].protected

    def test_get_unknown_lists_available(self, registry: ExtensionRegistry):
        """NotFound names the id and what is available."""
        with pytest.raises(NotFound) as exc:
            registry.get("haskell")
        assert "haskell" in str(exc.value)
        assert "rust" in str(exc.value)


# ── Activation ───────────────────────────────────────────────────────


class TestActivate:
    """Single-extension activation."""

    def test_copies_template_and_sets_executable(self, registry: ExtensionRegistry, ext_dir: Path):
        """Activation copies the template and marks it executable."""
        ext = registry.activate("rust")
        active = ext_dir / "10-rust.sh"
        assert active.is_file()
        assert active.read_text() == (ext_dir / "10-rust.sh.example").read_text()
        assert os.access(active, os.X_OK)
        assert ext.runnable
        assert not ext.modified

    def test_second_activation_is_explicit_error(self, registry: ExtensionRegistry, ext_dir: Path):
        """Re-activating raises and keeps local edits."""
        registry.activate("rust")
        (ext_dir / "10-rust.sh").write_text("echo local edit\n")

        with pytest.raises(AlreadyActive):
            registry.activate("rust")

        # Local edits survive the rejected activation
        assert (ext_dir / "10-rust.sh").read_text() == "echo local edit\n"

    def test_unknown_id(self, registry: ExtensionRegistry):
        """Unknown ids raise NotFound."""
        with pytest.raises(NotFound):
            registry.activate("haskell")

    def test_orphan_has_no_template(self, registry: ExtensionRegistry, ext_dir: Path):
        """Orphans cannot be activated and are left untouched."""
        (ext_dir / "50-custom.sh").write_text("echo custom\n")
        with pytest.raises(TemplateMissing):
            registry.activate("custom")
        assert (ext_dir / "50-custom.sh").read_text() == "echo custom\n"

    def test_protected_can_be_activated(self, registry: ExtensionRegistry):
        """Protection only blocks deactivation."""
        ext = registry.activate("turbo-flow")
        assert ext.active

    def test_lock_released(self, registry: ExtensionRegistry, ext_dir: Path):
        """The directory lock is gone after the call."""
        registry.activate("rust")
        assert not (ext_dir / LOCK_FILENAME).exists()

    def test_lock_held_by_other_invocation(self, registry: ExtensionRegistry, ext_dir: Path):
        """A concurrent holder of the directory lock blocks activation."""
        with LockFile(ext_dir / LOCK_FILENAME, operation="activate"):
            with pytest.raises(LockHeld):
                registry.activate("rust")
        assert not (ext_dir / "10-rust.sh").exists()


# ── Deactivation ─────────────────────────────────────────────────────


class TestDeactivate:
    """Single-extension deactivation."""

    def test_protected_never_deactivated(self, registry: ExtensionRegistry, ext_dir: Path):
        """Protected extensions refuse even with backup and confirmation."""
        registry.activate("turbo-flow")
        with pytest.raises(ProtectedExtension):
            registry.deactivate("turbo-flow", backup=True, confirmed=True)
        assert (ext_dir / "01-turbo-flow.sh").is_file()

    def test_protected_checked_before_active(self, registry: ExtensionRegistry):
        """Protection wins over the not-active check."""
        with pytest.raises(ProtectedExtension):
            registry.deactivate("turbo-flow", confirmed=True)

    def test_not_active(self, registry: ExtensionRegistry):
        """Deactivating an inactive extension raises NotActive."""
        with pytest.raises(NotActive):
            registry.deactivate("rust", confirmed=True)

    def test_unmodified_writes_no_backup(self, registry: ExtensionRegistry, ext_dir: Path):
        """Pristine copies are removed without a backup."""
        registry.activate("rust")
        result = registry.deactivate("rust", confirmed=True)
        assert not (ext_dir / "10-rust.sh").exists()
        assert result.backup_path is None
        assert not result.modified
        assert _backups(ext_dir) == []

    def test_modified_always_backed_up(self, registry: ExtensionRegistry, ext_dir: Path):
        """Local modifications are always saved before removal."""
        registry.activate("rust")
        (ext_dir / "10-rust.sh").write_text("echo tuned\n")

        result = registry.deactivate("rust", confirmed=True)

        assert result.modified
        assert result.backup_path == ext_dir / BACKUP_NAME
        assert (ext_dir / BACKUP_NAME).read_text() == "echo tuned\n"
        assert not (ext_dir / "10-rust.sh").exists()

    def test_backup_requested_for_unmodified(self, registry: ExtensionRegistry, ext_dir: Path):
        """backup=True saves even an unmodified copy."""
        registry.activate("rust")
        result = registry.deactivate("rust", backup=True, confirmed=True)
        assert result.backup_path is not None
        assert _backups(ext_dir) == [BACKUP_NAME]

    def test_backup_name_collision(self, registry: ExtensionRegistry, ext_dir: Path):
        """An existing backup name gets a numeric suffix."""
        (ext_dir / BACKUP_NAME).write_text("earlier\n")
        registry.activate("rust")
        result = registry.deactivate("rust", backup=True, confirmed=True)
        assert result.backup_path == ext_dir / f"{BACKUP_NAME}-1"
        assert (ext_dir / BACKUP_NAME).read_text() == "earlier\n"

    def test_backup_failure_keeps_script(
        self, registry: ExtensionRegistry, ext_dir: Path, monkeypatch
    ):
        """A failed backup copy raises SindriError and removes nothing."""
        registry.activate("rust")
        (ext_dir / "10-rust.sh").write_text("echo tuned\n")

        def disk_full(src, dst, *args, **kwargs):
            Path(dst).write_text("")
            raise PermissionError("disk full")

        monkeypatch.setattr(shutil, "copy2", disk_full)

        with pytest.raises(SindriError) as exc:
            registry.deactivate("rust", confirmed=True)

        assert "rust" in str(exc.value)
        assert "disk full" in str(exc.value)
        assert "write permissions" in exc.value.remediation
        assert (ext_dir / "10-rust.sh").read_text() == "echo tuned\n"
        assert _backups(ext_dir) == []
        assert not (ext_dir / LOCK_FILENAME).exists()

    def test_unlink_failure_wrapped(self, registry: ExtensionRegistry, ext_dir: Path, monkeypatch):
        """An OSError while removing the script names the extension."""
        registry.activate("rust")

        real_unlink = Path.unlink

        def refuse(self, missing_ok=False):
            if self.name == "10-rust.sh":
                raise PermissionError("read-only file system")
            return real_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", refuse)

        with pytest.raises(SindriError, match="Failed to deactivate extension 'rust'"):
            registry.deactivate("rust", confirmed=True)

        monkeypatch.undo()
        assert (ext_dir / "10-rust.sh").is_file()

    def test_requires_confirmation(self, registry: ExtensionRegistry, ext_dir: Path):
        """Without confirmation nothing is removed."""
        registry.activate("rust")
        with pytest.raises(NotConfirmed):
            registry.deactivate("rust")
        assert (ext_dir / "10-rust.sh").is_file()

    def test_declined_prompt(self, registry: ExtensionRegistry, ext_dir: Path):
        """A declined prompt raises NotConfirmed."""
        registry.activate("rust")
        prompts: list[str] = []

        def decline(message: str) -> bool:
            prompts.append(message)
            return False

        with pytest.raises(NotConfirmed):
            registry.deactivate("rust", confirm=decline)
        assert "rust" in prompts[0]
        assert (ext_dir / "10-rust.sh").is_file()

    def test_accepted_prompt_mentions_modifications(self, registry: ExtensionRegistry, ext_dir: Path):
        """The prompt warns about local modifications."""
        registry.activate("rust")
        (ext_dir / "10-rust.sh").write_text("echo tuned\n")
        prompts: list[str] = []

        def accept(message: str) -> bool:
            prompts.append(message)
            return True

        registry.deactivate("rust", confirm=accept)
        assert "modifications" in prompts[0]
        assert not (ext_dir / "10-rust.sh").exists()


# ── Batch operations ─────────────────────────────────────────────────


class TestActivateAll:
    """Best-effort batch activation."""

    def test_activates_everything(self, registry: ExtensionRegistry):
        """Every available template is activated."""
        report = registry.activate_all()
        assert report.ok
        assert len(report.done) == 6
        assert all(e.active for e in registry.list())

    def test_skips_already_active(self, registry: ExtensionRegistry):
        """Already-active extensions are skipped."""
        registry.activate("rust")
        report = registry.activate_all()
        assert report.skipped == ["rust"]
        assert len(report.done) == 5

    def test_best_effort_on_failure(self, registry: ExtensionRegistry, ext_dir: Path, monkeypatch):
        """One failure is recorded and the rest still activate."""
        real_copyfile = shutil.copyfile

        def flaky(src, dst, *args, **kwargs):
            if Path(dst).name == "20-golang.sh":
                raise PermissionError("read-only file system")
            return real_copyfile(src, dst, *args, **kwargs)

        monkeypatch.setattr(shutil, "copyfile", flaky)

        report = registry.activate_all()

        assert not report.ok
        assert list(report.failed) == ["golang"]
        assert "read-only" in report.failed["golang"]
        assert len(report.done) == 5
        assert report.counts() == {"done": 5, "skipped": 0, "protected_skipped": 0, "failed": 1}
        assert not (ext_dir / "20-golang.sh").exists()
        assert (ext_dir / "30-python.sh").is_file()


class TestDeactivateAll:
    """Best-effort batch deactivation."""

    def test_requires_confirmation(self, registry: ExtensionRegistry, ext_dir: Path):
        """The batch needs confirmation too."""
        registry.activate_all()
        with pytest.raises(NotConfirmed):
            registry.deactivate_all()
        assert (ext_dir / "10-rust.sh").is_file()

    def test_single_prompt_for_batch(self, registry: ExtensionRegistry):
        """One prompt covers the whole batch."""
        registry.activate_all()
        prompts: list[str] = []
        registry.deactivate_all(confirm=lambda m: prompts.append(m) or True)
        assert len(prompts) == 1

    def test_skips_protected(self, registry: ExtensionRegistry, ext_dir: Path):
        """Protected extensions stay active."""
        registry.activate_all()
        report = registry.deactivate_all(confirmed=True)
        assert report.protected_skipped == ["turbo-flow"]
        assert len(report.done) == 5
        assert (ext_dir / "01-turbo-flow.sh").is_file()
        assert not (ext_dir / "10-rust.sh").exists()

    def test_inactive_and_orphans_skipped(self, registry: ExtensionRegistry, ext_dir: Path):
        """Inactive entries and orphans are reported as skipped."""
        registry.activate("rust")
        (ext_dir / "50-custom.sh").write_text("echo custom\n")
        report = registry.deactivate_all(confirmed=True)
        assert report.done == ["rust"]
        assert "custom" in report.skipped
        assert "golang" in report.skipped
        assert (ext_dir / "50-custom.sh").is_file()

    def test_modified_backed_up_in_batch(self, registry: ExtensionRegistry, ext_dir: Path):
        """Modified scripts are backed up during the batch."""
        registry.activate_all()
        (ext_dir / "10-rust.sh").write_text("echo tuned\n")
        report = registry.deactivate_all(confirmed=True)
        assert report.backups == [str(ext_dir / BACKUP_NAME)]

    def test_backup_failure_recorded(self, registry: ExtensionRegistry, ext_dir: Path, monkeypatch):
        """A failed backup marks that entry failed and the batch continues."""
        registry.activate_all()
        (ext_dir / "10-rust.sh").write_text("echo tuned\n")
        def disk_full(src, dst, *args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(shutil, "copy2", disk_full)

        report = registry.deactivate_all(confirmed=True)

        assert list(report.failed) == ["rust"]
        assert "disk full" in report.failed["rust"]
        assert len(report.done) == 4
        assert (ext_dir / "10-rust.sh").is_file()

    def test_dry_run_touches_nothing(self, registry: ExtensionRegistry, ext_dir: Path):
        """Dry run reports the plan and leaves the directory as is."""
        registry.activate_all()
        (ext_dir / "10-rust.sh").write_text("echo tuned\n")
        before = sorted(p.name for p in ext_dir.iterdir())

        report = registry.deactivate_all(dry_run=True)

        assert report.dry_run
        assert len(report.done) == 5
        assert report.backups == [str(ext_dir / BACKUP_NAME)]
        assert sorted(p.name for p in ext_dir.iterdir()) == before
