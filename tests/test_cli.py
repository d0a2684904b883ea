"""
Tests for CLI commands — global options, config, extensions, lifecycle.
"""

import json
import shutil
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from sindri.main import cli


@pytest.fixture
def config_file(tmp_path: Path, ext_dir: Path) -> Path:
    """sindri.yml pointing at the temp extensions directory."""
    content = textwrap.dedent(f"""\
        app_name: cli-test
        state_dir: {tmp_path / ".state"}
        extensions:
          directory: {ext_dir}
        lifecycle:
          resume_timeout: 5
          poll_interval: 1
          settle_seconds: 0
    """)
    path = tmp_path / "sindri.yml"
    path.write_text(content)
    return path


@pytest.fixture
def invoke(config_file: Path):
    runner = CliRunner()

    def _invoke(*args: str, input: str | None = None):
        return runner.invoke(cli, ["--config", str(config_file), *args], input=input)

    return _invoke


class TestCLIGlobal:
    """Root group options."""

    def test_help(self):
        """Help lists both command groups."""
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Sindri" in result.output
        assert "extension" in result.output
        assert "lifecycle" in result.output

    def test_version(self):
        """--version prints the package version."""
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestConfigCheck:
    """'config check' command."""

    def test_valid(self, invoke):
        """A valid file reports success and the app name."""
        result = invoke("config", "check")
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "cli-test" in result.output

    def test_json(self, invoke):
        """JSON output carries the resolved settings."""
        result = invoke("config", "check", "--json")
        data = json.loads(result.stdout)
        assert data["valid"] is True
        assert data["settings"]["app_name"] == "cli-test"

    def test_invalid(self, tmp_path: Path):
        """Schema errors exit 1."""
        path = tmp_path / "bad.yml"
        path.write_text("lifecycle: [1, 2]\n")
        result = CliRunner().invoke(cli, ["--config", str(path), "config", "check"])
        assert result.exit_code == 1
        assert "Configuration errors" in result.output

    def test_bad_config_fails_other_commands(self, tmp_path: Path):
        """Unparseable YAML fails every command with ConfigError."""
        path = tmp_path / "bad.yml"
        path.write_text("not: [valid\n")
        result = CliRunner().invoke(cli, ["--config", str(path), "extension", "list", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["kind"] == "ConfigError"


class TestExtensionCommands:
    """'extension' command group."""

    def test_list(self, invoke):
        """Human listing shows the active count."""
        result = invoke("extension", "list")
        assert result.exit_code == 0
        assert "0/6 active" in result.output
        assert "rust" in result.output

    def test_list_json(self, invoke):
        """JSON listing is in filename order."""
        result = invoke("extension", "list", "--json")
        data = json.loads(result.stdout)
        assert [e["id"] for e in data][:2] == ["turbo-flow", "rust"]

    def test_activate(self, invoke, ext_dir: Path):
        """Activate creates the active script."""
        result = invoke("extension", "activate", "rust")
        assert result.exit_code == 0
        assert "activated" in result.output
        assert (ext_dir / "10-rust.sh").is_file()

    def test_activate_unknown(self, invoke):
        """Unknown id exits 1 with a hint."""
        result = invoke("extension", "activate", "cobol")
        assert result.exit_code == 1
        assert "cobol" in result.output
        assert "💡" in result.output

    def test_activate_twice_json(self, invoke):
        """Second activation reports AlreadyActive."""
        invoke("extension", "activate", "rust")
        result = invoke("extension", "activate", "rust", "--json")
        assert result.exit_code == 1
        assert json.loads(result.stdout)["kind"] == "AlreadyActive"

    def test_deactivate_with_prompt(self, invoke, ext_dir: Path):
        """Accepting the prompt removes the script."""
        invoke("extension", "activate", "rust")
        result = invoke("extension", "deactivate", "rust", input="y\n")
        assert result.exit_code == 0
        assert not (ext_dir / "10-rust.sh").exists()

    def test_deactivate_declined(self, invoke, ext_dir: Path):
        """Declining the prompt keeps the script."""
        invoke("extension", "activate", "rust")
        result = invoke("extension", "deactivate", "rust", input="n\n")
        assert result.exit_code == 1
        assert (ext_dir / "10-rust.sh").exists()

    def test_deactivate_protected(self, invoke):
        """Protected extensions are refused."""
        invoke("extension", "activate", "turbo-flow")
        result = invoke("extension", "deactivate", "turbo-flow", "--yes", "--json")
        assert result.exit_code == 1
        assert json.loads(result.stdout)["kind"] == "ProtectedExtension"

    def test_deactivate_backup(self, invoke, ext_dir: Path):
        """--backup reports the backup path."""
        invoke("extension", "activate", "rust")
        result = invoke("extension", "deactivate", "rust", "--yes", "--backup", "--json")
        data = json.loads(result.stdout)
        assert data["backup_path"]
        assert Path(data["backup_path"]).is_file()

    def test_deactivate_backup_failure(self, invoke, ext_dir: Path, tmp_path: Path, monkeypatch):
        """A failed backup copy exits 1 with the id and a hint."""
        invoke("extension", "activate", "rust")
        (ext_dir / "10-rust.sh").write_text("echo tuned\n")

        def disk_full(src, dst, *args, **kwargs):
            raise PermissionError("disk full")

        monkeypatch.setattr(shutil, "copy2", disk_full)
        result = invoke("extension", "deactivate", "rust", "--yes")

        assert result.exit_code == 1
        assert not isinstance(result.exception, PermissionError)
        assert "❌ Failed to deactivate extension 'rust'" in result.output
        assert "💡 Check write permissions" in result.output
        assert (ext_dir / "10-rust.sh").is_file()
        entry = json.loads((tmp_path / ".state" / "audit.ndjson").read_text().splitlines()[-1])
        assert entry["status"] == "failed"

    def test_activate_all_then_deactivate_all(self, invoke, ext_dir: Path):
        """Batch commands skip protected extensions."""
        result = invoke("extension", "activate-all", "--json")
        assert result.exit_code == 0
        assert len(json.loads(result.stdout)["done"]) == 6

        result = invoke("extension", "deactivate-all", "--yes", "--json")
        data = json.loads(result.stdout)
        assert result.exit_code == 0
        assert data["protected_skipped"] == ["turbo-flow"]
        assert (ext_dir / "01-turbo-flow.sh").exists()
        assert not (ext_dir / "10-rust.sh").exists()

    def test_deactivate_all_dry_run(self, invoke, ext_dir: Path):
        """Dry run touches nothing."""
        invoke("extension", "activate", "rust")
        result = invoke("extension", "deactivate-all", "--dry-run")
        assert result.exit_code == 0
        assert "[dry-run]" in result.output
        assert (ext_dir / "10-rust.sh").exists()

    def test_mutations_are_audited(self, invoke, tmp_path: Path):
        """Successes and failures both land in the ledger."""
        invoke("extension", "activate", "rust")
        invoke("extension", "activate", "cobol")
        lines = (tmp_path / ".state" / "audit.ndjson").read_text().splitlines()
        statuses = [(json.loads(l)["target"], json.loads(l)["status"]) for l in lines]
        assert statuses == [("rust", "ok"), ("cobol", "failed")]

    def test_run_nothing_active(self, invoke):
        """Running with nothing active is a no-op."""
        result = invoke("extension", "run", "--phase", "install")
        assert result.exit_code == 0
        assert "no active extensions" in result.output

    @pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")
    def test_run_failure_exits_1(self, invoke, ext_dir: Path, make_template):
        """A failing script exits 1 with its exit code in the report."""
        make_template(ext_dir, "40-broken.sh.example", "#!/usr/bin/env bash\nexit 4\n")
        invoke("extension", "activate", "broken")
        result = invoke("extension", "run", "--phase", "install", "--json")
        data = json.loads(result.stdout)
        assert result.exit_code == 1
        assert data["ok"] is False
        assert data["phases"][0]["entries"][0]["exit_code"] == 4


class TestLifecycleCommands:
    """'lifecycle' command group against the mocks."""

    def test_status_mock(self, invoke):
        """Status shows state and cost."""
        result = invoke("lifecycle", "status", "--mock")
        assert result.exit_code == 0
        assert "cli-test: STARTED" in result.output
        assert "Cost estimate" in result.output

    def test_status_json(self, invoke):
        """JSON status carries the cost estimate."""
        result = invoke("lifecycle", "status", "--mock", "--json")
        data = json.loads(result.stdout)
        assert data["state"] == "started"
        assert data["cost"]["monthly_volume"] == 1.5

    def test_suspend_confirmed(self, invoke):
        """Confirmed suspend reports the backup archive."""
        result = invoke("lifecycle", "suspend", "--mock", input="y\n")
        assert result.exit_code == 0
        assert "suspended" in result.output
        assert "suspend_backup_" in result.output

    def test_suspend_declined(self, invoke):
        """Declined suspend exits 1."""
        result = invoke("lifecycle", "suspend", "--mock", input="n\n")
        assert result.exit_code == 1
        assert "Not confirmed" in result.output

    def test_suspend_force_json(self, invoke):
        """--force --skip-backup stops without a snapshot."""
        result = invoke("lifecycle", "suspend", "--mock", "--force", "--skip-backup", "--json")
        data = json.loads(result.stdout)
        assert data["changed"] is True
        assert data["final_state"] == "stopped"
        assert data["snapshot"] is None

    def test_resume_already_running(self, invoke):
        """Resume of a started machine is a no-op."""
        result = invoke("lifecycle", "resume", "--mock")
        assert result.exit_code == 0
        assert "already running" in result.output
        assert "No tmux sessions found" in result.output

    def test_resume_json(self, invoke):
        """--skip-verification leaves verification empty."""
        result = invoke("lifecycle", "resume", "--mock", "--skip-verification", "--json")
        data = json.loads(result.stdout)
        assert data["final_state"] == "started"
        assert data["verification"] == {}

    def test_backups_empty(self, invoke):
        """No backups on a fresh mock."""
        result = invoke("lifecycle", "backups", "--mock")
        assert result.exit_code == 0
        assert "No backups found" in result.output

    def test_restore_unknown_archive(self, invoke):
        """Restoring a missing archive is NotFound."""
        result = invoke("lifecycle", "restore", "nope.tar.gz", "--mock", "--yes", "--json")
        assert result.exit_code == 1
        assert json.loads(result.stdout)["kind"] == "NotFound"

    def test_lifecycle_audited(self, invoke, tmp_path: Path):
        """Lifecycle operations are audited."""
        invoke("lifecycle", "suspend", "--mock", "--force")
        entry = json.loads((tmp_path / ".state" / "audit.ndjson").read_text().splitlines()[-1])
        assert entry["operation_type"] == "suspend"
        assert entry["status"] == "ok"
