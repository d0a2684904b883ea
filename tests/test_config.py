"""
Tests for configuration loading — sindri.yml parsing, overrides, checks.
"""

import textwrap
from pathlib import Path

import pytest

from sindri.core.config.loader import ConfigError, find_config_file, load_settings
from sindri.core.use_cases.config_check import check_config


@pytest.fixture
def sindri_yml(tmp_path: Path) -> Path:
    """A sindri.yml with every section filled in."""
    content = textwrap.dedent("""\
        app_name: my-sindri
        machine_id: e784079b449483
        state_dir: .sindri

        remote:
          host: dev.example.com
          port: 2222

        extensions:
          directory: docker/lib/extensions.d
          protected_prefixes: ["01", "02"]

        lifecycle:
          resume_timeout: 60
          poll_interval: 3

        backup:
          retention: 5
          critical_paths:
            - /workspace/projects
    """)
    path = tmp_path / "sindri.yml"
    path.write_text(content)
    return path


class TestLoadSettings:
    """sindri.yml loading and environment overrides."""

    def test_full_file(self, sindri_yml: Path, tmp_path: Path):
        """Every section is read from the file."""
        settings = load_settings(sindri_yml, environ={})

        assert settings.app_name == "my-sindri"
        assert settings.machine_id == "e784079b449483"
        assert settings.ssh_target.host == "dev.example.com"
        assert settings.ssh_target.port == 2222
        assert settings.extensions.protected_prefixes == ["01", "02"]
        assert settings.lifecycle.resume_timeout == 60
        assert settings.backup.retention == 5

    def test_relative_paths_anchored_at_file(self, sindri_yml: Path, tmp_path: Path):
        """Relative paths resolve against the file's directory."""
        settings = load_settings(sindri_yml, environ={})
        assert settings.state_dir == tmp_path.resolve() / ".sindri"
        assert settings.extensions.directory == tmp_path.resolve() / "docker/lib/extensions.d"

    def test_no_file_uses_defaults(self, tmp_path: Path, monkeypatch):
        """Without a file the defaults apply."""
        monkeypatch.chdir(tmp_path)
        settings = load_settings(environ={})
        assert settings.app_name == "sindri-dev-env"
        assert settings.extensions.protected_prefixes == ["01", "02", "03", "04"]
        assert settings.lifecycle.resume_timeout == 120
        assert settings.backup.retention == 3
        assert settings.extensions.directory == tmp_path.resolve() / "extensions.d"

    def test_empty_file(self, tmp_path: Path):
        """An empty file is the defaults."""
        path = tmp_path / "sindri.yml"
        path.write_text("")
        assert load_settings(path, environ={}).app_name == "sindri-dev-env"

    def test_environment_overrides(self, sindri_yml: Path, tmp_path: Path):
        """Environment wins over the file for mapped keys."""
        settings = load_settings(sindri_yml, environ={
            "APP_NAME": "from-env",
            "SINDRI_EXTENSIONS_DIR": "/opt/extensions.d",
            "SINDRI_REMOTE_PORT": "10022",
        })
        assert settings.app_name == "from-env"
        assert settings.extensions.directory == Path("/opt/extensions.d")
        assert settings.remote.port == 10022
        # untouched keys keep file values
        assert settings.remote.host == "dev.example.com"

    def test_override_without_section(self, tmp_path: Path):
        """Overrides create missing sections."""
        path = tmp_path / "sindri.yml"
        path.write_text("app_name: x\n")
        settings = load_settings(path, environ={"SINDRI_REMOTE_USER": "root"})
        assert settings.remote.user == "root"

    def test_override_into_null_section(self, tmp_path: Path):
        """Overrides fill a section left empty in YAML."""
        path = tmp_path / "sindri.yml"
        path.write_text("app_name: x\nremote:\n")
        settings = load_settings(path, environ={"SINDRI_REMOTE_HOST": "dev.example.com"})
        assert settings.remote.host == "dev.example.com"

    def test_override_into_scalar_section(self, tmp_path: Path):
        """Overrides into a scalar section are a config error."""
        path = tmp_path / "sindri.yml"
        path.write_text("app_name: x\nremote: 5\n")
        with pytest.raises(ConfigError, match="'remote' must be a mapping"):
            load_settings(path, environ={"SINDRI_REMOTE_HOST": "dev.example.com"})

    def test_missing_explicit_file(self, tmp_path: Path):
        """An explicit path must exist."""
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml", environ={})

    def test_invalid_yaml(self, tmp_path: Path):
        """Malformed YAML is a config error."""
        path = tmp_path / "sindri.yml"
        path.write_text("app_name: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path, environ={})

    def test_not_a_mapping(self, tmp_path: Path):
        """A top-level list is a config error."""
        path = tmp_path / "sindri.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path, environ={})

    def test_schema_violation(self, tmp_path: Path):
        """Out-of-range values are a config error."""
        path = tmp_path / "sindri.yml"
        path.write_text("backup:\n  retention: 0\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_settings(path, environ={})


class TestFindConfigFile:
    """Config discovery."""

    def test_walks_up(self, sindri_yml: Path, tmp_path: Path):
        """Discovery walks up parent directories."""
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == sindri_yml.resolve()

    def test_not_found(self, tmp_path: Path):
        """Nothing found below tmp_path."""
        found = find_config_file(tmp_path)
        assert found is None or tmp_path.resolve() not in found.parents


class TestCheckConfig:
    """Validation report."""

    def test_valid_with_warnings(self, sindri_yml: Path):
        """Missing directories warn but stay valid."""
        result = check_config(sindri_yml, environ={})
        assert result.valid
        assert result.errors == []
        assert any("Extensions directory does not exist" in w for w in result.warnings)

    def test_existing_directory_not_warned(self, sindri_yml: Path, tmp_path: Path):
        """An existing directory raises no warning."""
        (tmp_path / "docker/lib/extensions.d").mkdir(parents=True)
        result = check_config(sindri_yml, environ={})
        assert not any("Extensions directory" in w for w in result.warnings)

    def test_suspicious_values(self, tmp_path: Path):
        """Odd but legal values produce warnings."""
        path = tmp_path / "sindri.yml"
        path.write_text(textwrap.dedent("""\
            extensions:
              protected_prefixes: []
            lifecycle:
              resume_timeout: 5
              poll_interval: 10
            backup:
              critical_paths: []
        """))
        result = check_config(path, environ={})
        assert result.valid
        text = " ".join(result.warnings)
        assert "No protected prefixes" in text
        assert "poll_interval" in text
        assert "critical_paths" in text

    def test_invalid(self, tmp_path: Path):
        """Invalid config reports errors and no settings."""
        path = tmp_path / "sindri.yml"
        path.write_text("lifecycle: nope\n")
        result = check_config(path, environ={})
        assert not result.valid
        assert result.errors
        assert result.to_dict()["settings"] is None

    def test_to_dict(self, sindri_yml: Path):
        """Report serializes with resolved settings."""
        data = check_config(sindri_yml, environ={}).to_dict()
        assert data["valid"] is True
        assert data["config_path"] == str(sindri_yml)
        assert data["settings"]["app_name"] == "my-sindri"
        assert data["settings"]["remote"]["port"] == 2222
