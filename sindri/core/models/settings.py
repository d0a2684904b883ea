"""
Settings model — the resolved configuration of one dev environment.

Loaded from sindri.yml (all keys optional) with environment overrides
applied by the config loader. Defaults describe the stock Fly.io image.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_APP_NAME = "sindri-dev-env"

DEFAULT_CRITICAL_PATHS = [
    "/workspace/projects",
    "/home/developer/.claude",
    "/workspace/.config",
]

DEFAULT_EXCLUDE_PATTERNS = [
    "/workspace/backups",
    "/workspace/.cache",
    "node_modules",
    ".git/objects",
    "*.log",
    "__pycache__",
    "*.tmp",
]


class SSHTarget(BaseModel):
    """Where and as whom to open a remote shell."""

    host: str
    port: int = 10022
    user: str = "developer"

    def __str__(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


class RemoteSettings(BaseModel):
    """SSH connection parameters. Empty host means ``<app_name>.fly.dev``."""

    host: str = ""
    port: int = 10022
    user: str = "developer"
    connect_timeout: int = 5


class ExtensionSettings(BaseModel):
    """Where extensions live and which prefixes are protected."""

    directory: Path = Path("extensions.d")
    protected_prefixes: list[str] = Field(default_factory=lambda: ["01", "02", "03", "04"])
    script_timeout: int = 1800


class LifecycleSettings(BaseModel):
    """Timing for suspend/resume."""

    resume_timeout: float = 120.0
    poll_interval: float = 2.0
    settle_seconds: float = 2.0


class BackupSettings(BaseModel):
    """Pre-suspend backup on the remote side."""

    directory: str = "/workspace/backups"
    critical_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_CRITICAL_PATHS))
    exclude_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    retention: int = Field(default=3, ge=1)
    dev_server_pattern: str = "npm.*start|npm.*dev|node.*server"
    editor_processes: list[str] = Field(default_factory=lambda: ["vim", "nvim"])
    term_grace_seconds: int = 2


class Settings(BaseModel):
    """Root settings — loaded from sindri.yml."""

    app_name: str = DEFAULT_APP_NAME
    machine_id: str | None = None  # None = first machine of the app
    state_dir: Path = Path(".state")

    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    extensions: ExtensionSettings = Field(default_factory=ExtensionSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)

    @property
    def ssh_target(self) -> SSHTarget:
        return SSHTarget(
            host=self.remote.host or f"{self.app_name}.fly.dev",
            port=self.remote.port,
            user=self.remote.user,
        )

    def resolve_paths(self, root: Path) -> None:
        """Anchor relative directories at the config file's directory."""
        if not self.state_dir.is_absolute():
            self.state_dir = root / self.state_dir
        if not self.extensions.directory.is_absolute():
            self.extensions.directory = root / self.extensions.directory
