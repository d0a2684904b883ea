"""
Shared test fixtures and configuration.
"""

from datetime import datetime
from pathlib import Path

import pytest

from sindri.core.models.settings import (
    ExtensionSettings,
    LifecycleSettings,
    Settings,
)
from sindri.core.services.extension_registry import ExtensionRegistry

SCRIPT = "#!/usr/bin/env bash\necho {name}\n"

TEMPLATES = [
    "01-turbo-flow.sh.example",
    "10-rust.sh.example",
    "20-golang.sh.example",
    "30-python.sh.example",
    "pre-network.sh.example",
    "post-cleanup.sh.example",
]


class FakeClock:
    """Deterministic clock/sleep pair for pollers."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def write_template(directory: Path, filename: str, body: str | None = None) -> Path:
    path = directory / filename
    path.write_text(body if body is not None else SCRIPT.format(name=filename))
    return path


@pytest.fixture
def ext_dir(tmp_path: Path) -> Path:
    """An extensions directory with a handful of templates."""
    directory = tmp_path / "extensions.d"
    directory.mkdir()
    for name in TEMPLATES:
        write_template(directory, name)
    return directory


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 14, 9, 26, 53)


@pytest.fixture
def registry(ext_dir: Path, fixed_now: datetime) -> ExtensionRegistry:
    return ExtensionRegistry(ext_dir, now=lambda: fixed_now)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path, ext_dir: Path) -> Settings:
    """Settings pointing at temp dirs, with instant timings."""
    return Settings(
        app_name="test-app",
        state_dir=tmp_path / ".state",
        extensions=ExtensionSettings(directory=ext_dir),
        lifecycle=LifecycleSettings(resume_timeout=10.0, poll_interval=1.0, settle_seconds=0.0),
    )


@pytest.fixture
def make_template():
    """Factory writing an extra template into a directory."""
    return write_template
