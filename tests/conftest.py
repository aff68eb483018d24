"""Shared test fixtures and configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Sequence

import pytest

os.environ.setdefault("NODEWARDEN_ENV", "test")
os.environ.setdefault("NODEWARDEN_LOG_LEVEL", "WARNING")

from nodewarden.config import MonitorConfig, RestartPolicy, Settings


class FakeHost:
    """In-memory HostPlatform that records every mutating call."""

    def __init__(
        self,
        *,
        elevated: bool = True,
        virtualization: bool = True,
        features: Sequence[str] = (),
        wsl_ready: bool = False,
        files: Sequence[str] = (),
        firewall_rules: Sequence[str] = (),
        tasks: Sequence[str] = (),
    ) -> None:
        self.elevated = elevated
        self.virtualization = virtualization
        self.features = set(features)
        self._wsl_ready = wsl_ready
        self.files = {str(Path(f)) for f in files}
        self.firewall_rules = set(firewall_rules)
        self.tasks: dict[str, tuple[list[str], RestartPolicy]] = {t: ([], RestartPolicy()) for t in tasks}
        self.task_dirs: dict[str, Path | None] = {}
        self.calls: list[tuple] = []
        self.fail_update_wsl = False
        self.fail_register = False
        self.installer_creates: str | None = None

    def is_elevated(self) -> bool:
        return self.elevated

    def virtualization_supported(self) -> bool:
        return self.virtualization

    def feature_enabled(self, feature: str) -> bool:
        return feature in self.features

    def enable_feature(self, feature: str) -> None:
        self.calls.append(("enable_feature", feature))
        self.features.add(feature)

    def wsl_ready(self) -> bool:
        return self._wsl_ready

    def update_wsl(self) -> None:
        self.calls.append(("update_wsl",))
        if self.fail_update_wsl:
            raise RuntimeError("wsl --update exited with 1")
        self._wsl_ready = True

    def firewall_rule_exists(self, name: str) -> bool:
        return name in self.firewall_rules

    def add_firewall_rule(self, name: str, port: int, protocol: str = "TCP") -> None:
        self.calls.append(("add_firewall_rule", name, port, protocol))
        self.firewall_rules.add(name)

    def task_exists(self, name: str) -> bool:
        return name in self.tasks

    def register_task(
        self,
        name: str,
        command: Sequence[str],
        policy: RestartPolicy,
        working_directory: Path | None = None,
    ) -> None:
        self.calls.append(("register_task", name, list(command)))
        if self.fail_register:
            raise RuntimeError("Access is denied")
        self.tasks[name] = (list(command), policy)
        self.task_dirs[name] = working_directory

    def run_installer(self, installer: Path, args: Sequence[str]) -> None:
        self.calls.append(("run_installer", str(installer), list(args)))
        if self.installer_creates:
            self.files.add(str(Path(self.installer_creates)))

    def path_exists(self, path: Path) -> bool:
        return str(Path(path)) in self.files or Path(path).exists()

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Return test settings with paths under tmp_path."""
    return Settings(
        _env_file=None,
        nodewarden_env="test",
        installer_url="https://example.test/node-setup.exe",
        installer_path=str(tmp_path / "node-setup.exe"),
        app_executable=str(tmp_path / "Pi Network" / "Pi Network.exe"),
        fetch_retry_delay=0,
        log_path=str(tmp_path / "node_monitor.log"),
    )


@pytest.fixture
def monitor_config(tmp_path: Path) -> MonitorConfig:
    return MonitorConfig(log_path=tmp_path / "node_monitor.log", alerting_enabled=True)


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()
