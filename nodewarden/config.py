"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INSTALLER_URL = "https://downloads.minepi.com/Pi%20Network%20Setup%200.5.2.exe"
DEFAULT_APP_EXECUTABLE = r"C:\Program Files\Pi Network\Pi Network.exe"
DEFAULT_INSTALLER_PATH = r"C:\Windows\Temp\pi-node-setup.exe"


class RestartPolicy(BaseModel):
    """Restart behaviour attached to an auto-start registration."""

    model_config = ConfigDict(frozen=True)

    max_restarts: int = Field(default=3, ge=0)
    restart_interval: int = Field(default=1, ge=1)  # minutes


class FetchPolicy(BaseModel):
    """Bounds for a single artifact download."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=5.0, ge=0)
    timeout: float = Field(default=300.0, gt=0)


class MonitorConfig(BaseModel):
    """Immutable configuration handed to the monitor at construction."""

    model_config = ConfigDict(frozen=True)

    poll_interval: float = Field(default=60.0, gt=0)
    cpu_threshold_pct: float = 80.0
    ram_threshold_mb: float = 500.0
    alerting_enabled: bool = False
    alert_dedupe: bool = False
    restore_address_baseline: bool = False
    log_path: Path = Path("logs/node_monitor.log")
    address_lookup_url: str = "https://api.ipify.org"
    address_lookup_timeout: float = Field(default=10.0, gt=0)

    # Alert transports
    smtp_server: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    alert_email_from: str = ""
    alert_email_to: str = ""
    alert_webhook_url: str = ""

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_server and self.alert_email_to)


class Settings(BaseSettings):
    """Application-wide settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    nodewarden_env: str = "development"
    nodewarden_log_level: str = "INFO"
    nodewarden_log_file: str = "logs/nodewarden.log"
    monitor_log_file: str = "logs/nodewarden-monitor.log"
    nodewarden_log_max_bytes: int = Field(default=5 * 1024 * 1024, ge=0)
    nodewarden_log_backups: int = Field(default=5, ge=0)

    # ── Provisioning ─────────────────────────────────────────────────
    installer_url: str = DEFAULT_INSTALLER_URL
    installer_path: str = DEFAULT_INSTALLER_PATH
    installer_args: str = "/S"
    app_executable: str = DEFAULT_APP_EXECUTABLE
    max_fetch_attempts: int = Field(default=3, ge=1)
    fetch_retry_delay: float = Field(default=5.0, ge=0)
    fetch_timeout: float = Field(default=300.0, gt=0)
    port_range_start: int = Field(default=31400, ge=1, le=65535)
    port_range_end: int = Field(default=31409, ge=1, le=65535)
    autostart_task_name: str = "PiNodeAutoStart"
    monitor_task_name: str = "PiNodeMonitor"
    restart_max_restarts: int = Field(default=3, ge=0)
    restart_interval_minutes: int = Field(default=1, ge=1)

    # ── Monitoring ───────────────────────────────────────────────────
    poll_interval: float = Field(default=60.0, gt=0)
    cpu_threshold_pct: float = 80.0
    ram_threshold_mb: float = 500.0
    alerting_enabled: bool = False
    alert_dedupe: bool = False
    restore_address_baseline: bool = False
    log_path: str = "logs/node_monitor.log"
    address_lookup_url: str = "https://api.ipify.org"
    address_lookup_timeout: float = Field(default=10.0, gt=0)

    # ── Alerts (SMTP / webhook) ──────────────────────────────────────
    smtp_server: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    alert_email_from: str = ""
    alert_email_to: str = ""
    alert_webhook_url: str = ""

    @model_validator(mode="after")
    def _check_port_range(self) -> "Settings":
        if self.port_range_end < self.port_range_start:
            raise ValueError(
                f"port_range_end ({self.port_range_end}) is below "
                f"port_range_start ({self.port_range_start})"
            )
        return self

    # ── Derived ──────────────────────────────────────────────────────
    @property
    def ports(self) -> list[int]:
        """Inbound TCP ports the node needs reachable."""
        return list(range(self.port_range_start, self.port_range_end + 1))

    def fetch_policy(self) -> FetchPolicy:
        return FetchPolicy(
            max_attempts=self.max_fetch_attempts,
            retry_delay=self.fetch_retry_delay,
            timeout=self.fetch_timeout,
        )

    def restart_policy(self) -> RestartPolicy:
        return RestartPolicy(
            max_restarts=self.restart_max_restarts,
            restart_interval=self.restart_interval_minutes,
        )

    def monitor_config(self) -> MonitorConfig:
        """Freeze the monitoring-related settings into a MonitorConfig."""
        return MonitorConfig(
            poll_interval=self.poll_interval,
            cpu_threshold_pct=self.cpu_threshold_pct,
            ram_threshold_mb=self.ram_threshold_mb,
            alerting_enabled=self.alerting_enabled,
            alert_dedupe=self.alert_dedupe,
            restore_address_baseline=self.restore_address_baseline,
            log_path=Path(self.log_path),
            address_lookup_url=self.address_lookup_url,
            address_lookup_timeout=self.address_lookup_timeout,
            smtp_server=self.smtp_server,
            smtp_port=self.smtp_port,
            smtp_username=self.smtp_username,
            smtp_password=self.smtp_password,
            smtp_use_tls=self.smtp_use_tls,
            alert_email_from=self.alert_email_from,
            alert_email_to=self.alert_email_to,
            alert_webhook_url=self.alert_webhook_url,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
