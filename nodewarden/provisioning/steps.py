"""The fixed provisioning sequence for the node client.

Order matters: the kernel features come before anything that runs on top
of them, and each one halts the run for a reboot when it gets enabled.
"""

from __future__ import annotations

import shlex
import sys
from pathlib import Path
from typing import Optional

from nodewarden.config import Settings
from nodewarden.errors import StepActionError
from nodewarden.logging_config import get_logger
from nodewarden.provisioning.fetcher import RetryableFetcher
from nodewarden.provisioning.host import HostPlatform
from nodewarden.provisioning.models import CheckResult, ProvisioningStep, StepEffect
from nodewarden.provisioning.supervision import SupervisionRegistrar

logger = get_logger(__name__)

WSL_FEATURE = "Microsoft-Windows-Subsystem-Linux"
VM_PLATFORM_FEATURE = "VirtualMachinePlatform"
FIREWALL_RULE_PREFIX = "Pi Node TCP"


def firewall_rule_name(port: int) -> str:
    return f"{FIREWALL_RULE_PREFIX} {port}"


def monitor_command(log_path: Optional[Path] = None) -> list[str]:
    """Command line that launches the standalone monitor process."""
    command = [sys.executable, "-m", "nodewarden.monitor", "run"]
    if log_path is not None:
        command += ["--log", str(log_path)]
    return command


def _verify_only(name: str):
    """Action for pure verification steps, which never report NEEDS_ACTION."""
    def action() -> None:
        raise StepActionError(name, "verification step has no remedial action")
    return action


def _feature_step(host: HostPlatform, name: str, feature: str) -> ProvisioningStep:
    def check() -> CheckResult:
        if host.feature_enabled(feature):
            return CheckResult.satisfied(f"{feature} enabled")
        return CheckResult.needs_action(f"{feature} disabled")

    return ProvisioningStep(
        name=name,
        check=check,
        action=lambda: host.enable_feature(feature),
        effect=StepEffect.REQUIRES_REBOOT,
        description=f"Enable the {feature} Windows feature",
    )


def build_steps(
    settings: Settings,
    host: HostPlatform,
    fetcher: RetryableFetcher,
) -> list[ProvisioningStep]:
    """Assemble the ordered step list from settings and collaborators."""
    app_executable = Path(settings.app_executable)
    installer_path = Path(settings.installer_path)
    policy = settings.restart_policy()
    fetch_policy = settings.fetch_policy()
    # Scheduled tasks resolve .env and relative paths from here
    project_dir = Path.cwd()
    sample_log_path = project_dir / settings.log_path
    node_registrar = SupervisionRegistrar(host, settings.autostart_task_name)
    monitor_registrar = SupervisionRegistrar(host, settings.monitor_task_name)

    # ── Hard requirements ──────────────────────────────────────────────

    def check_elevation() -> CheckResult:
        if host.is_elevated():
            return CheckResult.satisfied("running with administrator privileges")
        return CheckResult.blocked("administrator privileges are required; re-run from an elevated shell")

    def check_virtualization() -> CheckResult:
        if host.virtualization_supported():
            return CheckResult.satisfied("hardware virtualization available")
        return CheckResult.blocked("hardware virtualization is disabled or unsupported; enable it in firmware")

    # ── WSL kernel ─────────────────────────────────────────────────────

    def check_wsl() -> CheckResult:
        if host.wsl_ready():
            return CheckResult.satisfied("wsl reports a working installation")
        return CheckResult.needs_action("wsl kernel missing or outdated")

    # ── Node application ───────────────────────────────────────────────

    def check_download() -> CheckResult:
        if host.path_exists(app_executable):
            return CheckResult.satisfied("node application already installed")
        if host.path_exists(installer_path):
            return CheckResult.satisfied(f"installer present at {installer_path}")
        return CheckResult.needs_action("installer not downloaded")

    def download() -> None:
        result = fetcher.fetch(
            settings.installer_url,
            installer_path,
            max_attempts=fetch_policy.max_attempts,
            per_attempt_timeout=fetch_policy.timeout,
            retry_delay=fetch_policy.retry_delay,
        )
        result.raise_if_exhausted()

    def check_install() -> CheckResult:
        if host.path_exists(app_executable):
            return CheckResult.satisfied(f"{app_executable} present")
        return CheckResult.needs_action("node application not installed")

    def install() -> None:
        if not host.path_exists(installer_path):
            raise StepActionError("install_node_app", f"installer missing at {installer_path}")
        host.run_installer(installer_path, shlex.split(settings.installer_args))
        if not host.path_exists(app_executable):
            raise StepActionError("install_node_app", f"installer finished but {app_executable} is missing")

    # ── Firewall ───────────────────────────────────────────────────────

    def missing_ports() -> list[int]:
        return [p for p in settings.ports if not host.firewall_rule_exists(firewall_rule_name(p))]

    def check_firewall() -> CheckResult:
        missing = missing_ports()
        if not missing:
            return CheckResult.satisfied(f"ports {settings.port_range_start}-{settings.port_range_end} open")
        return CheckResult.needs_action(f"{len(missing)} port rule(s) missing")

    def open_ports() -> None:
        for port in missing_ports():
            host.add_firewall_rule(firewall_rule_name(port), port, "TCP")
            logger.info("firewall_rule_added", port=port)

    # ── Supervision ────────────────────────────────────────────────────

    def registration_check(registrar: SupervisionRegistrar) -> CheckResult:
        if registrar.is_registered():
            return CheckResult.satisfied(f"task '{registrar.task_name}' registered")
        return CheckResult.needs_action(f"task '{registrar.task_name}' missing")

    return [
        ProvisioningStep(
            name="administrator_privileges",
            check=check_elevation,
            action=_verify_only("administrator_privileges"),
            description="Verify the run is elevated",
        ),
        ProvisioningStep(
            name="virtualization_support",
            check=check_virtualization,
            action=_verify_only("virtualization_support"),
            description="Verify hardware virtualization is available",
        ),
        _feature_step(host, "wsl_feature", WSL_FEATURE),
        _feature_step(host, "virtual_machine_platform", VM_PLATFORM_FEATURE),
        ProvisioningStep(
            name="wsl_kernel_update",
            check=check_wsl,
            action=host.update_wsl,
            soft=True,
            description="Install or update the WSL kernel (best effort)",
        ),
        ProvisioningStep(
            name="download_installer",
            check=check_download,
            action=download,
            description="Download the node installer",
        ),
        ProvisioningStep(
            name="install_node_app",
            check=check_install,
            action=install,
            description="Run the node installer",
        ),
        ProvisioningStep(
            name="firewall_ports",
            check=check_firewall,
            action=open_ports,
            description="Allow inbound TCP on the node port range",
        ),
        ProvisioningStep(
            name="node_autostart",
            check=lambda: registration_check(node_registrar),
            action=lambda: node_registrar.require_auto_start(
                app_executable, policy, app_executable.parent,
            ),
            soft=True,
            description="Start the node at logon and restart it on failure",
        ),
        ProvisioningStep(
            name="monitor_autostart",
            check=lambda: registration_check(monitor_registrar),
            action=lambda: monitor_registrar.require_auto_start(
                monitor_command(sample_log_path), policy, project_dir,
            ),
            soft=True,
            description="Run the health monitor as its own long-lived process",
        ),
    ]
