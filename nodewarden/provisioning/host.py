"""Host collaborators: the OS capabilities the provisioning steps consume.

The orchestrator only sees ``HostPlatform``. ``WindowsHost`` backs it with
PowerShell, DISM, netsh and wsl; tests use in-memory fakes.
"""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence

from nodewarden.config import RestartPolicy
from nodewarden.errors import HostCommandError
from nodewarden.logging_config import get_logger

logger = get_logger(__name__)

# DISM exit code meaning "succeeded, restart required"
DISM_RESTART_REQUIRED = 3010


class HostPlatform(Protocol):
    """External OS capabilities used by the step catalogue."""

    def is_elevated(self) -> bool: ...

    def virtualization_supported(self) -> bool: ...

    def feature_enabled(self, feature: str) -> bool: ...

    def enable_feature(self, feature: str) -> None: ...

    def wsl_ready(self) -> bool: ...

    def update_wsl(self) -> None: ...

    def firewall_rule_exists(self, name: str) -> bool: ...

    def add_firewall_rule(self, name: str, port: int, protocol: str = "TCP") -> None: ...

    def task_exists(self, name: str) -> bool: ...

    def register_task(
        self,
        name: str,
        command: Sequence[str],
        policy: RestartPolicy,
        working_directory: Optional[Path] = None,
    ) -> None: ...

    def run_installer(self, installer: Path, args: Sequence[str]) -> None: ...

    def path_exists(self, path: Path) -> bool: ...


def run_command(
    argv: Sequence[str],
    *,
    check: bool = True,
    ok_codes: Sequence[int] = (0,),
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """Run a command with consistent logging; raise on unexpected exit codes."""
    argv = list(argv)
    logger.debug("host_command", argv=" ".join(shlex.quote(a) for a in argv))
    try:
        result = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as exc:
        raise HostCommandError(argv, 127, str(exc)) from exc
    except subprocess.TimeoutExpired as exc:
        raise HostCommandError(argv, -1, f"timed out after {timeout}s") from exc

    if check and result.returncode not in ok_codes:
        raise HostCommandError(argv, result.returncode, result.stderr or result.stdout)
    return result


def _powershell(script: str) -> list[str]:
    return ["powershell.exe", "-NoProfile", "-NonInteractive", "-Command", script]


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class WindowsHost:
    """HostPlatform implementation for Windows 10/11."""

    def is_elevated(self) -> bool:
        result = run_command(
            _powershell(
                "([Security.Principal.WindowsPrincipal]"
                "[Security.Principal.WindowsIdentity]::GetCurrent())"
                ".IsInRole([Security.Principal.WindowsBuiltInRole]::Administrator)"
            ),
            check=False,
        )
        return result.returncode == 0 and result.stdout.strip().lower() == "true"

    def virtualization_supported(self) -> bool:
        # A running hypervisor hides the firmware flag, so either signal counts.
        result = run_command(
            _powershell(
                "$p = Get-CimInstance Win32_Processor | Select-Object -First 1; "
                "$cs = Get-CimInstance Win32_ComputerSystem; "
                "[bool]($p.VirtualizationFirmwareEnabled -or $cs.HypervisorPresent)"
            ),
            check=False,
        )
        return result.returncode == 0 and result.stdout.strip().lower() == "true"

    def feature_enabled(self, feature: str) -> bool:
        result = run_command(
            ["dism.exe", "/online", "/get-featureinfo", f"/featurename:{feature}"],
            check=False,
        )
        if result.returncode != 0:
            return False
        for line in result.stdout.splitlines():
            key, _, value = line.partition(":")
            if key.strip().lower() == "state":
                return value.strip().lower() == "enabled"
        return False

    def enable_feature(self, feature: str) -> None:
        run_command(
            ["dism.exe", "/online", "/enable-feature", f"/featurename:{feature}", "/all", "/norestart"],
            ok_codes=(0, DISM_RESTART_REQUIRED),
        )
        logger.info("feature_enabled", feature=feature)

    def wsl_ready(self) -> bool:
        return run_command(["wsl.exe", "--status"], check=False).returncode == 0

    def update_wsl(self) -> None:
        run_command(["wsl.exe", "--update"], timeout=600)

    def firewall_rule_exists(self, name: str) -> bool:
        result = run_command(
            ["netsh", "advfirewall", "firewall", "show", "rule", f"name={name}"],
            check=False,
        )
        return result.returncode == 0

    def add_firewall_rule(self, name: str, port: int, protocol: str = "TCP") -> None:
        run_command([
            "netsh", "advfirewall", "firewall", "add", "rule",
            f"name={name}", "dir=in", "action=allow",
            f"protocol={protocol}", f"localport={port}",
        ])

    def task_exists(self, name: str) -> bool:
        return run_command(["schtasks.exe", "/query", "/tn", name], check=False).returncode == 0

    def register_task(
        self,
        name: str,
        command: Sequence[str],
        policy: RestartPolicy,
        working_directory: Optional[Path] = None,
    ) -> None:
        executable, *args = command
        arg_clause = f" -Argument {_ps_quote(subprocess.list2cmdline(args))}" if args else ""
        # Without it the task starts in system32 and misses the project .env
        if working_directory is not None:
            arg_clause += f" -WorkingDirectory {_ps_quote(str(working_directory))}"
        script = (
            f"$action = New-ScheduledTaskAction -Execute {_ps_quote(executable)}{arg_clause}; "
            "$trigger = New-ScheduledTaskTrigger -AtLogOn; "
            f"$settings = New-ScheduledTaskSettingsSet -RestartCount {policy.max_restarts} "
            f"-RestartInterval (New-TimeSpan -Minutes {policy.restart_interval}) "
            "-ExecutionTimeLimit ([TimeSpan]::Zero) -StartWhenAvailable; "
            f"Register-ScheduledTask -TaskName {_ps_quote(name)} -Action $action "
            "-Trigger $trigger -Settings $settings -RunLevel Highest | Out-Null"
        )
        run_command(_powershell(script))

    def run_installer(self, installer: Path, args: Sequence[str]) -> None:
        run_command([str(installer), *args], timeout=1800)

    def path_exists(self, path: Path) -> bool:
        return path.exists()
