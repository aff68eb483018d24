"""Auto-start registration with a restart policy.

Registration is keyed by a stable task name so repeated provisioning runs
find the existing entry instead of stacking duplicates.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

from nodewarden.config import RestartPolicy
from nodewarden.errors import RegistrationError
from nodewarden.logging_config import get_logger
from nodewarden.provisioning.host import HostPlatform

logger = get_logger(__name__)


class RegistrationStatus(Enum):
    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"
    REGISTRATION_FAILED = "registration_failed"


class SupervisionRegistrar:
    """Registers a command to start at logon and restart when it dies."""

    def __init__(self, host: HostPlatform, task_name: str) -> None:
        self._host = host
        self.task_name = task_name

    def is_registered(self) -> bool:
        return self._host.task_exists(self.task_name)

    def ensure_auto_start(
        self,
        target_executable: str | Path | Sequence[str],
        restart_policy: RestartPolicy,
        working_directory: Optional[Path] = None,
    ) -> RegistrationStatus:
        """Create the registration unless one already exists under ``task_name``.

        ``working_directory`` becomes the task's start-in directory, which is
        where a relative ``.env`` or log path is resolved.
        """
        if isinstance(target_executable, (str, Path)):
            command = [str(target_executable)]
        else:
            command = [str(part) for part in target_executable]

        try:
            if self.is_registered():
                logger.info("autostart_already_registered", task=self.task_name)
                return RegistrationStatus.ALREADY_REGISTERED
            self._host.register_task(self.task_name, command, restart_policy, working_directory)
        except Exception as exc:
            logger.warning(
                "autostart_registration_failed",
                task=self.task_name,
                command=command,
                error=str(exc),
                hint="register the task manually",
            )
            return RegistrationStatus.REGISTRATION_FAILED

        logger.info(
            "autostart_registered",
            task=self.task_name,
            max_restarts=restart_policy.max_restarts,
            restart_interval=restart_policy.restart_interval,
        )
        return RegistrationStatus.REGISTERED

    def require_auto_start(
        self,
        target_executable: str | Path | Sequence[str],
        restart_policy: RestartPolicy,
        working_directory: Optional[Path] = None,
    ) -> RegistrationStatus:
        """Like ``ensure_auto_start`` but raise when registration failed."""
        status = self.ensure_auto_start(target_executable, restart_policy, working_directory)
        if status is RegistrationStatus.REGISTRATION_FAILED:
            raise RegistrationError(
                f"Could not register scheduled task '{self.task_name}'; register it manually"
            )
        return status
