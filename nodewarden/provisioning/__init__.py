"""Host provisioning for the node client.

Components:
- StepSequencer: runs the ordered steps, halting at the reboot gate
- RetryableFetcher: bounded, sequential artifact download
- SupervisionRegistrar: idempotent auto-start registration with restart policy
- WindowsHost: OS capabilities (features, firewall, scheduled tasks, installer)
- build_steps: the fixed provisioning sequence
"""

from nodewarden.provisioning.fetcher import RetryableFetcher
from nodewarden.provisioning.host import HostPlatform, WindowsHost
from nodewarden.provisioning.sequencer import StepSequencer
from nodewarden.provisioning.steps import build_steps
from nodewarden.provisioning.supervision import RegistrationStatus, SupervisionRegistrar

__all__ = [
    "RetryableFetcher",
    "HostPlatform",
    "WindowsHost",
    "StepSequencer",
    "build_steps",
    "RegistrationStatus",
    "SupervisionRegistrar",
]
