"""Node health monitor.

Components:
- MonitorLoop: polling cycle with a cooperative stop signal
- MetricsSampler / AddressResolver: best-effort readings
- SampleLog: append-only, one line per cycle
- AlertDispatcher: threshold and address-change alerts over email/webhook
"""

from nodewarden.monitor.loop import MonitorLoop
from nodewarden.monitor.models import AlertRule, DeliveryStatus, MonitorSample, MonitorState
from nodewarden.monitor.notifier import AlertDispatcher
from nodewarden.monitor.sample_log import SampleLog
from nodewarden.monitor.sampler import AddressResolver, MetricsSampler

__all__ = [
    "MonitorLoop",
    "AlertRule",
    "DeliveryStatus",
    "MonitorSample",
    "MonitorState",
    "AlertDispatcher",
    "SampleLog",
    "AddressResolver",
    "MetricsSampler",
]
