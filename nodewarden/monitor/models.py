"""Models for monitor samples, alert rules and loop state."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

UNAVAILABLE = "Unavailable"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Comparison(Enum):
    GREATER_THAN = ">"
    LESS_THAN = "<"
    CHANGED = "changed"  # Stateful: compared against the loop's baseline


class DeliveryStatus(Enum):
    DELIVERED = "delivered"
    SUPPRESSED = "suppressed"
    DELIVERY_FAILED = "delivery_failed"


@dataclass(frozen=True)
class MonitorSample:
    """One observation of host health; never mutated after creation."""

    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now().replace(microsecond=0))
    cpu_percent: float = 0.0
    available_memory_mb: float = 0.0
    external_address: Optional[str] = None  # None means Unavailable

    @property
    def address_label(self) -> str:
        return self.external_address or UNAVAILABLE

    def value_of(self, metric: str) -> float | str:
        if metric == "cpu_percent":
            return self.cpu_percent
        if metric == "available_memory_mb":
            return self.available_memory_mb
        if metric == "external_address":
            return self.address_label
        raise KeyError(f"Unknown metric: {metric}")

    def to_log_line(self) -> str:
        return (
            f"{self.timestamp.strftime(TIMESTAMP_FORMAT)} | "
            f"CPU: {self.cpu_percent:.2f}% | "
            f"RAM Available: {self.available_memory_mb:.2f} MB | "
            f"IP: {self.address_label}"
        )


@dataclass(frozen=True)
class AlertRule:
    """A static alert condition with its message template.

    The template is formatted with ``value``, ``threshold`` and, for the
    address rule, ``previous``.
    """

    name: str
    metric: str
    comparison: Comparison
    message_template: str
    threshold: Optional[float] = None

    def matches(self, value: float) -> bool:
        # Compare what the log line and alert text show (two decimals)
        value = round(value, 2)
        if self.comparison is Comparison.GREATER_THAN:
            return value > self.threshold
        if self.comparison is Comparison.LESS_THAN:
            return value < self.threshold
        raise ValueError(f"Rule {self.name} is stateful; evaluate it against a baseline")

    def render(self, sample: MonitorSample, previous: Optional[str] = None) -> str:
        return self.message_template.format(
            value=sample.value_of(self.metric),
            threshold=self.threshold,
            previous=previous or UNAVAILABLE,
        )


@dataclass
class MonitorState:
    """Process-lifetime state owned by the monitor loop."""

    last_known_address: Optional[str] = None
    cycles: int = 0


def default_rules(cpu_threshold_pct: float, ram_threshold_mb: float) -> tuple[AlertRule, AlertRule, AlertRule]:
    """CPU, memory and address-change rules."""
    return (
        AlertRule(
            name="high_cpu",
            metric="cpu_percent",
            comparison=Comparison.GREATER_THAN,
            threshold=cpu_threshold_pct,
            message_template="CPU usage is {value:.2f}% (threshold {threshold:.0f}%)",
        ),
        AlertRule(
            name="low_memory",
            metric="available_memory_mb",
            comparison=Comparison.LESS_THAN,
            threshold=ram_threshold_mb,
            message_template="Available memory is {value:.2f} MB (threshold {threshold:.0f} MB)",
        ),
        AlertRule(
            name="address_changed",
            metric="external_address",
            comparison=Comparison.CHANGED,
            message_template="External IP changed from {previous} to {value}",
        ),
    )
