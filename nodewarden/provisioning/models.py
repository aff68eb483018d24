"""Models for provisioning steps and orchestration runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional


class Precondition(Enum):
    """Result of a step's precondition check."""
    SATISFIED = "satisfied"  # Host already in the desired state
    NEEDS_ACTION = "needs_action"
    BLOCKED = "blocked"  # Cannot be remedied by this run


class StepEffect(Enum):
    """Declared side effect of a successful step action."""
    NONE = "none"
    REQUIRES_REBOOT = "requires_reboot"


class RunState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    HALTED_FOR_REBOOT = "halted_for_reboot"
    FAILED_FATAL = "failed_fatal"


class RunOutcome(Enum):
    """Terminal outcome of an orchestration run."""
    COMPLETED = "completed"
    HALTED_FOR_REBOOT = "halted_for_reboot"
    FAILED_FATAL = "failed_fatal"


class ActionStatus(Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    SOFT_FAILED = "soft_failed"
    HARD_FAILED = "hard_failed"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class CheckResult:
    """A precondition verdict with a human-readable reason."""

    status: Precondition
    reason: str = ""

    @classmethod
    def satisfied(cls, reason: str = "") -> "CheckResult":
        return cls(Precondition.SATISFIED, reason)

    @classmethod
    def needs_action(cls, reason: str = "") -> "CheckResult":
        return cls(Precondition.NEEDS_ACTION, reason)

    @classmethod
    def blocked(cls, reason: str) -> "CheckResult":
        return cls(Precondition.BLOCKED, reason)


@dataclass(frozen=True)
class ProvisioningStep:
    """One idempotent unit of host-state mutation.

    ``check`` must be side-effect free; it is re-evaluated on every run
    since no progress is persisted between invocations. ``action`` raises
    on failure. A ``soft`` step's failure is logged and the run continues.
    """

    name: str
    check: Callable[[], CheckResult]
    action: Callable[[], None]
    effect: StepEffect = StepEffect.NONE
    soft: bool = False
    description: str = ""


@dataclass
class StepRecord:
    """What happened to one step during a run."""

    name: str
    precondition: Precondition
    status: ActionStatus
    reason: str = ""
    elapsed: float = 0.0


_TERMINAL = {
    RunState.COMPLETED: RunOutcome.COMPLETED,
    RunState.HALTED_FOR_REBOOT: RunOutcome.HALTED_FOR_REBOOT,
    RunState.FAILED_FATAL: RunOutcome.FAILED_FATAL,
}


@dataclass
class OrchestrationRun:
    """Ephemeral state of a single sequencer invocation."""

    steps: list[ProvisioningStep]
    current_index: int = 0
    reboot_required: bool = False
    state: RunState = RunState.NOT_STARTED
    failure_reason: Optional[str] = None
    records: list[StepRecord] = field(default_factory=list)

    @property
    def outcome(self) -> Optional[RunOutcome]:
        return _TERMINAL.get(self.state)

    @property
    def finished(self) -> bool:
        return self.state in _TERMINAL

    @property
    def exit_code(self) -> int:
        """Process exit code: a reboot halt is an expected stop, not a failure."""
        return 1 if self.state is RunState.FAILED_FATAL else 0

    @property
    def actions_run(self) -> list[str]:
        return [
            r.name for r in self.records
            if r.status in (ActionStatus.SUCCEEDED, ActionStatus.SOFT_FAILED, ActionStatus.HARD_FAILED)
        ]

    @property
    def skipped(self) -> list[str]:
        return [r.name for r in self.records if r.status is ActionStatus.SKIPPED]

    def record_for(self, name: str) -> Optional[StepRecord]:
        return next((r for r in self.records if r.name == name), None)
