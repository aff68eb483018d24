"""Step sequencer: runs the provisioning steps in order with a reboot gate.

Every invocation starts from the first step and re-checks each
precondition; nothing about a previous run is trusted. After any action
whose effect requires a reboot the remaining steps are abandoned, since
they may depend on a feature that only exists after the restart.
"""

from __future__ import annotations

import time
from typing import Sequence

from nodewarden.logging_config import get_logger
from nodewarden.provisioning.models import (
    ActionStatus,
    CheckResult,
    OrchestrationRun,
    Precondition,
    ProvisioningStep,
    RunState,
    StepEffect,
    StepRecord,
)

logger = get_logger(__name__)


def _validate(steps: Sequence[ProvisioningStep]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate provisioning step name: {step.name}")
        seen.add(step.name)


def _evaluate(step: ProvisioningStep) -> CheckResult:
    """Run a precondition check; a crashing check blocks the run."""
    try:
        return step.check()
    except Exception as exc:
        logger.error("step_check_failed", step=step.name, error=str(exc))
        return CheckResult.blocked(f"precondition check failed: {exc}")


class StepSequencer:
    """Evaluates and executes an ordered list of provisioning steps."""

    def plan(self, steps: Sequence[ProvisioningStep]) -> list[tuple[ProvisioningStep, CheckResult]]:
        """Evaluate every precondition without running any action."""
        _validate(steps)
        return [(step, _evaluate(step)) for step in steps]

    def run(self, steps: Sequence[ProvisioningStep]) -> OrchestrationRun:
        _validate(steps)
        run = OrchestrationRun(steps=list(steps))
        run.state = RunState.RUNNING
        logger.info("provisioning_started", steps=len(run.steps))

        for index, step in enumerate(run.steps):
            run.current_index = index
            self._run_step(run, step)
            if run.finished:
                break
        else:
            run.state = RunState.COMPLETED

        logger.info(
            "provisioning_finished",
            outcome=run.state.value,
            ran=run.actions_run,
            skipped=run.skipped,
            reason=run.failure_reason,
        )
        return run

    def _run_step(self, run: OrchestrationRun, step: ProvisioningStep) -> None:
        check = _evaluate(step)

        if check.status is Precondition.SATISFIED:
            logger.info("step_skipped", step=step.name, reason=check.reason)
            run.records.append(StepRecord(step.name, check.status, ActionStatus.SKIPPED, check.reason))
            return

        if check.status is Precondition.BLOCKED:
            logger.error("step_blocked", step=step.name, reason=check.reason)
            run.records.append(StepRecord(step.name, check.status, ActionStatus.BLOCKED, check.reason))
            run.failure_reason = f"{step.name}: {check.reason}"
            run.state = RunState.FAILED_FATAL
            return

        logger.info("step_running", step=step.name, reason=check.reason)
        started = time.monotonic()
        try:
            step.action()
        except Exception as exc:
            elapsed = time.monotonic() - started
            if not step.soft:
                logger.error("step_failed", step=step.name, error=str(exc))
                run.records.append(
                    StepRecord(step.name, check.status, ActionStatus.HARD_FAILED, str(exc), elapsed)
                )
                run.failure_reason = f"{step.name}: {exc}"
                run.state = RunState.FAILED_FATAL
                return
            logger.warning("step_soft_failed", step=step.name, error=str(exc))
            run.records.append(
                StepRecord(step.name, check.status, ActionStatus.SOFT_FAILED, str(exc), elapsed)
            )
        else:
            elapsed = time.monotonic() - started
            logger.info("step_succeeded", step=step.name, elapsed=round(elapsed, 2))
            run.records.append(StepRecord(step.name, check.status, ActionStatus.SUCCEEDED, elapsed=elapsed))
            if step.effect is StepEffect.REQUIRES_REBOOT:
                run.reboot_required = True

        if run.reboot_required:
            logger.warning("reboot_required", step=step.name)
            run.state = RunState.HALTED_FOR_REBOOT
