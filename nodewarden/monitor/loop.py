"""Monitor loop: samples host health, logs it and raises alerts.

The loop runs as its own long-lived process, independent of the
provisioning run. Each cycle:
- Samples CPU and available memory (0 on read failure)
- Resolves the external address (Unavailable on failure)
- Appends one line to the sample log
- Evaluates the CPU, memory and address-change rules

Nothing inside a cycle can stop the loop; only ``shutdown()`` (checked at
every cycle boundary) or process termination does.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from nodewarden.config import MonitorConfig
from nodewarden.logging_config import get_logger
from nodewarden.monitor.models import AlertRule, MonitorSample, MonitorState, default_rules
from nodewarden.monitor.notifier import AlertDispatcher
from nodewarden.monitor.sample_log import SampleLog
from nodewarden.monitor.sampler import AddressResolver, MetricsSampler

logger = get_logger(__name__)


class MonitorLoop:
    """Stateful polling loop over host metrics and external address."""

    def __init__(
        self,
        config: MonitorConfig,
        sampler: Optional[MetricsSampler] = None,
        resolver: Optional[AddressResolver] = None,
        sample_log: Optional[SampleLog] = None,
        dispatcher: Optional[AlertDispatcher] = None,
    ) -> None:
        self._config = config
        self._sampler = sampler or MetricsSampler()
        self._resolver = resolver or AddressResolver(
            config.address_lookup_url, timeout=config.address_lookup_timeout
        )
        self._log = sample_log or SampleLog(config.log_path)
        self._dispatcher = dispatcher or AlertDispatcher(config)
        self._cpu_rule, self._memory_rule, self._address_rule = default_rules(
            config.cpu_threshold_pct, config.ram_threshold_mb
        )
        self.state = MonitorState()
        self._stop = asyncio.Event()

        if config.restore_address_baseline:
            self.state.last_known_address = self._log.last_known_address()
            logger.info("address_baseline_restored", address=self.state.last_known_address)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def _read_metrics(self) -> tuple[float, float]:
        try:
            return await asyncio.to_thread(self._sampler.read)
        except Exception as exc:
            logger.error("metrics_collection_failed", error=str(exc))
            return 0.0, 0.0

    async def _resolve_address(self) -> Optional[str]:
        try:
            return await self._resolver.resolve()
        except Exception as exc:
            logger.error("address_resolution_failed", error=str(exc))
            return None

    async def _dispatch(self, rule: AlertRule, sample: MonitorSample, previous: Optional[str] = None) -> None:
        try:
            await self._dispatcher.notify(rule, sample, previous)
        except Exception as exc:
            logger.error("alert_dispatch_failed", rule=rule.name, error=str(exc))

    async def _evaluate(self, sample: MonitorSample) -> list[str]:
        """Apply the alert rules to a sample; return the names that fired."""
        fired: list[str] = []

        for rule in (self._cpu_rule, self._memory_rule):
            if rule.matches(sample.value_of(rule.metric)):
                fired.append(rule.name)
                await self._dispatch(rule, sample)
            else:
                self._dispatcher.resolve(rule)

        address = sample.external_address
        previous = self.state.last_known_address
        if address is not None:
            if previous is None:
                logger.info("address_baseline_set", address=address)
                self.state.last_known_address = address
            elif address != previous:
                fired.append(self._address_rule.name)
                self.state.last_known_address = address
                await self._dispatch(self._address_rule, sample, previous)

        return fired

    async def cycle(self) -> MonitorSample:
        """Run one sample-log-evaluate pass."""
        cpu, memory = await self._read_metrics()
        address = await self._resolve_address()
        sample = MonitorSample(cpu_percent=cpu, available_memory_mb=memory, external_address=address)

        self._log.append(sample)
        fired = await self._evaluate(sample)
        self.state.cycles += 1

        logger.debug(
            "monitor_cycle",
            cycle=self.state.cycles,
            cpu=round(cpu, 2),
            memory_mb=round(memory, 2),
            address=sample.address_label,
            fired=fired,
        )
        return sample

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """Cycle every ``poll_interval`` seconds until shutdown is requested."""
        logger.info(
            "monitor_starting",
            interval=self._config.poll_interval,
            log_path=str(self._config.log_path),
            alerting=self._config.alerting_enabled,
        )

        while not self._stop.is_set():
            started = time.monotonic()
            try:
                await self.cycle()
            except Exception as exc:
                logger.error("monitor_cycle_failed", error=str(exc))

            if max_cycles is not None and self.state.cycles >= max_cycles:
                break

            elapsed = time.monotonic() - started
            await self._wait(max(0.0, self._config.poll_interval - elapsed))

        logger.info("monitor_stopped", cycles=self.state.cycles)

    def shutdown(self) -> None:
        """Signal the loop to stop at the next cycle boundary."""
        self._stop.set()
