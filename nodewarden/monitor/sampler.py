"""Host metric and external address sampling.

Every read is best-effort: a failed metric becomes 0 and a failed lookup
becomes Unavailable, so a single bad read never costs a whole cycle.
"""

from __future__ import annotations

import ipaddress
from typing import Optional

import httpx
import psutil

from nodewarden.logging_config import get_logger

logger = get_logger(__name__)

CPU_SAMPLE_SECONDS = 1.0


class MetricsSampler:
    """Reads CPU utilisation and available memory via psutil."""

    def __init__(self, cpu_interval: float = CPU_SAMPLE_SECONDS) -> None:
        self._cpu_interval = cpu_interval

    def cpu_percent(self) -> float:
        try:
            return float(psutil.cpu_percent(interval=self._cpu_interval))
        except Exception as exc:
            logger.warning("cpu_read_failed", error=str(exc))
            return 0.0

    def available_memory_mb(self) -> float:
        try:
            return psutil.virtual_memory().available / (1024**2)
        except Exception as exc:
            logger.warning("memory_read_failed", error=str(exc))
            return 0.0

    def read(self) -> tuple[float, float]:
        """Return ``(cpu_percent, available_memory_mb)``."""
        return self.cpu_percent(), self.available_memory_mb()


class AddressResolver:
    """Looks up the host's external address through a plain-text echo service."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def resolve(self) -> Optional[str]:
        """Return the external address, or None when it cannot be determined."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(self._url)
                resp.raise_for_status()
                address = resp.text.strip()
                ipaddress.ip_address(address)
                return address
        except Exception as exc:
            logger.warning("address_lookup_failed", url=self._url, error=str(exc))
            return None
