"""Append-only log of monitor samples, one line per cycle."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from nodewarden.logging_config import get_logger
from nodewarden.monitor.models import UNAVAILABLE, MonitorSample

logger = get_logger(__name__)

ADDRESS_FIELD = "IP: "
TAIL_BYTES = 64 * 1024


class SampleLog:
    """Writes each sample as a single complete line."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def append(self, sample: MonitorSample) -> bool:
        """Append one line; return False if the write failed."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(sample.to_log_line() + "\n")
            return True
        except Exception as exc:
            logger.error("sample_log_write_failed", path=str(self.path), error=str(exc))
            return False

    def last_known_address(self) -> Optional[str]:
        """Most recent concrete address recorded in the log, if any."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, "rb") as f:
                f.seek(0, 2)
                size = f.tell()
                f.seek(max(0, size - TAIL_BYTES))
                tail = f.read().decode("utf-8", errors="replace")
        except Exception as exc:
            logger.warning("sample_log_read_failed", path=str(self.path), error=str(exc))
            return None

        for line in reversed(tail.splitlines()):
            _, sep, address = line.rpartition(ADDRESS_FIELD)
            address = address.strip()
            if sep and address and address != UNAVAILABLE:
                return address
        return None
