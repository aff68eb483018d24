"""Retrying artifact download.

Attempts run strictly one after another so two partial downloads never
race for the same destination. The body is streamed to a ``.part`` file
and only moved into place once complete.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import httpx
from tenacity import RetryError, Retrying, stop_after_attempt, wait_fixed

from nodewarden.errors import FetchExhaustedError
from nodewarden.logging_config import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 256


@dataclass(frozen=True)
class FetchAttempt:
    number: int
    outcome: str  # "ok" | "timeout" | "error"
    elapsed: float
    error: Optional[str] = None


@dataclass
class FetchResult:
    url: str
    destination: Path
    attempts: list[FetchAttempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].outcome == "ok"

    @property
    def exhausted(self) -> bool:
        return not self.ok

    def raise_if_exhausted(self) -> None:
        if self.exhausted:
            raise FetchExhaustedError(self.url, self.attempts)


class RetryableFetcher:
    """Downloads a remote artifact with bounded attempts and a fixed pause."""

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._transport = transport
        self._sleep = sleep

    def fetch(
        self,
        url: str,
        destination: str | Path,
        max_attempts: int = 3,
        per_attempt_timeout: float = 300.0,
        retry_delay: float = 5.0,
    ) -> FetchResult:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        result = FetchResult(url=url, destination=Path(destination))

        def _log_retry(state) -> None:
            logger.info(
                "fetch_retry_scheduled",
                url=url,
                next_attempt=state.attempt_number + 1,
                delay=retry_delay,
            )

        retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(retry_delay),
            sleep=self._sleep,
            before_sleep=_log_retry,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._attempt(result, attempt.retry_state.attempt_number, per_attempt_timeout)
        except RetryError:
            logger.error("fetch_exhausted", url=url, attempts=len(result.attempts))
        return result

    def _attempt(self, result: FetchResult, number: int, timeout: float) -> None:
        started = time.monotonic()
        partial = result.destination.with_name(result.destination.name + ".part")
        try:
            self._download(result.url, partial, timeout)
            partial.replace(result.destination)
        except Exception as exc:
            partial.unlink(missing_ok=True)
            outcome = "timeout" if isinstance(exc, httpx.TimeoutException) else "error"
            result.attempts.append(FetchAttempt(number, outcome, time.monotonic() - started, str(exc)))
            logger.warning("fetch_attempt_failed", url=result.url, attempt=number, outcome=outcome, error=str(exc))
            raise

        elapsed = time.monotonic() - started
        result.attempts.append(FetchAttempt(number, "ok", elapsed))
        logger.info("fetch_succeeded", url=result.url, attempt=number, elapsed=round(elapsed, 2))

    def _download(self, url: str, partial: Path, timeout: float) -> None:
        partial.parent.mkdir(parents=True, exist_ok=True)
        with httpx.Client(transport=self._transport, timeout=timeout, follow_redirects=True) as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(partial, "wb") as f:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        f.write(chunk)
