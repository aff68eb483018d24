"""Exception types shared by the orchestrator and the monitor."""

from __future__ import annotations

from typing import Any, Sequence


class NodewardenError(Exception):
    """Base class for all nodewarden errors."""


class StepActionError(NodewardenError):
    """A provisioning step's action did not reach its goal."""

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"{step}: {message}")
        self.step = step


class FetchExhaustedError(NodewardenError):
    """Every download attempt failed."""

    def __init__(self, url: str, attempts: Sequence[Any]) -> None:
        super().__init__(f"Download of {url} failed after {len(attempts)} attempt(s)")
        self.url = url
        self.attempts = list(attempts)


class HostCommandError(NodewardenError):
    """An OS command exited with an unexpected return code."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        detail = stderr.strip()[:300]
        super().__init__(
            f"Command failed ({returncode}): {' '.join(argv)}" + (f"\n{detail}" if detail else "")
        )
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class RegistrationError(NodewardenError):
    """An auto-start registration could not be created."""
