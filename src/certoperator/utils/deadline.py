"""Deadline carried through one reconcile pass."""

from __future__ import annotations

import time

from ..errors import DeadlineExceededError


class Deadline:
    """Monotonic deadline for a reconcile pass.

    Store, git and catalog calls ask for `remaining()` to bound their own
    network timeouts and call `check()` before starting, so an expired pass
    aborts instead of issuing new requests.
    """

    def __init__(self, timeout_s: float | None) -> None:
        self._expires_at = None if timeout_s is None else time.monotonic() + timeout_s

    @classmethod
    def none(cls) -> Deadline:
        return cls(None)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def timeout(self, cap: float | None = None) -> float | None:
        """Remaining time capped by a per-call timeout."""
        remaining = self.remaining()
        if remaining is None:
            return cap
        if cap is None:
            return remaining
        return min(remaining, cap)

    def check(self, operation: str) -> None:
        """Raise DeadlineExceededError if the pass has run out of time."""
        if self.expired:
            raise DeadlineExceededError(f"deadline exceeded before {operation}")
