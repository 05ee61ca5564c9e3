"""Turn completion detection.

A detector resolves one future from whichever of its conditions fires first:

- the terminal frame of the turn (``message``, ``response`` or ``done``);
- for reply policies, any buffered content once the grace period has passed;
- for long-form policies, an inactivity window with no new fragments, re-armed
  on every fragment once content exists;
- the ceiling timeout, with whatever has accumulated.

A remote ``error`` frame only fails the wait under a policy with
``fail_on_remote_error``; otherwise the detector keeps running.

All conditions are loop timers or frame callbacks; nothing polls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from turnbridge.errors import NotConnectedError


class CompletionReason(StrEnum):
    TERMINAL = "terminal"
    CONTENT = "content"
    QUIET = "quiet"
    CEILING = "ceiling"
    CLOSED = "closed"


@dataclass(frozen=True)
class CompletionPolicy:
    """Timing constants for one completion strategy."""

    ceiling_seconds: float
    quiet_seconds: float | None = None
    grace_seconds: float = 0.0
    fail_on_remote_error: bool = False

    def __post_init__(self) -> None:
        if self.ceiling_seconds <= 0:
            raise ValueError("ceiling_seconds must be positive")
        if self.quiet_seconds is not None and self.quiet_seconds <= 0:
            raise ValueError("quiet_seconds must be positive")
        if self.grace_seconds < 0:
            raise ValueError("grace_seconds must not be negative")

    @property
    def long_form(self) -> bool:
        return self.quiet_seconds is not None


REPLY_POLICY = CompletionPolicy(ceiling_seconds=30.0, grace_seconds=0.5)
LONG_FORM_POLICY = CompletionPolicy(ceiling_seconds=300.0, quiet_seconds=10.0, fail_on_remote_error=True)


@dataclass(frozen=True)
class TurnResult:
    """Aggregated text of one turn and what ended it."""

    text: str
    reason: CompletionReason

    @property
    def timed_out(self) -> bool:
        return self.reason is CompletionReason.CEILING


class CompletionDetector:
    """Decide when one turn is finished."""

    def __init__(
        self,
        policy: CompletionPolicy,
        snapshot: Callable[[], str],
        *,
        has_content: bool = False,
        on_complete: Callable[[CompletionDetector], None] | None = None,
    ) -> None:
        self.policy = policy
        self._snapshot = snapshot
        self._on_complete = on_complete
        self._has_content = has_content
        self._loop = asyncio.get_running_loop()
        self._future: asyncio.Future[TurnResult] = self._loop.create_future()
        self._grace_elapsed = policy.grace_seconds == 0
        self._armed_at = self._loop.time()
        self._ceiling_timer = self._loop.call_later(policy.ceiling_seconds, self._fire, CompletionReason.CEILING)
        self._grace_timer: asyncio.TimerHandle | None = None
        self._quiet_timer: asyncio.TimerHandle | None = None
        if not self._grace_elapsed:
            self._grace_timer = self._loop.call_later(policy.grace_seconds, self._on_grace)
        if has_content:
            self._on_content()

    @property
    def done(self) -> bool:
        return self._future.done()

    def result(self) -> TurnResult | None:
        """Return the result if the detector resolved successfully, else None."""
        if not self._future.done() or self._future.cancelled() or self._future.exception() is not None:
            return None
        return self._future.result()

    async def wait(self) -> TurnResult:
        return await self._future

    def fragment(self, *, has_text: bool) -> None:
        """Record one inbound fragment of the turn."""
        if self.done:
            return
        if has_text:
            self._has_content = True
        if self._has_content:
            self._on_content()

    def terminal(self, *, has_text: bool = False) -> None:
        """Record the terminal frame of the turn."""
        if has_text:
            self._has_content = True
        self._fire(CompletionReason.TERMINAL)

    def fail(self, exc: BaseException) -> None:
        if self.done:
            return
        self._cancel_timers()
        self._future.set_exception(exc)
        self._notify()

    def close(self) -> None:
        """Resolve or fail the wait because the connection went away."""
        if self.done:
            return
        if self._has_content:
            self._fire(CompletionReason.CLOSED)
            return
        self.fail(NotConnectedError("connection closed before the turn completed"))

    def _on_content(self) -> None:
        if self.policy.quiet_seconds is not None:
            if self._quiet_timer is not None:
                self._quiet_timer.cancel()
            self._quiet_timer = self._loop.call_later(self.policy.quiet_seconds, self._fire, CompletionReason.QUIET)
        elif self._grace_elapsed:
            self._fire(CompletionReason.CONTENT)

    def _on_grace(self) -> None:
        self._grace_timer = None
        self._grace_elapsed = True
        if self._has_content and self.policy.quiet_seconds is None:
            self._fire(CompletionReason.CONTENT)

    def _fire(self, reason: CompletionReason) -> None:
        if self.done:
            return
        self._cancel_timers()
        text = self._snapshot() if self._has_content else ""
        elapsed = self._loop.time() - self._armed_at
        logger.debug("turn.complete reason={} chars={} elapsed={:.3f}", reason, len(text), elapsed)
        self._future.set_result(TurnResult(text=text, reason=reason))
        self._notify()

    def _notify(self) -> None:
        if self._on_complete is not None:
            self._on_complete(self)

    def _cancel_timers(self) -> None:
        for timer in (self._ceiling_timer, self._grace_timer, self._quiet_timer):
            if timer is not None:
                timer.cancel()
        self._grace_timer = None
        self._quiet_timer = None
