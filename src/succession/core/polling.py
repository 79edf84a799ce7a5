"""Bounded-time convergence polling.

After a migration is published, side effects elsewhere in the network (for
example a group's membership list switching to the new identity) become
visible only after some delay. :class:`ConvergencePollWatcher` repeatedly
runs an async check until it succeeds or a deadline passes.

Each enable starts an independent :class:`PollSession` backed by a single
asyncio task. The task owns both the polling cadence and the deadline, so
cancelling it is the only cleanup ever needed.

Usage::

    watcher = ConvergencePollWatcher(
        check_fn=membership_updated,
        on_complete=lambda: logger.info("membership converged"),
        on_timeout=lambda: logger.warning("gave up waiting"),
        interval=2.0,
        timeout=30.0,
    )
    watcher.enable()
    ...
    watcher.disable()  # no callback fires
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0  # seconds
DEFAULT_POLL_TIMEOUT = 30.0  # seconds

CheckFn = Callable[[], Awaitable[bool]]
Callback = Callable[[], None]


class PollOutcome(StrEnum):
    """How a poll session ended."""

    PENDING = "pending"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class PollSession:
    """A single polling run.

    At most one of ``on_complete`` / ``on_timeout`` is ever invoked, and only
    once. :meth:`cancel` stops the run without invoking either.
    """

    def __init__(
        self,
        check_fn: CheckFn,
        on_complete: Callback,
        on_timeout: Callback,
        interval: float,
        timeout: float,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        self._check_fn = check_fn
        self._on_complete = on_complete
        self._on_timeout = on_timeout
        self.interval = interval
        self.timeout = timeout

        self.outcome = PollOutcome.PENDING
        self.checks = 0
        self._task: asyncio.Task[None] = asyncio.get_running_loop().create_task(self._run())

    @property
    def active(self) -> bool:
        return self.outcome == PollOutcome.PENDING

    def cancel(self) -> None:
        """Stop polling without invoking any callback. Idempotent."""
        if not self.active:
            return
        self.outcome = PollOutcome.CANCELLED
        self._task.cancel()
        logger.debug("Polling cancelled after %d checks", self.checks)

    async def wait(self) -> PollOutcome:
        """Wait for the session to finish and return its outcome."""
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self.outcome != PollOutcome.CANCELLED:
                raise
        return self.outcome

    async def _run(self) -> None:
        logger.debug("Starting polling (interval=%.2fs, timeout=%.2fs)", self.interval, self.timeout)
        try:
            async with asyncio.timeout(self.timeout):
                while True:
                    await asyncio.sleep(self.interval)
                    if await self._check():
                        break
        except TimeoutError:
            self._finish(PollOutcome.TIMED_OUT, self._on_timeout)
            return
        self._finish(PollOutcome.COMPLETED, self._on_complete)

    async def _check(self) -> bool:
        self.checks += 1
        try:
            return bool(await self._check_fn())
        except Exception:
            # A failing check is treated as "not yet"
            logger.exception("Convergence check %d failed", self.checks)
            return False

    def _finish(self, outcome: PollOutcome, callback: Callback) -> None:
        if not self.active:
            return
        self.outcome = outcome
        if outcome == PollOutcome.COMPLETED:
            logger.info("Condition met after %d checks", self.checks)
        else:
            logger.warning("Polling timed out after %.1fs (%d checks)", self.timeout, self.checks)
        try:
            callback()
        except Exception:
            logger.exception("Polling %s callback raised", outcome.value)


class ConvergencePollWatcher:
    """Start/cancel wrapper that owns at most one :class:`PollSession`.

    Args:
        check_fn: Async predicate polled every ``interval`` seconds.
        on_complete: Called once when ``check_fn`` first returns true.
        on_timeout: Called once if ``timeout`` seconds elapse first.
        interval: Seconds between checks (default 2.0).
        timeout: Seconds before giving up (default 30.0).
    """

    def __init__(
        self,
        check_fn: CheckFn,
        on_complete: Callback,
        on_timeout: Callback,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_POLL_TIMEOUT,
    ) -> None:
        self.check_fn = check_fn
        self.on_complete = on_complete
        self.on_timeout = on_timeout
        self.interval = interval
        self.timeout = timeout
        self._session: PollSession | None = None

    @property
    def session(self) -> PollSession | None:
        """The most recent session, finished or not."""
        return self._session

    @property
    def enabled(self) -> bool:
        return self._session is not None and self._session.active

    def enable(self) -> PollSession:
        """Start a fresh session unless one is already running.

        Must be called from within a running event loop.
        """
        if self._session is not None and self._session.active:
            return self._session
        self._session = PollSession(
            self.check_fn,
            self.on_complete,
            self.on_timeout,
            interval=self.interval,
            timeout=self.timeout,
        )
        return self._session

    def disable(self) -> None:
        """Cancel the running session, if any. No callback fires."""
        if self._session is not None:
            self._session.cancel()

    def set_enabled(self, enabled: bool) -> PollSession | None:
        if enabled:
            return self.enable()
        self.disable()
        return None
