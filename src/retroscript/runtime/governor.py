"""
Run-loop governor.

One governor supervises one script run. The interpreter calls
`checkpoint()` before every statement and loop iteration; the governor
enforces the wall-clock budget, surfaces cancellation and aborts, and
periodically yields to the event loop so the host stays responsive.
Every await on a collaborator goes through `suspend()`, which lets
`cancel()` interrupt it.

While an event handler body runs, every other task of the run parks at
its next checkpoint until the handler finishes or suspends itself on a
collaborator, so handler bodies are never interleaved with other script
statements.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional, Set

from ..config import EngineLimits
from ..errors import ScriptError, CancellationError, ScriptTimeoutError, LoopLimitError
from ..host import Clock

logger = logging.getLogger(__name__)


class Governor:

    def __init__(self, clock: Clock, limits: EngineLimits):
        self.clock = clock
        self.limits = limits
        self.started_at = clock.monotonic()
        self.statements = 0
        self.cancelled = False
        self.abort_error: Optional[ScriptError] = None
        self._pending: Set[asyncio.Future] = set()
        self._handler_task: Optional[asyncio.Task] = None
        self._handler_idle = asyncio.Event()
        self._handler_idle.set()

    @property
    def elapsed(self) -> float:
        """Seconds since the run started."""
        return self.clock.monotonic() - self.started_at

    def remaining(self) -> float:
        """Seconds left in the budget (never negative)."""
        return max(0.0, self.limits.timeout_seconds - self.elapsed)

    def timeout_error(self) -> ScriptTimeoutError:
        return ScriptTimeoutError(
            f"script exceeded time limit of {self.limits.timeout_seconds:g} seconds"
        )

    def check(self) -> None:
        """Raise if the run was aborted, cancelled or is out of time."""
        if self.abort_error is not None:
            raise self.abort_error
        if self.cancelled:
            raise CancellationError("script cancelled")
        if self.elapsed >= self.limits.timeout_seconds:
            raise self.timeout_error()

    async def checkpoint(self) -> None:
        """Called at every statement boundary and loop iteration."""
        self.check()
        self.statements += 1
        if self.statements % self.limits.yield_interval == 0:
            await asyncio.sleep(0)
            self.check()
        while not self._in_handler() and not self._handler_idle.is_set():
            await self.suspend(self._handler_idle.wait())

    def _in_handler(self) -> bool:
        return (self._handler_task is not None
                and asyncio.current_task() is self._handler_task)

    def handler_started(self) -> None:
        """Mark the current task as running a handler body to completion."""
        self._handler_task = asyncio.current_task()
        self._handler_idle.clear()

    def handler_finished(self) -> None:
        self._handler_task = None
        self._handler_idle.set()

    def check_loop(self, iteration: int) -> None:
        """Stop a conditional loop before it exceeds the iteration ceiling."""
        if iteration >= self.limits.max_loop_iterations:
            raise LoopLimitError(
                f"loop exceeded {self.limits.max_loop_iterations} iterations"
            )

    async def suspend(self, awaitable: Awaitable[Any]) -> Any:
        """
        Await a collaborator call so that cancel() and abort() can interrupt it.

        An interrupted suspension raises the abort error or CancellationError
        instead of asyncio.CancelledError. A handler that suspends lets the
        rest of the run continue until it resumes.
        """
        self.check()
        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)
        releases = self._in_handler()
        if releases:
            self._handler_idle.set()
        try:
            return await future
        except asyncio.CancelledError:
            if self.abort_error is not None:
                raise self.abort_error
            if self.cancelled:
                raise CancellationError("script cancelled")
            raise
        finally:
            if releases and self._handler_task is not None:
                self._handler_idle.clear()
            self._pending.discard(future)
            if not future.done():
                future.cancel()

    def _interrupt(self) -> None:
        for future in list(self._pending):
            if not future.done():
                future.cancel()

    def cancel(self) -> None:
        """Stop the run at its next suspension or statement boundary."""
        if not self.cancelled:
            logger.debug("governor_cancel", extra={"pending": len(self._pending)})
        self.cancelled = True
        self._interrupt()

    def close(self) -> None:
        """Release anything still suspended once the run has finished."""
        self.cancelled = True
        self._interrupt()

    def abort(self, error: ScriptError) -> None:
        """Fail the run with error (e.g. raised by an event handler)."""
        if self.abort_error is None and not self.cancelled:
            self.abort_error = error
        self._interrupt()
